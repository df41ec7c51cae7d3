"""
Crisis classifier - turns free text into a structured ClassificationResult.

The classifier is a fallible remote call. It never returns an empty result on
failure: provider errors, missing JSON and schema violations all raise
ClassificationError, so callers can tell "not relevant" apart from
"classification failed".
"""
import json
import logging
import re
from typing import Protocol

from pydantic import ValidationError

from aidwatch.prompts.classification import (
    CLASSIFIER_SYSTEM_PROMPT,
    CLASSIFIER_USER_TEMPLATE,
)
from aidwatch.schemas.signals import ClassificationResult
from aidwatch.services.ai import generate_response

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# Upstream text beyond this is cut before it reaches the provider
MAX_CLASSIFIER_INPUT_CHARS = 6000


class ClassificationError(Exception):
    """The classifier could not produce a judgment for this text."""


class Classifier(Protocol):
    async def classify(self, text: str) -> ClassificationResult:
        ...


def parse_classifier_response(content: str) -> ClassificationResult:
    """
    Extract and validate the JSON judgment from raw model output.
    Models sometimes wrap the object in prose or code fences; the outermost
    {...} span is used.
    """
    match = _JSON_OBJECT_RE.search(content or "")
    if not match:
        raise ClassificationError("No JSON object found in classifier response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Classifier returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassificationError("Classifier response is not a JSON object")
    if "isRelevantCrisis" not in data:
        raise ClassificationError("Classifier response missing isRelevantCrisis")

    entities = data.get("entities") or {}
    if not isinstance(entities, dict):
        raise ClassificationError("Classifier entities is not a JSON object")

    try:
        return ClassificationResult(
            relevant=bool(data.get("isRelevantCrisis")),
            type=data.get("crisisType"),
            severity=data.get("severity"),
            confidence=data.get("confidence"),
            summary=str(data.get("summary") or ""),
            locations=entities.get("locations"),
            organizations=entities.get("organizations"),
            keywords=entities.get("keywords"),
            sentiment=data.get("sentiment"),
            recommendations=data.get("recommendations"),
        )
    except (ValidationError, TypeError, ValueError) as e:
        raise ClassificationError(f"Classifier response failed validation: {e}") from e


class LLMClassifier:
    """Classifier backed by the Anthropic/OpenAI gateway in services.ai."""

    def __init__(self, model_tier: str = "fast"):
        self.model_tier = model_tier

    async def classify(self, text: str) -> ClassificationResult:
        if not text or not text.strip():
            raise ClassificationError("Nothing to classify")

        result = await generate_response(
            system_prompt=CLASSIFIER_SYSTEM_PROMPT,
            user_message=CLASSIFIER_USER_TEMPLATE.format(
                text=text[:MAX_CLASSIFIER_INPUT_CHARS]
            ),
            model_tier=self.model_tier,
            temperature=0.1,
            json_mode=True,
        )
        if result["error"]:
            raise ClassificationError(result["error"])

        classification = parse_classifier_response(result["content"])
        logger.debug(
            "Classified text: relevant=%s type=%s severity=%s (%s/%s, %dms, $%.5f)",
            classification.relevant,
            classification.type.value,
            classification.severity.value,
            result["provider"],
            result["model"],
            result["latency_ms"],
            result["cost_usd"],
            extra={"provider": result["provider"]},
        )
        return classification
