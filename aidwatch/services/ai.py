"""
LLM gateway - Anthropic primary, OpenAI fallback.
Used by the signal classifier and the crisis summary generator.
Every call reports provider, model, latency, tokens and cost.
Daily spending cap via Redis so a flood of signals cannot run up the bill.
"""
import logging
import re
import time
from typing import Optional

from aidwatch.config import get_settings
from aidwatch.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

# Cost per million tokens (input/output)
COST_TABLE = {
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}

DAILY_SPEND_KEY = "aidwatch:ai:daily_spend"
DAILY_SPEND_TTL = 86400


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for a given model and token count."""
    costs = COST_TABLE.get(model, {"input": 1.0, "output": 5.0})
    return (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000


def _strip_reasoning(text: Optional[str]) -> str:
    """Remove hidden reasoning blocks returned by some providers."""
    if not text:
        return ""
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE).strip()


async def _check_daily_budget() -> tuple[bool, float]:
    """Returns (allowed, current_spend). Redis outages never block classification."""
    budget = get_settings().ai_daily_budget_usd
    try:
        redis = await get_redis()
        current_raw = await redis.get(DAILY_SPEND_KEY)
    except Exception as e:
        logger.debug("Budget check failed (allowing): %s", str(e))
        return True, 0.0
    current = float(current_raw) if current_raw else 0.0
    return current < budget, current


async def _record_spend(cost_usd: float) -> None:
    if cost_usd <= 0:
        return
    try:
        redis = await get_redis()
        pipe = redis.pipeline()
        pipe.incrbyfloat(DAILY_SPEND_KEY, cost_usd)
        pipe.expire(DAILY_SPEND_KEY, DAILY_SPEND_TTL)
        await pipe.execute()
    except Exception as e:
        logger.debug("Spend recording failed: %s", str(e))


def _error_result(error_msg: str) -> dict:
    return {
        "content": "",
        "provider": "none",
        "model": "none",
        "latency_ms": 0,
        "cost_usd": 0.0,
        "input_tokens": 0,
        "output_tokens": 0,
        "error": error_msg,
    }


async def generate_response(
    system_prompt: str,
    user_message: str,
    model_tier: str = "fast",
    max_tokens: Optional[int] = None,
    temperature: float = 0.2,
    json_mode: bool = False,
) -> dict:
    """
    Generate an LLM completion. Anthropic first, OpenAI if Anthropic fails
    or is not configured.

    Args:
        system_prompt: System instructions
        user_message: The signal text or crisis context
        model_tier: "fast" for classification, "smart" for summaries
        max_tokens: Override default max tokens
        temperature: Response randomness (0.0-1.0)
        json_mode: Ask the OpenAI fallback for a JSON object response

    Returns:
        {
            "content": str,
            "provider": str,
            "model": str,
            "latency_ms": int,
            "cost_usd": float,
            "input_tokens": int,
            "output_tokens": int,
            "error": str|None,
        }
    """
    settings = get_settings()

    allowed, current_spend = await _check_daily_budget()
    if not allowed:
        from aidwatch.utils.alerting import AlertType, send_alert
        await send_alert(
            AlertType.AI_BUDGET_EXCEEDED,
            f"AI daily budget exhausted: ${current_spend:.2f} of ${settings.ai_daily_budget_usd:.2f}",
            severity="warning",
        )
        return _error_result(
            f"Daily AI budget exceeded (${current_spend:.2f}/${settings.ai_daily_budget_usd:.2f})"
        )

    if settings.anthropic_api_key:
        try:
            result = await _generate_anthropic(
                system_prompt, user_message, model_tier, max_tokens, temperature,
            )
            await _record_spend(result["cost_usd"])
            return result
        except Exception as e:
            logger.error("Anthropic failed: %s", str(e), extra={"provider": "anthropic"})

    if settings.openai_api_key:
        try:
            result = await _generate_openai(
                system_prompt, user_message, model_tier, max_tokens, temperature, json_mode,
            )
            await _record_spend(result["cost_usd"])
            return result
        except Exception as e:
            logger.error("OpenAI fallback failed: %s", str(e), extra={"provider": "openai"})

    return _error_result("No AI provider available (check API keys)")


async def _generate_anthropic(
    system_prompt: str,
    user_message: str,
    model_tier: str,
    max_tokens: Optional[int],
    temperature: float,
) -> dict:
    from anthropic import AsyncAnthropic
    settings = get_settings()

    smart = model_tier == "smart"
    model = settings.anthropic_model_smart if smart else settings.anthropic_model_fast
    tokens = max_tokens or (
        settings.anthropic_max_tokens_smart if smart else settings.anthropic_max_tokens_fast
    )

    client = AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.anthropic_timeout_seconds,
    )

    start = time.monotonic()
    response = await client.messages.create(
        model=model,
        max_tokens=tokens,
        temperature=temperature,
        system=system_prompt,
        messages=[{"role": "user", "content": user_message}],
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = "".join(block.text for block in response.content if block.type == "text")
    input_tokens = response.usage.input_tokens if response.usage else 0
    output_tokens = response.usage.output_tokens if response.usage else 0

    return {
        "content": _strip_reasoning(content),
        "provider": "anthropic",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }


async def _generate_openai(
    system_prompt: str,
    user_message: str,
    model_tier: str,
    max_tokens: Optional[int],
    temperature: float,
    json_mode: bool,
) -> dict:
    from openai import AsyncOpenAI
    settings = get_settings()

    smart = model_tier == "smart"
    model = settings.openai_model_smart if smart else settings.openai_model_fast
    tokens = max_tokens or (
        settings.openai_max_tokens_smart if smart else settings.openai_max_tokens_fast
    )

    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=(settings.openai_base_url or None),
        timeout=settings.openai_timeout_seconds,
    )

    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    start = time.monotonic()
    response = await client.chat.completions.create(
        model=model,
        max_tokens=tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
        **kwargs,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = response.choices[0].message.content if response.choices else ""
    input_tokens = response.usage.prompt_tokens if response.usage else 0
    output_tokens = response.usage.completion_tokens if response.usage else 0

    return {
        "content": _strip_reasoning(content),
        "provider": "openai",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }
