"""
Filter stage - applies an endpoint's keyword/region policy to a normalized
signal before any classifier budget is spent.

Minimum severity is part of the same policy but can only be judged after
classification; see severity_below_threshold().
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from aidwatch.models.enums import Severity
from aidwatch.schemas.signals import RawSignal

NO_MATCHING_KEYWORDS = "No matching keywords"
NO_MATCHING_REGIONS = "No matching regions"


@dataclass(frozen=True)
class FilterDecision:
    passed: bool
    reason: Optional[str] = None


PASS = FilterDecision(passed=True)


def apply_filters(
    signal: RawSignal,
    keywords: Optional[Sequence[str]],
    regions: Optional[Sequence[str]],
) -> FilterDecision:
    """
    Keywords: any case-insensitive substring of title + description.
    Regions: any case-insensitive substring of the extracted location;
    a signal without a location is not blocked by the region list.
    """
    keywords = [k for k in (keywords or []) if k and k.strip()]
    if keywords:
        text = f"{signal.title} {signal.description}".lower()
        if not any(k.strip().lower() in text for k in keywords):
            return FilterDecision(passed=False, reason=NO_MATCHING_KEYWORDS)

    regions = [r for r in (regions or []) if r and r.strip()]
    if regions and signal.location:
        location = signal.location.lower()
        if not any(r.strip().lower() in location for r in regions):
            return FilterDecision(passed=False, reason=NO_MATCHING_REGIONS)

    return PASS


def severity_below_threshold(
    severity: Severity,
    min_severity: Optional[str],
) -> Optional[str]:
    """Returns the skip note when severity ranks below the endpoint minimum, else None."""
    if not min_severity:
        return None
    threshold = Severity.parse(min_severity)
    if severity.rank < threshold.rank:
        return f"Severity {severity.value} below threshold {threshold.value}"
    return None
