"""
Crisis summaries - LLM-written situation overviews for open crises.

The summary batch fills in crises that have no summary yet, then refreshes
crises that changed in the last 24h but whose newest summary is older than that.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.models.crisis import Crisis
from aidwatch.models.enums import OPEN_CRISIS_STATUSES, SummaryType
from aidwatch.models.event import Event
from aidwatch.models.summary import Summary
from aidwatch.prompts.classification import SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_TEMPLATE
from aidwatch.services.ai import generate_response
from aidwatch.utils.dates import utcnow

logger = logging.getLogger(__name__)

EVENTS_PER_SUMMARY = 20
REFRESH_AFTER = timedelta(hours=24)


class SummaryGenerationError(Exception):
    pass


async def generate_crisis_summary(
    db: AsyncSession,
    crisis_id: uuid.UUID,
    summary_type: SummaryType = SummaryType.SITUATION,
) -> Summary:
    crisis = await db.get(Crisis, crisis_id)
    if crisis is None:
        raise SummaryGenerationError(f"Crisis not found: {crisis_id}")

    result = await db.execute(
        select(Event)
        .where(Event.crisis_id == crisis_id)
        .order_by(Event.published_at.desc())
        .limit(EVENTS_PER_SUMMARY)
    )
    events = result.scalars().all()
    reports = "\n".join(
        f"- {e.title}: {(e.description or '')[:400]} ({e.source})" for e in events
    ) or "- No linked reports yet."

    response = await generate_response(
        system_prompt=SUMMARY_SYSTEM_PROMPT,
        user_message=SUMMARY_USER_TEMPLATE.format(
            title=crisis.title,
            type=crisis.type,
            severity=crisis.severity,
            location=crisis.location or crisis.country or "Unknown",
            reports=reports,
        ),
        model_tier="smart",
        temperature=0.3,
    )
    if response["error"] or not response["content"]:
        raise SummaryGenerationError(response["error"] or "Empty summary response")

    summary = Summary(
        id=uuid.uuid4(),
        crisis_id=crisis_id,
        type=summary_type.value,
        content=response["content"],
        model=response["model"],
        tokens=response["input_tokens"] + response["output_tokens"],
        created_at=utcnow(),
    )
    db.add(summary)
    await db.commit()

    logger.info(
        "Generated %s summary for crisis %s",
        summary_type.value, crisis.title[:60],
        extra={"crisis_id": str(crisis_id)},
    )
    return summary


async def generate_missing_summaries(
    db: AsyncSession,
    batch_size: int = 5,
    delay_seconds: float = 1.0,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    threshold = now - REFRESH_AFTER
    stats = {"generated": 0, "refreshed": 0, "errors": 0}

    missing = await db.execute(
        select(Crisis.id)
        .where(
            Crisis.status.in_(OPEN_CRISIS_STATUSES),
            ~Crisis.summaries.any(),
            Crisis.events.any(),
        )
        .order_by(Crisis.created_at.desc())
        .limit(batch_size)
    )
    stale = await db.execute(
        select(Crisis.id)
        .where(
            Crisis.status.in_(OPEN_CRISIS_STATUSES),
            Crisis.updated_at >= threshold,
            Crisis.summaries.any(),
            ~Crisis.summaries.any(Summary.created_at >= threshold),
        )
        .limit(batch_size)
    )

    work = [(cid, "generated") for cid in missing.scalars().all()]
    work += [(cid, "refreshed") for cid in stale.scalars().all()]

    for index, (crisis_id, kind) in enumerate(work):
        try:
            await generate_crisis_summary(db, crisis_id)
            stats[kind] += 1
        except Exception as e:
            await db.rollback()
            stats["errors"] += 1
            logger.error(
                "Summary generation failed: %s", str(e),
                extra={"crisis_id": str(crisis_id)},
            )
        if delay_seconds > 0 and index < len(work) - 1:
            await asyncio.sleep(delay_seconds)

    return stats
