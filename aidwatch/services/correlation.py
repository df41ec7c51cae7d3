"""
Correlation engine - decides whether a classified Event joins an existing
open Crisis or starts a new one.

Per Event, never batched across Events:
1. Not relevant -> analyzed, unlinked, stop.
2. Look for an open crisis (EMERGING/DEVELOPING/ONGOING) of the same type whose
   location, country or region contains any classifier location or the
   Event's own location (case-insensitive). Most recently detected wins.
3. Match -> link; raise the crisis severity only if the new one is strictly higher.
4. No match -> create an EMERGING crisis from this Event and link it.
5. Analyzed=true in every terminal branch, including errors.

Events published more than stale_after ago are marked analyzed without being
classified or linked.

Match-then-write runs under a process-local lock so two Events that should
merge into the same new crisis cannot both create one. Scaling out across
processes needs an external lock.
"""
import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.models.crisis import Crisis
from aidwatch.models.enums import OPEN_CRISIS_STATUSES, CrisisStatus, Severity
from aidwatch.models.event import Event
from aidwatch.models.summary import Summary
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.schemas.signals import ClassificationResult
from aidwatch.services.classifier import Classifier, ClassificationError
from aidwatch.services.signal_filter import severity_below_threshold
from aidwatch.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(days=30)
UNKNOWN_LOCATION = "Unknown Location"
MAX_CRISIS_TAGS = 10
_PROPER_NAME_RE = re.compile(r"^[A-Z][a-z]+(\s[A-Z][a-z]+)*$")


class CorrelationAction(str, Enum):
    LINKED = "LINKED"
    CREATED = "CREATED"
    NOT_RELEVANT = "NOT_RELEVANT"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    STALE = "STALE"
    FAILED = "FAILED"


@dataclass
class CorrelationOutcome:
    action: CorrelationAction
    event_id: uuid.UUID
    crisis_id: Optional[uuid.UUID] = None
    escalated: bool = False
    note: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchStats:
    processed: int = 0
    linked: int = 0
    created: int = 0
    not_relevant: int = 0
    below_threshold: int = 0
    stale: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)

    def record(self, outcome: CorrelationOutcome) -> None:
        self.processed += 1
        if outcome.action == CorrelationAction.LINKED:
            self.linked += 1
        elif outcome.action == CorrelationAction.CREATED:
            self.created += 1
        elif outcome.action == CorrelationAction.NOT_RELEVANT:
            self.not_relevant += 1
        elif outcome.action == CorrelationAction.BELOW_THRESHOLD:
            self.below_threshold += 1
        elif outcome.action == CorrelationAction.STALE:
            self.stale += 1
        else:
            self.errors += 1
            self.error_messages.append(f"{outcome.event_id}: {outcome.error}")

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "linked": self.linked,
            "created": self.created,
            "not_relevant": self.not_relevant,
            "below_threshold": self.below_threshold,
            "stale": self.stale,
            "errors": self.errors,
            "error_messages": self.error_messages[:20],
        }


def extract_country(locations: list[str]) -> Optional[str]:
    """First location that reads like a proper place name (capitalised words, < 30 chars)."""
    for loc in locations:
        if len(loc) < 30 and _PROPER_NAME_RE.match(loc):
            return loc
    return None


def crisis_title_from(summary: str, fallback: str) -> str:
    first_sentence = (summary or "").split(".")[0].strip()
    return (first_sentence or fallback)[:500]


class CorrelationEngine:
    """Links classified Events to Crises. One instance per process."""

    def __init__(
        self,
        classifier: Classifier,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ):
        self.classifier = classifier
        self.stale_after = stale_after
        self._lock = asyncio.Lock()

    def is_stale(self, published_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        if published_at is None:
            return False
        now = now or utcnow()
        return ensure_utc(published_at) < now - self.stale_after

    # ------------------------------------------------------------------
    # Single Event
    # ------------------------------------------------------------------

    async def correlate(
        self,
        db: AsyncSession,
        event: Event,
        classification: ClassificationResult,
        min_severity: Optional[str] = None,
    ) -> CorrelationOutcome:
        """
        Apply a classification to an Event that has already been added to db.
        Commits. Callers own error handling (see process_event).
        """
        if not classification.relevant:
            event.analyzed = True
            await db.commit()
            return CorrelationOutcome(CorrelationAction.NOT_RELEVANT, event.id)

        note = severity_below_threshold(classification.severity, min_severity)
        if note:
            event.analyzed = True
            await db.commit()
            return CorrelationOutcome(CorrelationAction.BELOW_THRESHOLD, event.id, note=note)

        async with self._lock:
            crisis = await self.find_matching_crisis(db, event, classification)
            if crisis is not None:
                escalated = self._escalate(crisis, classification.severity)
                event.crisis_id = crisis.id
                event.analyzed = True
                await db.commit()
                logger.info(
                    "Event linked to crisis %s%s",
                    str(crisis.id)[:8],
                    f" (severity raised to {crisis.severity})" if escalated else "",
                    extra={"event_id": str(event.id), "crisis_id": str(crisis.id)},
                )
                return CorrelationOutcome(
                    CorrelationAction.LINKED, event.id, crisis_id=crisis.id, escalated=escalated,
                )

            crisis = self._new_crisis(event, classification)
            db.add(crisis)
            await db.flush()
            event.crisis_id = crisis.id
            event.analyzed = True
            await db.commit()

        logger.info(
            "Crisis created: %s (%s/%s)",
            crisis.title[:80], crisis.type, crisis.severity,
            extra={"event_id": str(event.id), "crisis_id": str(crisis.id)},
        )
        return CorrelationOutcome(CorrelationAction.CREATED, event.id, crisis_id=crisis.id)

    async def process_event(
        self,
        db: AsyncSession,
        event: Event,
        now: Optional[datetime] = None,
    ) -> CorrelationOutcome:
        """
        Stale check, classify, correlate. Never raises: any failure leaves the
        Event analyzed so the unanalyzed backlog always shrinks.
        """
        event_id = event.id

        if self.is_stale(event.published_at, now):
            event.analyzed = True
            await db.commit()
            logger.debug("Stale event skipped", extra={"event_id": str(event_id)})
            return CorrelationOutcome(CorrelationAction.STALE, event_id)

        text = f"{event.title}\n\n{event.description}" if event.description else event.title
        try:
            classification = await self.classifier.classify(text)
            return await self.correlate(db, event, classification)
        except ClassificationError as e:
            error = str(e)
        except Exception as e:
            logger.error(
                "Correlation failed: %s", str(e), exc_info=True,
                extra={"event_id": str(event_id)},
            )
            error = str(e) or type(e).__name__

        await self._mark_analyzed_after_error(db, event_id)
        logger.warning("Event analysis failed: %s", error, extra={"event_id": str(event_id)})
        return CorrelationOutcome(CorrelationAction.FAILED, event_id, error=error)

    async def _mark_analyzed_after_error(self, db: AsyncSession, event_id: uuid.UUID) -> None:
        await db.rollback()
        await db.execute(update(Event).where(Event.id == event_id).values(analyzed=True))
        await db.commit()

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def find_matching_crisis(
        self,
        db: AsyncSession,
        event: Event,
        classification: ClassificationResult,
    ) -> Optional[Crisis]:
        terms = []
        for term in [*classification.locations, event.location]:
            if term and term.strip() and term.strip() not in terms:
                terms.append(term.strip())
        if not terms:
            return None

        location_match = or_(*[
            column.icontains(term, autoescape=True)
            for term in terms
            for column in (Crisis.location, Crisis.country, Crisis.region)
        ])
        result = await db.execute(
            select(Crisis)
            .where(
                Crisis.status.in_(OPEN_CRISIS_STATUSES),
                Crisis.type == classification.type.value,
                location_match,
            )
            .order_by(Crisis.detected_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _escalate(crisis: Crisis, incoming: Severity) -> bool:
        if incoming.rank > Severity.parse(crisis.severity).rank:
            crisis.severity = incoming.value
            return True
        return False

    @staticmethod
    def _new_crisis(event: Event, classification: ClassificationResult) -> Crisis:
        locations = classification.locations
        location = (locations[0] if locations else None) or event.location or UNKNOWN_LOCATION
        country = extract_country(locations)
        now = utcnow()
        return Crisis(
            id=uuid.uuid4(),
            title=crisis_title_from(classification.summary, event.title),
            description=classification.summary or event.description,
            type=classification.type.value,
            severity=classification.severity.value,
            status=CrisisStatus.EMERGING.value,
            confidence=classification.confidence,
            location=location,
            country=country,
            region=country or location,
            latitude=event.latitude,
            longitude=event.longitude,
            tags=classification.keywords[:MAX_CRISIS_TAGS],
            detected_at=now,
            started_at=event.published_at,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def process_unanalyzed(
        self,
        db: AsyncSession,
        batch_size: int = 10,
        delay_seconds: float = 0.5,
        rescan_unlinked: bool = False,
        now: Optional[datetime] = None,
    ) -> BatchStats:
        """
        Classify and correlate a batch of unanalyzed Events, newest first,
        strictly one at a time. With rescan_unlinked, previously analyzed
        but unlinked Events are eligible too (manual re-run after failures).
        """
        query = select(Event.id).where(Event.crisis_id.is_(None))
        if not rescan_unlinked:
            query = query.where(Event.analyzed.is_(False))
        result = await db.execute(
            query.order_by(Event.published_at.desc()).limit(batch_size)
        )
        event_ids = list(result.scalars().all())

        stats = BatchStats()
        for index, event_id in enumerate(event_ids):
            event = await db.get(Event, event_id)
            if event is None:
                continue
            outcome = await self.process_event(db, event, now=now)
            stats.record(outcome)

            classified = outcome.action != CorrelationAction.STALE
            if classified and delay_seconds > 0 and index < len(event_ids) - 1:
                await asyncio.sleep(delay_seconds)

        if stats.processed:
            logger.info(
                "Classification batch: %d processed, %d linked, %d created, %d errors",
                stats.processed, stats.linked, stats.created, stats.errors,
            )
        return stats


async def get_processing_stats(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """Pipeline counters for the job status query."""
    now = now or utcnow()

    total_events = await db.scalar(select(func.count(Event.id)))
    analyzed_events = await db.scalar(
        select(func.count(Event.id)).where(Event.analyzed.is_(True))
    )
    total_crises = await db.scalar(select(func.count(Crisis.id)))
    active_crises = await db.scalar(
        select(func.count(Crisis.id)).where(Crisis.status.in_(OPEN_CRISIS_STATUSES))
    )
    recent_summaries = await db.scalar(
        select(func.count(Summary.id)).where(Summary.created_at >= now - timedelta(days=7))
    )
    rows = await db.execute(
        select(WebhookEvent.status, func.count(WebhookEvent.id)).group_by(WebhookEvent.status)
    )

    return {
        "total_events": total_events or 0,
        "analyzed_events": analyzed_events or 0,
        "unanalyzed_events": (total_events or 0) - (analyzed_events or 0),
        "total_crises": total_crises or 0,
        "active_crises": active_crises or 0,
        "recent_summaries": recent_summaries or 0,
        "webhook_events": {status: count for status, count in rows.all()},
    }
