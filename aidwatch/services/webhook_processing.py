"""
Webhook event processor - drives one stored WebhookEvent through
normalize -> filter -> classify -> correlate and records a terminal status.

Terminal outcomes:
- SKIPPED: unparseable payload, or rejected by the keyword/region filter
- SUCCESS: Event created (linked, new crisis, not relevant, below min
  severity or stale; the note explains the last two)
- FAILED: classification or persistence error; endpoint failure counter +1.
  If correlation fails the Event is kept, unanalyzed, and linked by event_id

SUCCESS/FAILED/SKIPPED rows are never reprocessed. A row is claimed with a
conditional UPDATE, so two workers never process it at once.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aidwatch.models.enums import SOURCE_KIND_TO_TYPE, SourceKind, SourceType, WebhookEventStatus
from aidwatch.models.event import Event
from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.schemas.signals import ClassificationResult, RawSignal
from aidwatch.services.correlation import CorrelationEngine
from aidwatch.services.normalizers import normalize
from aidwatch.services.signal_filter import apply_filters
from aidwatch.utils.dates import utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {
    WebhookEventStatus.SUCCESS.value,
    WebhookEventStatus.FAILED.value,
    WebhookEventStatus.SKIPPED.value,
}
UNPARSEABLE_REASON = "Could not parse webhook payload"
STALE_NOTE = "Stale signal; not correlated"


def _source_type(source_kind: str) -> str:
    try:
        return SOURCE_KIND_TO_TYPE[SourceKind(source_kind)].value
    except (ValueError, KeyError):
        return SourceType.OTHER.value


def _build_event(
    signal: RawSignal,
    endpoint: IngestionEndpoint,
    classification: Optional[ClassificationResult],
) -> Event:
    now = utcnow()
    event = Event(
        id=uuid.uuid4(),
        title=signal.title,
        description=signal.description,
        source=signal.origin_fingerprint,
        source_type=_source_type(endpoint.source_kind),
        location=signal.location,
        latitude=signal.latitude,
        longitude=signal.longitude,
        published_at=signal.occurred_at or now,
        fetched_at=now,
        analyzed=False,
    )
    if classification is not None:
        event.sentiment = classification.sentiment
        event.relevance = classification.confidence if classification.relevant else 0.0
        event.entities = classification.entities()
    return event


def _finish(webhook_event: WebhookEvent, status: WebhookEventStatus, note: Optional[str] = None) -> None:
    webhook_event.status = status.value
    webhook_event.error = note
    webhook_event.processed_at = utcnow()


async def _claim(
    db: AsyncSession,
    webhook_event_id: uuid.UUID,
    reclaim_before: Optional[datetime],
) -> bool:
    """
    Compare-and-set a row to PROCESSING. Only PENDING rows are claimable,
    plus PROCESSING rows whose claim is older than reclaim_before when given.
    Returns True if this caller now owns the row.
    """
    claimable = WebhookEvent.status == WebhookEventStatus.PENDING.value
    if reclaim_before is not None:
        claimable = or_(
            claimable,
            and_(
                WebhookEvent.status == WebhookEventStatus.PROCESSING.value,
                or_(
                    WebhookEvent.processing_started_at.is_(None),
                    WebhookEvent.processing_started_at < reclaim_before,
                ),
            ),
        )
    result = await db.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == webhook_event_id, claimable)
        .values(status=WebhookEventStatus.PROCESSING.value, processing_started_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def process_webhook_event(
    session_factory: async_sessionmaker[AsyncSession],
    webhook_event_id: uuid.UUID,
    engine: CorrelationEngine,
    reclaim_before: Optional[datetime] = None,
) -> Optional[str]:
    """
    Process one WebhookEvent to a terminal status. Never raises.

    Returns the final status, or None if the row does not exist. When another
    worker holds the row, or it is already terminal, nothing is done and the
    current status is returned.
    """
    log_extra = {"webhook_event_id": str(webhook_event_id)}

    async with session_factory() as db:
        claimed = await _claim(db, webhook_event_id, reclaim_before)
        webhook_event = await db.get(WebhookEvent, webhook_event_id)
        if webhook_event is None:
            logger.warning("Webhook event not found", extra=log_extra)
            return None
        if not claimed:
            logger.debug("Webhook event not claimable (%s)", webhook_event.status, extra=log_extra)
            return webhook_event.status

        endpoint_id = webhook_event.endpoint_id
        endpoint = await db.get(IngestionEndpoint, endpoint_id)
        log_extra["endpoint_id"] = str(endpoint_id)

        try:
            status = await _run_pipeline(db, webhook_event, endpoint, engine)
            logger.info("Webhook event processed: %s", status, extra=log_extra)
            return status
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Webhook processing failed: %s", error, exc_info=True, extra=log_extra)
            await db.rollback()

    await _mark_failed(session_factory, webhook_event_id, endpoint_id, error)
    return WebhookEventStatus.FAILED.value


async def _run_pipeline(
    db: AsyncSession,
    webhook_event: WebhookEvent,
    endpoint: IngestionEndpoint,
    engine: CorrelationEngine,
) -> str:
    signal = normalize(endpoint.source_kind, webhook_event.payload, webhook_event.payload_hash)
    if signal is None:
        _finish(webhook_event, WebhookEventStatus.SKIPPED, UNPARSEABLE_REASON)
        await db.commit()
        return webhook_event.status

    decision = apply_filters(signal, endpoint.keywords, endpoint.regions)
    if not decision.passed:
        _finish(webhook_event, WebhookEventStatus.SKIPPED, decision.reason)
        await db.commit()
        return webhook_event.status

    if engine.is_stale(signal.occurred_at):
        event = _build_event(signal, endpoint, None)
        event.analyzed = True
        db.add(event)
        await db.flush()
        webhook_event.event_id = event.id
        _finish(webhook_event, WebhookEventStatus.SUCCESS, STALE_NOTE)
        await db.commit()
        return webhook_event.status

    # ClassificationError propagates; no Event is created for a failed classification
    classification = await engine.classifier.classify(signal.text)

    # Stored unanalyzed; a correlation failure leaves it for the classification batch
    event = _build_event(signal, endpoint, classification)
    db.add(event)
    await db.flush()
    webhook_event.event_id = event.id
    await db.commit()

    outcome = await engine.correlate(db, event, classification, endpoint.min_severity)
    _finish(webhook_event, WebhookEventStatus.SUCCESS, outcome.note)
    await db.commit()
    return webhook_event.status


async def _mark_failed(
    session_factory: async_sessionmaker[AsyncSession],
    webhook_event_id: uuid.UUID,
    endpoint_id: Optional[uuid.UUID],
    error: str,
) -> None:
    """Record the failure in a fresh session; the processing session may be unusable."""
    try:
        async with session_factory() as db:
            await db.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == webhook_event_id)
                .values(
                    status=WebhookEventStatus.FAILED.value,
                    error=error[:2000],
                    processed_at=utcnow(),
                )
            )
            if endpoint_id is not None:
                await db.execute(
                    update(IngestionEndpoint)
                    .where(IngestionEndpoint.id == endpoint_id)
                    .values(total_failed=IngestionEndpoint.total_failed + 1)
                )
            await db.commit()
    except Exception as e:
        logger.error(
            "Could not record webhook failure: %s", str(e), exc_info=True,
            extra={"webhook_event_id": str(webhook_event_id)},
        )
