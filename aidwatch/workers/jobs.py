"""
Pipeline jobs - the callables the orchestrator schedules and triggers.

Each job opens its own session, runs one batch and returns a stats dict.
"""
import logging
from datetime import timedelta
from functools import partial

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aidwatch.config import Settings
from aidwatch.models.enums import Cadence, WebhookEventStatus
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.services.correlation import CorrelationEngine
from aidwatch.services.email import EmailTransport
from aidwatch.services.notifications import process_digest, process_immediate_notifications
from aidwatch.services.summaries import generate_missing_summaries
from aidwatch.services.webhook_processing import TERMINAL_STATUSES, process_webhook_event
from aidwatch.utils.alerting import AlertType, send_alert
from aidwatch.utils.dates import utcnow
from aidwatch.workers.orchestrator import JobFn, JobType

logger = logging.getLogger(__name__)

STALLED_BATCH_LIMIT = 100


async def recover_stalled_webhooks(
    session_factory: async_sessionmaker[AsyncSession],
    engine: CorrelationEngine,
    grace: timedelta,
) -> dict:
    """
    Ingestion sweep: WebhookEvents received more than the grace period ago
    and still PENDING (full queue, restart), or claimed more than the grace
    period ago and still PROCESSING (worker died), are processed again.
    A row a live worker holds is never touched.
    """
    cutoff = utcnow() - grace
    async with session_factory() as db:
        result = await db.execute(
            select(WebhookEvent.id)
            .where(
                or_(
                    and_(
                        WebhookEvent.status == WebhookEventStatus.PENDING.value,
                        WebhookEvent.created_at < cutoff,
                    ),
                    and_(
                        WebhookEvent.status == WebhookEventStatus.PROCESSING.value,
                        or_(
                            WebhookEvent.processing_started_at.is_(None),
                            WebhookEvent.processing_started_at < cutoff,
                        ),
                    ),
                ),
            )
            .order_by(WebhookEvent.created_at.asc())
            .limit(STALLED_BATCH_LIMIT)
        )
        stalled = list(result.scalars().all())

    stats = {"recovered": 0, "SUCCESS": 0, "FAILED": 0, "SKIPPED": 0}
    for webhook_event_id in stalled:
        status = await process_webhook_event(
            session_factory, webhook_event_id, engine, reclaim_before=cutoff,
        )
        if status not in TERMINAL_STATUSES:
            continue
        stats["recovered"] += 1
        stats[status] = stats.get(status, 0) + 1

    if stalled:
        logger.warning("Ingestion sweep recovered %d stalled webhook event(s)", stats["recovered"])
    return stats


async def run_classification_batch(
    session_factory: async_sessionmaker[AsyncSession],
    engine: CorrelationEngine,
    batch_size: int,
    delay_seconds: float,
    rescan_unlinked: bool = False,
) -> dict:
    async with session_factory() as db:
        stats = await engine.process_unanalyzed(
            db,
            batch_size=batch_size,
            delay_seconds=delay_seconds,
            rescan_unlinked=rescan_unlinked,
        )
    if stats.errors:
        await send_alert(
            AlertType.CLASSIFICATION_ERRORS,
            f"{stats.errors} of {stats.processed} events failed classification",
            severity="warning",
            extra={"first_error": stats.error_messages[0][:200]},
        )
    return stats.as_dict()


async def run_summary_batch(
    session_factory: async_sessionmaker[AsyncSession],
    batch_size: int,
) -> dict:
    async with session_factory() as db:
        return await generate_missing_summaries(db, batch_size=batch_size)


async def run_immediate_notifications(
    session_factory: async_sessionmaker[AsyncSession],
    transport: EmailTransport,
    window: timedelta,
) -> dict:
    async with session_factory() as db:
        return await process_immediate_notifications(db, transport, window=window)


async def run_digest(
    session_factory: async_sessionmaker[AsyncSession],
    transport: EmailTransport,
    cadence: Cadence,
) -> dict:
    async with session_factory() as db:
        return await process_digest(db, transport, cadence)


def build_jobs(
    session_factory: async_sessionmaker[AsyncSession],
    engine: CorrelationEngine,
    transport: EmailTransport,
    settings: Settings,
) -> dict[JobType, JobFn]:
    return {
        JobType.INGESTION_SWEEP: partial(
            recover_stalled_webhooks,
            session_factory,
            engine,
            timedelta(minutes=settings.webhook_stall_grace_minutes),
        ),
        JobType.CLASSIFICATION_BATCH: partial(
            run_classification_batch,
            session_factory,
            engine,
            settings.classification_batch_size,
            settings.classifier_delay_seconds,
        ),
        JobType.SUMMARY_BATCH: partial(
            run_summary_batch, session_factory, settings.summary_batch_size,
        ),
        JobType.IMMEDIATE_NOTIFICATIONS: partial(
            run_immediate_notifications,
            session_factory,
            transport,
            timedelta(minutes=settings.immediate_window_minutes),
        ),
        JobType.DAILY_DIGEST: partial(run_digest, session_factory, transport, Cadence.DAILY),
        JobType.WEEKLY_DIGEST: partial(run_digest, session_factory, transport, Cadence.WEEKLY),
    }


def schedule_intervals(settings: Settings) -> dict[JobType, int]:
    return {
        JobType.INGESTION_SWEEP: settings.ingestion_sweep_interval_seconds,
        JobType.CLASSIFICATION_BATCH: settings.classification_interval_seconds,
        JobType.SUMMARY_BATCH: settings.summary_interval_seconds,
        JobType.IMMEDIATE_NOTIFICATIONS: settings.immediate_notification_interval_seconds,
    }
