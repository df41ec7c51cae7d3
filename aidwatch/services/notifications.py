"""
Notification dispatcher - decides who hears about which crisis, and when.

Cadences:
- IMMEDIATE: crises created in the last hour with severity >= MEDIUM. One
  ledger row per (subscription, crisis); the row's existence, whatever its
  status, blocks any later attempt for that pair.
- DAILY / WEEKLY: every matching crisis from the last 24h / 7d in one digest
  per subscriber. No per-crisis dedup; each send gets a ledger row with a
  NULL crisis id.

A failed delivery marks its own ledger row FAILED and never stops the sweep.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.models.alert_subscription import AlertSubscription
from aidwatch.models.crisis import Crisis
from aidwatch.models.enums import Cadence, NotificationStatus, Severity
from aidwatch.models.sent_notification import SentNotification
from aidwatch.services.email import EmailTransport, render_crisis_alert, render_digest
from aidwatch.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

IMMEDIATE_WINDOW = timedelta(hours=1)
IMMEDIATE_MIN_SEVERITY = Severity.MEDIUM
DIGEST_WINDOWS = {
    Cadence.DAILY: timedelta(hours=24),
    Cadence.WEEKLY: timedelta(days=7),
}
DIGEST_LABELS = {
    Cadence.DAILY: "Daily",
    Cadence.WEEKLY: "Weekly",
}


def subscription_matches(subscription: AlertSubscription, crisis: Crisis) -> bool:
    """
    Region: empty list matches all, else any entry is a case-insensitive
    substring of the crisis region. Type: empty list matches all. Severity:
    crisis ranks at or above the subscriber's minimum.
    """
    regions = [r for r in (subscription.regions or []) if r]
    if regions:
        crisis_region = (crisis.region or "").lower()
        if not any(r.lower() in crisis_region for r in regions):
            return False

    crisis_types = subscription.crisis_types or []
    if crisis_types and crisis.type not in crisis_types:
        return False

    return Severity.parse(crisis.severity).rank >= Severity.parse(subscription.min_severity).rank


async def _active_subscriptions(db: AsyncSession, cadence: Cadence) -> list[AlertSubscription]:
    result = await db.execute(
        select(AlertSubscription).where(
            AlertSubscription.cadence == cadence.value,
            AlertSubscription.is_active.is_(True),
            AlertSubscription.email_verified.is_(True),
        )
    )
    return list(result.scalars().all())


async def _already_notified(db: AsyncSession, subscription_id: uuid.UUID, crisis_id: uuid.UUID) -> bool:
    existing = await db.scalar(
        select(SentNotification.id).where(
            SentNotification.subscription_id == subscription_id,
            SentNotification.crisis_id == crisis_id,
        ).limit(1)
    )
    return existing is not None


def _severity_sorted(crises: list[Crisis]) -> list[Crisis]:
    return sorted(
        crises,
        key=lambda c: (Severity.parse(c.severity).rank, ensure_utc(c.created_at)),
        reverse=True,
    )


# ---------------------------------------------------------------------------
# Immediate
# ---------------------------------------------------------------------------

async def process_immediate_notifications(
    db: AsyncSession,
    transport: EmailTransport,
    now: Optional[datetime] = None,
    window: timedelta = IMMEDIATE_WINDOW,
) -> dict:
    """One immediate sweep. Returns counters for the job status."""
    now = now or utcnow()
    stats = {"crises": 0, "matched": 0, "sent": 0, "failed": 0, "already_notified": 0}

    result = await db.execute(
        select(Crisis.id).where(
            Crisis.created_at >= now - window,
            Crisis.severity.in_(Severity.at_least(IMMEDIATE_MIN_SEVERITY)),
        ).order_by(Crisis.created_at.asc())
    )
    crisis_ids = list(result.scalars().all())
    stats["crises"] = len(crisis_ids)
    if not crisis_ids:
        return stats

    subscriptions = await _active_subscriptions(db, Cadence.IMMEDIATE)
    subscription_ids = [s.id for s in subscriptions]

    for crisis_id in crisis_ids:
        for subscription_id in subscription_ids:
            crisis = await db.get(Crisis, crisis_id)
            subscription = await db.get(AlertSubscription, subscription_id)
            if crisis is None or subscription is None:
                continue
            if not subscription_matches(subscription, crisis):
                continue
            stats["matched"] += 1

            if await _already_notified(db, subscription_id, crisis_id):
                stats["already_notified"] += 1
                continue

            outcome = await _deliver_alert(db, transport, subscription, crisis)
            stats[outcome] += 1

    if stats["sent"] or stats["failed"]:
        logger.info(
            "Immediate notifications: %d sent, %d failed (%d crises)",
            stats["sent"], stats["failed"], stats["crises"],
        )
    return stats


async def _deliver_alert(
    db: AsyncSession,
    transport: EmailTransport,
    subscription: AlertSubscription,
    crisis: Crisis,
) -> str:
    """Claim the ledger row, send, record the outcome. Returns the stats key."""
    subject, html_content = render_crisis_alert(crisis, subscription)
    ledger = SentNotification(
        id=uuid.uuid4(),
        subscription_id=subscription.id,
        crisis_id=crisis.id,
        cadence=Cadence.IMMEDIATE.value,
        subject=subject[:500],
        content=html_content,
        status=NotificationStatus.PENDING.value,
        created_at=utcnow(),
    )
    db.add(ledger)
    try:
        await db.commit()
    except IntegrityError:
        # Another sweep claimed this pair between the check and the insert
        await db.rollback()
        return "already_notified"

    result = await _safe_send(transport, subscription.email, subject, html_content)
    _record_delivery(ledger, subscription, result)
    await db.commit()

    log_extra = {"subscription_id": str(subscription.id), "crisis_id": str(crisis.id)}
    if result.get("success"):
        return "sent"
    logger.warning("Crisis alert delivery failed: %s", result.get("error"), extra=log_extra)
    return "failed"


async def _safe_send(transport: EmailTransport, to: str, subject: str, html_content: str) -> dict:
    try:
        return await transport.send(to, subject, html_content)
    except Exception as e:
        logger.error("Email transport raised: %s", str(e), exc_info=True)
        return {"success": False, "message_id": None, "error": str(e)}


def _record_delivery(ledger: SentNotification, subscription: AlertSubscription, result: dict) -> None:
    now = utcnow()
    if result.get("success"):
        ledger.status = NotificationStatus.SENT.value
        ledger.message_id = result.get("message_id")
        ledger.sent_at = now
        subscription.last_notified_at = now
    else:
        ledger.status = NotificationStatus.FAILED.value
        ledger.error = (result.get("error") or "Unknown delivery error")[:2000]


# ---------------------------------------------------------------------------
# Digests
# ---------------------------------------------------------------------------

async def process_digest(
    db: AsyncSession,
    transport: EmailTransport,
    cadence: Cadence,
    now: Optional[datetime] = None,
) -> dict:
    """Send one DAILY or WEEKLY digest per subscriber with at least one matching crisis."""
    if cadence not in DIGEST_WINDOWS:
        raise ValueError(f"No digest for cadence {cadence.value}")

    now = now or utcnow()
    stats = {"crises": 0, "subscribers": 0, "sent": 0, "failed": 0}

    result = await db.execute(
        select(Crisis).where(Crisis.created_at >= now - DIGEST_WINDOWS[cadence])
    )
    crises = _severity_sorted(list(result.scalars().all()))
    stats["crises"] = len(crises)
    if not crises:
        logger.info("No crises for %s digest", cadence.value.lower())
        return stats

    for subscription in await _active_subscriptions(db, cadence):
        matching = [c for c in crises if subscription_matches(subscription, c)]
        if not matching:
            continue
        stats["subscribers"] += 1

        subject, html_content = render_digest(matching, subscription, DIGEST_LABELS[cadence])
        ledger = SentNotification(
            id=uuid.uuid4(),
            subscription_id=subscription.id,
            crisis_id=None,
            cadence=cadence.value,
            subject=subject[:500],
            content=html_content,
            status=NotificationStatus.PENDING.value,
            created_at=utcnow(),
        )
        db.add(ledger)
        await db.commit()

        send_result = await _safe_send(transport, subscription.email, subject, html_content)
        _record_delivery(ledger, subscription, send_result)
        await db.commit()

        if send_result.get("success"):
            stats["sent"] += 1
        else:
            stats["failed"] += 1
            logger.warning(
                "%s digest delivery failed: %s", DIGEST_LABELS[cadence], send_result.get("error"),
                extra={"subscription_id": str(subscription.id)},
            )

    logger.info(
        "%s digest: %d sent, %d failed over %d crises",
        DIGEST_LABELS[cadence], stats["sent"], stats["failed"], stats["crises"],
    )
    return stats
