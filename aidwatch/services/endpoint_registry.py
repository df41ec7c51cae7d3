"""
Endpoint registry - administration of ingestion endpoints.

Create returns the public receipt URL and the signing secret; listings only
ever show a masked secret. Rotation replaces the secret in place: the old one
stops validating immediately.
"""
import json
import logging
import secrets
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aidwatch.config import get_settings
from aidwatch.models.enums import Severity, SourceKind
from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.services.correlation import CorrelationEngine
from aidwatch.services.ingestion import receive
from aidwatch.services.webhook_processing import process_webhook_event
from aidwatch.utils.dates import utcnow
from aidwatch.utils.webhook_signatures import compute_signature

logger = logging.getLogger(__name__)

PATH_PREFIX = "wh_"
SECRET_PREFIX = "whsec_"
UPDATABLE_FIELDS = ("name", "description", "is_active", "keywords", "regions", "min_severity")


def generate_path() -> str:
    return f"{PATH_PREFIX}{secrets.token_hex(16)}"


def generate_secret() -> str:
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


def mask_secret(secret: str) -> str:
    return f"{SECRET_PREFIX}...{secret[-4:]}" if secret else ""


def receipt_url(path: str) -> str:
    base = get_settings().app_base_url.rstrip("/")
    return f"{base}/api/v1/webhooks/receive/{path}"


def _clean_list(values: Optional[list[str]]) -> list[str]:
    return [v.strip() for v in (values or []) if v and v.strip()]


def _clean_min_severity(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    severity = Severity.parse(value)
    if severity == Severity.UNKNOWN:
        raise ValueError(f"Invalid minimum severity: {value}")
    return severity.value


async def create_endpoint(
    db: AsyncSession,
    name: str,
    source_kind: SourceKind,
    description: Optional[str] = None,
    keywords: Optional[list[str]] = None,
    regions: Optional[list[str]] = None,
    min_severity: Optional[str] = None,
) -> IngestionEndpoint:
    endpoint = IngestionEndpoint(
        id=uuid.uuid4(),
        name=name.strip(),
        description=description,
        source_kind=SourceKind(source_kind).value,
        path=generate_path(),
        secret=generate_secret(),
        is_active=True,
        keywords=_clean_list(keywords),
        regions=_clean_list(regions),
        min_severity=_clean_min_severity(min_severity),
        total_received=0,
        total_failed=0,
    )
    db.add(endpoint)
    await db.commit()
    logger.info(
        "Ingestion endpoint created: %s (%s)", endpoint.name, endpoint.source_kind,
        extra={"endpoint_id": str(endpoint.id)},
    )
    return endpoint


async def list_endpoints(db: AsyncSession) -> list[IngestionEndpoint]:
    result = await db.execute(
        select(IngestionEndpoint).order_by(IngestionEndpoint.created_at.desc())
    )
    return list(result.scalars().all())


async def get_endpoint(db: AsyncSession, endpoint_id: uuid.UUID) -> Optional[IngestionEndpoint]:
    return await db.get(IngestionEndpoint, endpoint_id)


async def update_endpoint(db: AsyncSession, endpoint: IngestionEndpoint, changes: dict) -> IngestionEndpoint:
    for field_name, value in changes.items():
        if field_name not in UPDATABLE_FIELDS:
            raise ValueError(f"Field cannot be updated: {field_name}")
        if field_name in ("keywords", "regions"):
            value = _clean_list(value)
        elif field_name == "min_severity":
            value = _clean_min_severity(value)
        setattr(endpoint, field_name, value)
    endpoint.updated_at = utcnow()
    await db.commit()
    return endpoint


async def delete_endpoint(db: AsyncSession, endpoint: IngestionEndpoint) -> None:
    endpoint_id = endpoint.id
    await db.execute(delete(WebhookEvent).where(WebhookEvent.endpoint_id == endpoint_id))
    await db.delete(endpoint)
    await db.commit()
    logger.info("Ingestion endpoint deleted", extra={"endpoint_id": str(endpoint_id)})


async def rotate_secret(db: AsyncSession, endpoint: IngestionEndpoint) -> str:
    endpoint.secret = generate_secret()
    endpoint.updated_at = utcnow()
    await db.commit()
    logger.info("Endpoint secret rotated", extra={"endpoint_id": str(endpoint.id)})
    return endpoint.secret


async def list_events(
    db: AsyncSession,
    endpoint_id: uuid.UUID,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[WebhookEvent], int]:
    """Newest first. Returns (page of events, total matching)."""
    conditions = [WebhookEvent.endpoint_id == endpoint_id]
    if status:
        conditions.append(WebhookEvent.status == status)

    total = await db.scalar(select(func.count(WebhookEvent.id)).where(*conditions))
    result = await db.execute(
        select(WebhookEvent)
        .where(*conditions)
        .order_by(WebhookEvent.created_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


# ---------------------------------------------------------------------------
# Test delivery
# ---------------------------------------------------------------------------

def sample_payload(source_kind: str, now: Optional[datetime] = None) -> dict:
    """A representative payload for each source kind, used by test deliveries."""
    now = now or utcnow()
    samples = {
        SourceKind.GDACS.value: {
            "name": "Test Earthquake Event",
            "description": "This is a test GDACS alert for webhook verification",
            "country": "Test Country",
            "latitude": 35.6762,
            "longitude": 139.6503,
            "date": now.isoformat(),
        },
        SourceKind.USGS.value: {
            "properties": {
                "title": "M 5.0 - Test Location",
                "place": "Test Location",
                "mag": 5.0,
                "time": int(now.timestamp() * 1000),
            },
            "geometry": {"coordinates": [139.6503, 35.6762, 10]},
        },
        SourceKind.RELIEFWEB.value: {
            "fields": {
                "title": "Test ReliefWeb Report",
                "body": "This is a test report for webhook verification",
                "country": {"name": "Test Country"},
            },
        },
        SourceKind.WHO.value: {
            "title": "Test WHO Health Alert",
            "description": "This is a test health alert for webhook verification",
            "country": "Test Country",
        },
        SourceKind.CUSTOM.value: {
            "title": "Test Custom Event",
            "description": "This is a test custom webhook payload",
            "location": "Test Location",
        },
        SourceKind.SLACK.value: {
            "text": "Test crisis alert from Slack integration",
            "event_id": "test-123",
        },
        SourceKind.TEAMS.value: {
            "text": "Test crisis alert from Teams integration",
        },
        SourceKind.TWITTER.value: {
            "data": {
                "text": "Breaking: Test humanitarian crisis alert #crisis #humanitarian",
                "id": "test-tweet-123",
            },
        },
        SourceKind.RSS_FEED.value: {
            "item": {
                "title": "Test RSS Item",
                "description": "Test RSS feed item for webhook verification",
                "link": "https://example.com/test",
            },
        },
        SourceKind.ZAPIER.value: {
            "title": "Test Zapier Event",
            "description": "Event from Zapier integration",
        },
        SourceKind.IFTTT.value: {
            "title": "Test IFTTT Event",
            "description": "Event from IFTTT integration",
        },
    }
    return samples.get(source_kind, samples[SourceKind.CUSTOM.value])


async def send_test_payload(
    db: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    endpoint: IngestionEndpoint,
    engine: CorrelationEngine,
) -> WebhookEvent:
    """
    Sign a sample payload with the endpoint's secret, push it through the
    gateway and process it synchronously. Returns the resulting WebhookEvent.
    """
    body = json.dumps(sample_payload(endpoint.source_kind)).encode("utf-8")
    headers = {
        "content-type": "application/json",
        "x-webhook-signature": compute_signature(endpoint.secret, body),
        "user-agent": "AidWatch-Test-Delivery",
    }
    receipt = await receive(db, endpoint.path, body, headers)
    await process_webhook_event(session_factory, receipt.event_id, engine)
    return await db.get(WebhookEvent, receipt.event_id, populate_existing=True)
