"""
Ingestion gateway - accepts a raw webhook payload for a registered endpoint.

Resolve endpoint -> verify signature (if one was sent) -> parse JSON ->
store WebhookEvent(PENDING) -> bump the endpoint's received counter.
Processing happens later, off the request path. Rejected payloads are never
stored. No dedup here: a replayed payload becomes a second WebhookEvent.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.models.enums import WebhookEventStatus
from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.utils.alerting import AlertType, send_alert
from aidwatch.utils.dates import utcnow
from aidwatch.utils.logging import get_correlation_id
from aidwatch.utils.webhook_signatures import (
    compute_payload_hash,
    extract_signature,
    verify_signature,
)

logger = logging.getLogger(__name__)

# Headers never persisted with the payload
_REDACTED_HEADERS = {"authorization", "cookie", "x-api-key"}


class IngestionError(Exception):
    """Base class for synchronous receipt rejections."""
    status_code = 400


class EndpointNotFoundError(IngestionError):
    status_code = 404


class EndpointInactiveError(IngestionError):
    status_code = 403


class InvalidSignatureError(IngestionError):
    status_code = 401


class InvalidPayloadError(IngestionError):
    status_code = 400


@dataclass(frozen=True)
class ReceiptResult:
    accepted: bool
    event_id: uuid.UUID


def _storable_headers(headers: Mapping[str, str]) -> dict:
    return {
        k.lower(): v for k, v in headers.items() if k.lower() not in _REDACTED_HEADERS
    }


async def get_endpoint_by_path(db: AsyncSession, path: str) -> Optional[IngestionEndpoint]:
    result = await db.execute(
        select(IngestionEndpoint).where(IngestionEndpoint.path == path)
    )
    return result.scalar_one_or_none()


async def receive(
    db: AsyncSession,
    path: str,
    raw_body: bytes,
    headers: Mapping[str, str],
    correlation_id: Optional[str] = None,
) -> ReceiptResult:
    """
    Store one incoming payload. Commits before returning so the WebhookEvent
    is visible to the asynchronous processor.

    Raises:
        EndpointNotFoundError: unknown path
        EndpointInactiveError: endpoint disabled
        InvalidSignatureError: signature header present but does not match
        InvalidPayloadError: body is not JSON
    """
    endpoint = await get_endpoint_by_path(db, path)
    if endpoint is None:
        raise EndpointNotFoundError("Webhook endpoint not found")
    if not endpoint.is_active:
        raise EndpointInactiveError("Webhook is inactive")

    signature = extract_signature(headers)
    if signature is not None and not verify_signature(endpoint.secret, signature, raw_body):
        logger.warning(
            "Invalid webhook signature for endpoint %s",
            endpoint.name,
            extra={"endpoint_id": str(endpoint.id)},
        )
        await send_alert(
            AlertType.WEBHOOK_SIGNATURE_INVALID,
            f"Invalid signature on endpoint '{endpoint.name}'",
            severity="warning",
            extra={"endpoint_id": str(endpoint.id)},
        )
        raise InvalidSignatureError("Invalid signature")

    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(f"Body is not valid JSON: {e}") from e

    now = utcnow()
    webhook_event = WebhookEvent(
        id=uuid.uuid4(),
        endpoint_id=endpoint.id,
        payload=payload,
        headers=_storable_headers(headers),
        payload_hash=compute_payload_hash(raw_body),
        status=WebhookEventStatus.PENDING.value,
        correlation_id=correlation_id or get_correlation_id(),
        created_at=now,
    )
    db.add(webhook_event)

    await db.execute(
        update(IngestionEndpoint)
        .where(IngestionEndpoint.id == endpoint.id)
        .values(
            total_received=IngestionEndpoint.total_received + 1,
            last_received_at=now,
        )
    )
    await db.commit()

    logger.info(
        "Webhook received on %s (%d bytes)",
        endpoint.name, len(raw_body),
        extra={"webhook_event_id": str(webhook_event.id), "endpoint_id": str(endpoint.id)},
    )
    return ReceiptResult(accepted=True, event_id=webhook_event.id)
