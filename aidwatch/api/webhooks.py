"""
Webhook routes - public receipt endpoint plus endpoint-registry administration.

Receipt only acknowledges: the payload is stored PENDING and handed to the
processing queue; the outcome is visible later on the WebhookEvent.
"""
import logging
import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.database import get_db
from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.schemas.api_responses import (
    EndpointCreatedResponse,
    EndpointCreateRequest,
    EndpointSummary,
    EndpointUpdateRequest,
    ReceiptResponse,
    SecretRotatedResponse,
    WebhookEventListResponse,
    WebhookEventSummary,
)
from aidwatch.services import endpoint_registry
from aidwatch.services.ingestion import IngestionError, receive
from aidwatch.utils.logging import get_correlation_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


def _endpoint_summary(endpoint: IngestionEndpoint) -> dict:
    return {
        "id": str(endpoint.id),
        "name": endpoint.name,
        "description": endpoint.description,
        "source_kind": endpoint.source_kind,
        "path": endpoint.path,
        "secret_masked": endpoint_registry.mask_secret(endpoint.secret),
        "is_active": endpoint.is_active,
        "keywords": endpoint.keywords or [],
        "regions": endpoint.regions or [],
        "min_severity": endpoint.min_severity,
        "total_received": endpoint.total_received or 0,
        "total_failed": endpoint.total_failed or 0,
        "last_received_at": endpoint.last_received_at,
        "created_at": endpoint.created_at,
    }


def _event_summary(event: WebhookEvent) -> WebhookEventSummary:
    return WebhookEventSummary(
        id=str(event.id),
        status=event.status,
        event_id=str(event.event_id) if event.event_id else None,
        error=event.error,
        payload=event.payload,
        created_at=event.created_at,
        processed_at=event.processed_at,
    )


async def _get_or_404(db: AsyncSession, endpoint_id: uuid.UUID) -> IngestionEndpoint:
    endpoint = await endpoint_registry.get_endpoint(db, endpoint_id)
    if endpoint is None:
        raise HTTPException(status_code=404, detail="Webhook not found")
    return endpoint


# ---------------------------------------------------------------------------
# Public receipt
# ---------------------------------------------------------------------------

@router.post("/receive/{path}", status_code=202, response_model=ReceiptResponse)
async def receive_webhook(
    path: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Accept any JSON body for a registered endpoint path."""
    body = await request.body()
    cid = get_correlation_id()
    try:
        receipt = await receive(db, path, body, dict(request.headers), correlation_id=cid)
    except IngestionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    request.app.state.webhook_queue.submit(receipt.event_id, cid)
    return ReceiptResponse(event_id=str(receipt.event_id))


# ---------------------------------------------------------------------------
# Registry administration
# ---------------------------------------------------------------------------

@router.get("", response_model=list[EndpointSummary])
async def list_webhooks(db: AsyncSession = Depends(get_db)):
    endpoints = await endpoint_registry.list_endpoints(db)
    return [EndpointSummary(**_endpoint_summary(e)) for e in endpoints]


@router.post("", status_code=201, response_model=EndpointCreatedResponse)
async def create_webhook(
    payload: EndpointCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        endpoint = await endpoint_registry.create_endpoint(
            db,
            name=payload.name,
            source_kind=payload.source_kind,
            description=payload.description,
            keywords=payload.keywords,
            regions=payload.regions,
            min_severity=payload.min_severity,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return EndpointCreatedResponse(
        **_endpoint_summary(endpoint),
        receipt_url=endpoint_registry.receipt_url(endpoint.path),
        secret=endpoint.secret,
    )


@router.get("/{endpoint_id}", response_model=EndpointSummary)
async def get_webhook(endpoint_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    endpoint = await _get_or_404(db, endpoint_id)
    return EndpointSummary(**_endpoint_summary(endpoint))


@router.patch("/{endpoint_id}", response_model=EndpointSummary)
async def update_webhook(
    endpoint_id: uuid.UUID,
    payload: EndpointUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    endpoint = await _get_or_404(db, endpoint_id)
    try:
        endpoint = await endpoint_registry.update_endpoint(
            db, endpoint, payload.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EndpointSummary(**_endpoint_summary(endpoint))


@router.delete("/{endpoint_id}")
async def delete_webhook(endpoint_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    endpoint = await _get_or_404(db, endpoint_id)
    await endpoint_registry.delete_endpoint(db, endpoint)
    return {"success": True, "message": "Webhook deleted"}


@router.post("/{endpoint_id}/rotate-secret", response_model=SecretRotatedResponse)
async def rotate_webhook_secret(endpoint_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    endpoint = await _get_or_404(db, endpoint_id)
    secret = await endpoint_registry.rotate_secret(db, endpoint)
    return SecretRotatedResponse(id=str(endpoint.id), secret=secret)


@router.get("/{endpoint_id}/events", response_model=WebhookEventListResponse)
async def list_webhook_events(
    endpoint_id: uuid.UUID,
    status: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    await _get_or_404(db, endpoint_id)
    events, total = await endpoint_registry.list_events(
        db, endpoint_id, status=status.upper() if status else None, page=page, limit=limit,
    )
    return WebhookEventListResponse(
        events=[_event_summary(e) for e in events],
        total=total,
        page=page,
        pages=max(math.ceil(total / limit), 1),
    )


@router.post("/{endpoint_id}/test", response_model=WebhookEventSummary)
async def send_test_webhook(
    endpoint_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Sign and deliver a sample payload, processing it before responding."""
    endpoint = await _get_or_404(db, endpoint_id)
    try:
        webhook_event = await endpoint_registry.send_test_payload(
            db, request.app.state.session_factory, endpoint, request.app.state.correlation_engine,
        )
    except IngestionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return _event_summary(webhook_event)
