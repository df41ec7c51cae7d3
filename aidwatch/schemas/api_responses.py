"""
API request/response schemas for the webhook registry and job routes.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from aidwatch.models.enums import SourceKind


class ReceiptResponse(BaseModel):
    success: bool = True
    message: str = "Webhook received and queued for processing"
    event_id: str


class EndpointCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    source_kind: SourceKind
    keywords: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    min_severity: Optional[str] = None


class EndpointUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    keywords: Optional[list[str]] = None
    regions: Optional[list[str]] = None
    min_severity: Optional[str] = None


class EndpointSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    source_kind: str
    path: str
    secret_masked: str
    is_active: bool
    keywords: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    min_severity: Optional[str] = None
    total_received: int = 0
    total_failed: int = 0
    last_received_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EndpointCreatedResponse(EndpointSummary):
    """Returned once at creation; the only response carrying the full secret."""
    receipt_url: str
    secret: str


class SecretRotatedResponse(BaseModel):
    id: str
    secret: str
    message: str = "Secret rotated. The previous secret no longer validates."


class WebhookEventSummary(BaseModel):
    id: str
    status: str
    event_id: Optional[str] = None
    error: Optional[str] = None
    payload: Any = None
    created_at: datetime
    processed_at: Optional[datetime] = None


class WebhookEventListResponse(BaseModel):
    events: list[WebhookEventSummary]
    total: int
    page: int
    pages: int


class JobTriggerResponse(BaseModel):
    job: str
    stats: dict


class JobStatusResponse(BaseModel):
    jobs: dict
    processing: dict
    queue: dict
