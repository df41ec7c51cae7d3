"""
Webhook event - every received payload is recorded before processing.
Tracks the processing lifecycle PENDING -> PROCESSING -> SUCCESS/FAILED/SKIPPED.
A worker claims a row by moving it to PROCESSING and stamping processing_started_at.
Terminal rows are never reprocessed automatically.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from aidwatch.database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    endpoint_id = Column(
        UUID(as_uuid=True),
        ForeignKey("ingestion_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payload = Column(JSONB, nullable=True)
    headers = Column(JSONB, nullable=True)
    payload_hash = Column(String(64), nullable=False, index=True)
    status = Column(
        String(20), nullable=False, default="PENDING", server_default="PENDING", index=True
    )
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=True)
    error = Column(Text, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    processing_started_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    endpoint = relationship("IngestionEndpoint", back_populates="events")

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.id} status={self.status}>"
