"""
Ingestion endpoint model - a registered push intake point ("webhook" in the dashboard).
Each endpoint owns a unique public path, a signing secret and a filter policy
(keywords / regions / minimum severity) applied before classification.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Boolean, Integer, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from aidwatch.database import Base


class IngestionEndpoint(Base):
    __tablename__ = "ingestion_endpoints"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    source_kind: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # GDACS, RELIEFWEB, USGS, WHO, CUSTOM, SLACK, TEAMS, TWITTER, RSS_FEED, ZAPIER, IFTTT
    path: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Filter policy
    keywords: Mapped[list] = mapped_column(JSONB, default=list)
    regions: Mapped[list] = mapped_column(JSONB, default=list)
    min_severity: Mapped[Optional[str]] = mapped_column(String(20))

    # Counters (incremented with UPDATE ... SET n = n + 1)
    total_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    events: Mapped[list["WebhookEvent"]] = relationship(
        back_populates="endpoint", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_ingestion_endpoints_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<IngestionEndpoint {self.name} ({self.source_kind})>"
