"""
Event model - one classified, persisted signal.
Only crisis_id and analyzed are mutated after creation (by the correlation engine).
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from aidwatch.database import Base


class Event(Base):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String(1000), nullable=False)  # URL or upstream id
    source_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default="OTHER"
    )  # NEWS, SOCIAL_MEDIA, GOVERNMENT, UN_REPORT, NGO_REPORT, SATELLITE, SENSOR, OTHER

    # Geo
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    location: Mapped[Optional[str]] = mapped_column(String(255))

    # Classifier output
    sentiment: Mapped[Optional[float]] = mapped_column(Float)
    relevance: Mapped[Optional[float]] = mapped_column(Float)
    entities: Mapped[Optional[dict]] = mapped_column(JSONB)

    crisis_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crises.id", ondelete="SET NULL")
    )
    analyzed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    crisis: Mapped[Optional["Crisis"]] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_events_crisis_id", "crisis_id"),
        Index("ix_events_analyzed", "analyzed"),
        Index("ix_events_published_at", "published_at"),
        Index("ix_events_source", "source"),
    )

    def __repr__(self) -> str:
        return f"<Event {self.title[:40]!r} crisis={self.crisis_id}>"
