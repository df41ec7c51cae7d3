"""
Crisis model - long-lived aggregate for one ongoing emergency situation.
Created from a single qualifying Event; later Events may only raise its severity.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Float, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from aidwatch.database import Base


class Crisis(Base):
    __tablename__ = "crises"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, default="UNKNOWN"
    )  # UNKNOWN < LOW < MEDIUM < HIGH < CRITICAL
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="EMERGING"
    )  # EMERGING, DEVELOPING, ONGOING, STABILIZING, RESOLVED
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Geo
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    country: Mapped[Optional[str]] = mapped_column(String(100))
    region: Mapped[Optional[str]] = mapped_column(String(255))
    location: Mapped[Optional[str]] = mapped_column(String(255))

    tags: Mapped[list] = mapped_column(JSONB, default=list)

    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    events: Mapped[list["Event"]] = relationship(back_populates="crisis")
    summaries: Mapped[list["Summary"]] = relationship(
        back_populates="crisis", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_crises_type_status", "type", "status"),
        Index("ix_crises_created_at", "created_at"),
        Index("ix_crises_detected_at", "detected_at"),
    )

    def __repr__(self) -> str:
        return f"<Crisis {self.title[:40]!r} {self.type}/{self.severity}>"
