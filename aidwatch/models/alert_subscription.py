"""
Alert subscription - a subscriber's standing notification preference.
Created by the signup flow; read-only to the notification dispatcher
except for last_notified_at.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from aidwatch.database import Base


class AlertSubscription(Base):
    __tablename__ = "alert_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100))

    # Preferences - empty lists mean "all"
    regions: Mapped[list] = mapped_column(JSONB, default=list)
    crisis_types: Mapped[list] = mapped_column(JSONB, default=list)
    min_severity: Mapped[str] = mapped_column(String(20), default="MEDIUM", nullable=False)
    cadence: Mapped[str] = mapped_column(
        String(20), default="IMMEDIATE", nullable=False
    )  # IMMEDIATE, DAILY, WEEKLY

    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    unsubscribe_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    notifications: Mapped[list["SentNotification"]] = relationship(
        back_populates="subscription", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_alert_subscriptions_email", "email"),
        Index("ix_alert_subscriptions_delivery", "is_active", "email_verified", "cadence"),
    )

    def __repr__(self) -> str:
        return f"<AlertSubscription {self.email} {self.cadence}>"
