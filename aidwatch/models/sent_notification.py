"""
Sent notification ledger - one row per delivery attempt.
The unique (subscription_id, crisis_id) pair is what makes immediate alerts
exactly-once; digest rows carry a NULL crisis_id and never collide.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from aidwatch.database import Base


class SentNotification(Base):
    __tablename__ = "sent_notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("alert_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )
    crisis_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crises.id", ondelete="SET NULL")
    )
    cadence: Mapped[str] = mapped_column(String(20), nullable=False, default="IMMEDIATE")
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING"
    )  # PENDING, SENT, FAILED, BOUNCED
    message_id: Mapped[Optional[str]] = mapped_column(String(255))
    error: Mapped[Optional[str]] = mapped_column(Text)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    subscription: Mapped["AlertSubscription"] = relationship(back_populates="notifications")

    __table_args__ = (
        UniqueConstraint("subscription_id", "crisis_id", name="uq_sent_notification_pair"),
        Index("ix_sent_notifications_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<SentNotification {self.subscription_id} crisis={self.crisis_id} {self.status}>"
