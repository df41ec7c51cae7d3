"""Initial schema - intake, correlation and notification tables for AidWatch.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Ingestion endpoints ("webhooks" in the dashboard)
    op.create_table(
        "ingestion_endpoints",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("source_kind", sa.String(30), nullable=False),
        sa.Column("path", sa.String(64), nullable=False, unique=True),
        sa.Column("secret", sa.String(128), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("keywords", postgresql.JSONB, server_default="[]"),
        sa.Column("regions", postgresql.JSONB, server_default="[]"),
        sa.Column("min_severity", sa.String(20)),
        sa.Column("total_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_received_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ingestion_endpoints_is_active", "ingestion_endpoints", ["is_active"])

    # Crises
    op.create_table(
        "crises",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="UNKNOWN"),
        sa.Column("status", sa.String(20), nullable=False, server_default="EMERGING"),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0"),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("country", sa.String(100)),
        sa.Column("region", sa.String(255)),
        sa.Column("location", sa.String(255)),
        sa.Column("tags", postgresql.JSONB, server_default="[]"),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_crises_type_status", "crises", ["type", "status"])
    op.create_index("ix_crises_created_at", "crises", ["created_at"])
    op.create_index("ix_crises_detected_at", "crises", ["detected_at"])

    # Events
    op.create_table(
        "events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("source", sa.String(1000), nullable=False),
        sa.Column("source_type", sa.String(30), nullable=False, server_default="OTHER"),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("location", sa.String(255)),
        sa.Column("sentiment", sa.Float),
        sa.Column("relevance", sa.Float),
        sa.Column("entities", postgresql.JSONB),
        sa.Column(
            "crisis_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crises.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("analyzed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_crisis_id", "events", ["crisis_id"])
    op.create_index("ix_events_analyzed", "events", ["analyzed"])
    op.create_index("ix_events_published_at", "events", ["published_at"])
    op.create_index("ix_events_source", "events", ["source"])

    # Webhook events - every received payload, before processing
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "endpoint_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingestion_endpoints.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("headers", postgresql.JSONB, nullable=True),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column(
            "event_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("events.id"), nullable=True,
        ),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_webhook_events_endpoint_id", "webhook_events", ["endpoint_id"])
    op.create_index("ix_webhook_events_payload_hash", "webhook_events", ["payload_hash"])
    op.create_index("ix_webhook_events_status", "webhook_events", ["status"])
    op.create_index("ix_webhook_events_correlation_id", "webhook_events", ["correlation_id"])

    # Summaries
    op.create_table(
        "summaries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "crisis_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crises.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(20), nullable=False, server_default="SITUATION"),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("model", sa.String(100)),
        sa.Column("tokens", sa.Integer),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_summaries_crisis_id", "summaries", ["crisis_id"])

    # Alert subscriptions
    op.create_table(
        "alert_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100)),
        sa.Column("regions", postgresql.JSONB, server_default="[]"),
        sa.Column("crisis_types", postgresql.JSONB, server_default="[]"),
        sa.Column("min_severity", sa.String(20), nullable=False, server_default="MEDIUM"),
        sa.Column("cadence", sa.String(20), nullable=False, server_default="IMMEDIATE"),
        sa.Column("email_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("verification_token", sa.String(64), unique=True),
        sa.Column("unsubscribe_token", sa.String(64), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_notified_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_alert_subscriptions_email", "alert_subscriptions", ["email"])
    op.create_index(
        "ix_alert_subscriptions_delivery", "alert_subscriptions",
        ["is_active", "email_verified", "cadence"],
    )

    # Notification ledger
    op.create_table(
        "sent_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "subscription_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("alert_subscriptions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "crisis_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("crises.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("cadence", sa.String(20), nullable=False, server_default="IMMEDIATE"),
        sa.Column("subject", sa.String(500), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("message_id", sa.String(255)),
        sa.Column("error", sa.Text),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("subscription_id", "crisis_id", name="uq_sent_notification_pair"),
    )
    op.create_index("ix_sent_notifications_status", "sent_notifications", ["status"])


def downgrade() -> None:
    op.drop_table("sent_notifications")
    op.drop_table("alert_subscriptions")
    op.drop_table("summaries")
    op.drop_table("webhook_events")
    op.drop_table("events")
    op.drop_table("crises")
    op.drop_table("ingestion_endpoints")
