"""
Database models - import all models here so Alembic can discover them.
"""
from aidwatch.models.ingestion_endpoint import IngestionEndpoint
from aidwatch.models.webhook_event import WebhookEvent
from aidwatch.models.event import Event
from aidwatch.models.crisis import Crisis
from aidwatch.models.summary import Summary
from aidwatch.models.alert_subscription import AlertSubscription
from aidwatch.models.sent_notification import SentNotification

__all__ = [
    "IngestionEndpoint",
    "WebhookEvent",
    "Event",
    "Crisis",
    "Summary",
    "AlertSubscription",
    "SentNotification",
]
