"""
Operational alerting - surfaces failures that need a human.

Alert channels:
1. Structured log (always) - at ERROR level
2. Webhook (configurable) - Discord/Slack URL via ALERT_WEBHOOK_URL env var

Rate limiting: per-type cooldowns stored in Redis (SET NX EX) with an
in-memory fallback when Redis is unreachable.
"""
import logging
import time
from typing import Optional

import httpx

from aidwatch.utils.logging import get_correlation_id
from aidwatch.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

ALERT_COOLDOWN_SECONDS = 300

ALERT_COOLDOWN_OVERRIDES: dict[str, int] = {
    "webhook_signature_invalid": 900,
    "ai_budget_exceeded": 3600,
}

_local_cooldowns: dict[str, float] = {}  # alert_type -> expiry (monotonic)


def _get_cooldown_seconds(alert_type: str) -> int:
    return ALERT_COOLDOWN_OVERRIDES.get(alert_type, ALERT_COOLDOWN_SECONDS)


class AlertType:
    """Alert type constants."""
    WEBHOOK_SIGNATURE_INVALID = "webhook_signature_invalid"
    CLASSIFICATION_ERRORS = "classification_errors"
    JOB_FAILED = "job_failed"
    AI_BUDGET_EXCEEDED = "ai_budget_exceeded"


async def send_alert(
    alert_type: str,
    message: str,
    correlation_id: Optional[str] = None,
    severity: str = "error",
    extra: Optional[dict] = None,
) -> None:
    """
    Send an alert through all configured channels.
    Rate-limited per alert type to prevent alert storms.
    """
    if not await _acquire_cooldown(alert_type):
        return

    cid = correlation_id or get_correlation_id()

    log_message = f"ALERT [{alert_type}]: {message}"
    if cid:
        log_message += f" (correlation_id={cid})"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    await _send_webhook_alert(alert_type, message, severity, cid, extra)


async def _acquire_cooldown(alert_type: str) -> bool:
    """Atomically check-and-set alert cooldown. Returns True if alert should be sent."""
    cooldown = _get_cooldown_seconds(alert_type)

    try:
        redis = await get_redis()
        acquired = await redis.set(
            f"aidwatch:alert_cooldown:{alert_type}", "1", nx=True, ex=cooldown
        )
        return bool(acquired)
    except Exception as e:
        logger.debug("Alert cooldown Redis check failed, using in-memory fallback: %s", str(e))
        now = time.monotonic()
        if now < _local_cooldowns.get(alert_type, 0):
            return False
        _local_cooldowns[alert_type] = now + cooldown
        return True


async def _send_webhook_alert(
    alert_type: str,
    message: str,
    severity: str,
    correlation_id: Optional[str],
    extra: Optional[dict],
) -> None:
    """Send alert to configured webhook (Discord/Slack)."""
    from aidwatch.config import get_settings

    webhook_url = get_settings().alert_webhook_url
    if not webhook_url:
        return

    severity_emoji = {"critical": "\U0001f6a8", "error": "❌", "warning": "⚠️"}.get(
        severity, "ℹ️"
    )
    content = f"{severity_emoji} **{alert_type}**\n{message}"
    if correlation_id:
        content += f"\n`correlation_id: {correlation_id}`"
    if extra:
        for key, val in extra.items():
            content += f"\n`{key}: {val}`"

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            await client.post(webhook_url, json={"content": content})
    except httpx.HTTPError as e:
        logger.warning("Failed to send webhook alert: %s", str(e))
