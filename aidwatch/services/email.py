"""
Notification email - transport and rendering for crisis alerts and digests.

Transport contract: send(to, subject, html) -> {"success": bool, "message_id": str|None, "error": str|None}
SendGrid when an API key is configured; otherwise a log-only transport that
records what would have been sent.
"""
import asyncio
import html
import logging
import re
import uuid
from typing import Optional, Protocol, Sequence

from aidwatch.config import get_settings
from aidwatch.models.alert_subscription import AlertSubscription
from aidwatch.models.crisis import Crisis

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "CRITICAL": "#dc2626",
    "HIGH": "#ea580c",
    "MEDIUM": "#ca8a04",
    "LOW": "#16a34a",
    "UNKNOWN": "#6b7280",
}


class EmailTransport(Protocol):
    async def send(self, to: str, subject: str, html_content: str) -> dict:
        ...


def _mask(email: str) -> str:
    return email[:20] + "***"


def _html_to_text(html_content: str) -> str:
    text = re.sub(r"<(br|/p|/div|/h\d|/li)[^>]*>", "\n", html_content, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return re.sub(r"\n\s*\n+", "\n\n", html.unescape(text)).strip()


class SendGridTransport:
    """Delivers through the SendGrid v3 API (SDK calls run in the default executor)."""

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    async def send(self, to: str, subject: str, html_content: str) -> dict:
        try:
            from sendgrid import SendGridAPIClient
            from sendgrid.helpers.mail import Content, Email, Mail, To

            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to),
                subject=subject,
            )
            message.content = [
                Content("text/plain", _html_to_text(html_content)),
                Content("text/html", html_content),
            ]

            sg = SendGridAPIClient(api_key=self.api_key)
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, lambda: sg.send(message))
            message_id = response.headers.get("X-Message-Id", "") or None

            logger.info("Notification email sent: to=%s subject=%s", _mask(to), subject[:60])
            return {"success": True, "message_id": message_id, "error": None}
        except Exception as e:
            logger.error("Notification email failed: to=%s error=%s", _mask(to), str(e))
            return {"success": False, "message_id": None, "error": str(e)}


class LogOnlyTransport:
    """No outbound delivery; logs the message and reports success."""

    def __init__(self):
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, html_content: str) -> dict:
        message_id = f"log-{uuid.uuid4().hex[:16]}"
        self.sent.append({"to": to, "subject": subject, "html": html_content})
        logger.info(
            "Email (log-only): to=%s subject=%s size=%d",
            _mask(to), subject[:60], len(html_content),
        )
        return {"success": True, "message_id": message_id, "error": None}


def build_transport() -> EmailTransport:
    settings = get_settings()
    if settings.sendgrid_api_key:
        return SendGridTransport(
            settings.sendgrid_api_key,
            settings.sendgrid_from_email,
            settings.sendgrid_from_name,
        )
    logger.warning("SENDGRID_API_KEY not set - notification emails will only be logged")
    return LogOnlyTransport()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _links(subscription: AlertSubscription, base_url: str) -> str:
    token = html.escape(subscription.unsubscribe_token or "")
    return (
        '<p style="color: #6b7280; font-size: 12px; margin-top: 32px;">'
        "You are receiving this because you subscribed to AidWatch alerts. "
        f'<a href="{base_url}/manage-subscription?token={token}">Manage preferences</a> · '
        f'<a href="{base_url}/unsubscribe?token={token}">Unsubscribe</a>'
        "</p>"
    )


def _crisis_block(crisis: Crisis, base_url: str, detail: bool) -> str:
    color = SEVERITY_COLORS.get(crisis.severity, SEVERITY_COLORS["UNKNOWN"])
    location = html.escape(crisis.location or crisis.country or "Unknown location")
    crisis_type = html.escape(crisis.type.replace("_", " ").title())
    block = (
        '<div style="border-left: 4px solid {color}; padding: 12px 16px; margin: 16px 0; background: #f9fafb;">'
        '<span style="background: {color}; color: white; padding: 2px 8px; border-radius: 4px; font-size: 12px;">{severity}</span>'
        '<h3 style="margin: 8px 0 4px;"><a href="{url}" style="color: #111;">{title}</a></h3>'
        '<p style="margin: 0; color: #4b5563; font-size: 14px;">{crisis_type} · {location}</p>'
    ).format(
        color=color,
        severity=html.escape(crisis.severity),
        url=f"{base_url}/crises/{crisis.id}",
        title=html.escape(crisis.title),
        crisis_type=crisis_type,
        location=location,
    )
    if detail and crisis.description:
        block += f'<p style="margin: 12px 0 0; font-size: 14px;">{html.escape(crisis.description)}</p>'
    return block + "</div>"


def _wrap(heading: str, body: str) -> str:
    return (
        '<div style="font-family: -apple-system, BlinkMacSystemFont, \'Segoe UI\', Roboto, sans-serif; '
        'max-width: 600px; margin: 0 auto; padding: 24px;">'
        f'<h2 style="color: #111; margin: 0 0 16px;">{heading}</h2>'
        f"{body}</div>"
    )


def crisis_alert_subject(crisis: Crisis) -> str:
    return f"Crisis Alert: {crisis.title} - {crisis.location or crisis.country or 'Unknown Location'}"


def render_crisis_alert(
    crisis: Crisis,
    subscription: AlertSubscription,
    base_url: Optional[str] = None,
) -> tuple[str, str]:
    """Returns (subject, html) for an immediate single-crisis alert."""
    base_url = (base_url or get_settings().dashboard_base_url).rstrip("/")
    greeting = f"<p>Hi {html.escape(subscription.name)},</p>" if subscription.name else ""
    body = (
        greeting
        + "<p>A new crisis matching your alert preferences has been detected.</p>"
        + _crisis_block(crisis, base_url, detail=True)
        + f'<p><a href="{base_url}/crises/{crisis.id}">View full details</a></p>'
        + _links(subscription, base_url)
    )
    return crisis_alert_subject(crisis), _wrap("New Crisis Detected", body)


def digest_subject(label: str, count: int) -> str:
    noun = "Update" if count == 1 else "Updates"
    return f"AidWatch {label} Digest - {count} Crisis {noun}"


def render_digest(
    crises: Sequence[Crisis],
    subscription: AlertSubscription,
    label: str,
    base_url: Optional[str] = None,
) -> tuple[str, str]:
    """Returns (subject, html) for a Daily/Weekly digest. crises are pre-sorted."""
    base_url = (base_url or get_settings().dashboard_base_url).rstrip("/")
    greeting = f"<p>Hi {html.escape(subscription.name)},</p>" if subscription.name else ""
    blocks = "".join(_crisis_block(c, base_url, detail=False) for c in crises)
    body = (
        greeting
        + f"<p>{len(crises)} crisis update(s) matched your preferences.</p>"
        + blocks
        + f'<p><a href="{base_url}/crises">Open the dashboard</a></p>'
        + _links(subscription, base_url)
    )
    return digest_subject(label, len(crises)), _wrap(f"Your {label} Crisis Digest", body)
