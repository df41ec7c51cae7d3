"""
Source normalizers - map arbitrary webhook payloads to a RawSignal.

One pure function per source kind. Each tries several well-known field names
for title, description, url, location, coordinates and timestamp. A payload
with neither a title nor a description yields None (unparseable).

No I/O, no clock, no shared state: when a payload carries no URL or id, the
fingerprint is derived from the payload hash supplied by the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from dateutil import parser as date_parser

from aidwatch.models.enums import SourceKind
from aidwatch.schemas.signals import RawSignal

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 2000
MESSAGE_TITLE_LENGTH = 100
FINGERPRINT_HASH_PREFIX = 16

Payload = dict[str, Any]


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _first_text(data: Payload, *keys: str) -> str:
    """First non-empty value among keys, as a stripped string."""
    for key in keys:
        value = data.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _first_number(data: Payload, *keys: str) -> Optional[float]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
    return None


def _sub_dict(data: Payload, *keys: str) -> Payload:
    """First nested object among keys, else the payload itself."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, dict):
            return value
    return data


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO / RFC 2822 strings via dateutil; naive results are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        value = value.get("created") or value.get("original")
        if not value:
            return None
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable timestamp %r: %s", value, str(e))
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch(value: Any, millis: bool = False) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value / 1000 if millis else value, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def _fallback_fingerprint(kind: SourceKind, payload_hash: str) -> str:
    return f"{kind.value.lower()}-webhook-{payload_hash[:FINGERPRINT_HASH_PREFIX]}"


def _build(
    title: str,
    description: str,
    fingerprint: str,
    location: str = "",
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    occurred_at: Optional[datetime] = None,
) -> RawSignal:
    return RawSignal(
        title=title[:MAX_TITLE_LENGTH],
        description=description[:MAX_DESCRIPTION_LENGTH],
        origin_fingerprint=fingerprint,
        location=location or None,
        latitude=latitude,
        longitude=longitude,
        occurred_at=occurred_at,
    )


# ---------------------------------------------------------------------------
# Per-source normalizers
# ---------------------------------------------------------------------------

def normalize_gdacs(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    props = _sub_dict(payload, "properties")
    name = _first_text(props, "name", "title", "eventname")
    description = _first_text(props, "description", "message", "htmldescription")
    if not name and not description:
        return None
    return _build(
        title=f"GDACS Alert: {name or 'Unknown Event'}",
        description=description,
        fingerprint=_first_text(props, "url", "link")
        or _fallback_fingerprint(SourceKind.GDACS, payload_hash),
        location=_first_text(props, "country", "location"),
        latitude=_first_number(props, "latitude", "lat"),
        longitude=_first_number(props, "longitude", "lon", "lng"),
        occurred_at=_parse_timestamp(props.get("date") or props.get("fromdate")),
    )


def normalize_usgs(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    props = _sub_dict(payload, "properties")
    title = _first_text(props, "title")
    place = _first_text(props, "place")
    if not title and not place:
        return None

    magnitude = props.get("mag")
    description = f"Magnitude {magnitude if magnitude is not None else 'N/A'}."
    if place:
        description += f" {place}"

    latitude = longitude = None
    geometry = payload.get("geometry")
    if isinstance(geometry, dict):
        coords = geometry.get("coordinates") or []
        if len(coords) >= 2 and all(isinstance(c, (int, float)) for c in coords[:2]):
            longitude, latitude = float(coords[0]), float(coords[1])

    return _build(
        title=f"Earthquake: {title or place}",
        description=description,
        fingerprint=_first_text(props, "url", "id", "ids")
        or _first_text(payload, "id")
        or _fallback_fingerprint(SourceKind.USGS, payload_hash),
        location=place,
        latitude=latitude,
        longitude=longitude,
        occurred_at=_from_epoch(props.get("time"), millis=True),
    )


def normalize_reliefweb(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    fields = _sub_dict(payload, "fields")
    title = _first_text(fields, "title", "name")
    body = _first_text(fields, "body", "description")
    if not title and not body:
        return None

    country = fields.get("country")
    if isinstance(country, list):
        country = country[0] if country else None
    location = _first_text(country, "name") if isinstance(country, dict) else str(country or "")

    return _build(
        title=title or body[:MESSAGE_TITLE_LENGTH],
        description=body[:1000],
        fingerprint=_first_text(fields, "url", "url_alias")
        or _fallback_fingerprint(SourceKind.RELIEFWEB, payload_hash),
        location=location,
        occurred_at=_parse_timestamp(fields.get("date")),
    )


def normalize_who(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    headline = _first_text(payload, "title", "headline")
    description = _first_text(payload, "description", "body", "content")
    if not headline and not description:
        return None
    return _build(
        title=f"WHO Alert: {headline or 'Health Alert'}",
        description=description,
        fingerprint=_first_text(payload, "url", "link")
        or _fallback_fingerprint(SourceKind.WHO, payload_hash),
        location=_first_text(payload, "country", "region"),
        occurred_at=_parse_timestamp(payload.get("date")),
    )


def normalize_slack(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    event = payload.get("event") if isinstance(payload.get("event"), dict) else {}
    text = _first_text(payload, "text") or _first_text(event, "text")
    if not text:
        return None
    event_id = _first_text(payload, "event_id") or payload_hash[:FINGERPRINT_HASH_PREFIX]
    return _build(
        title=text[:MESSAGE_TITLE_LENGTH],
        description=text,
        fingerprint=f"slack-{event_id}",
        occurred_at=_from_epoch(payload.get("event_time")),
    )


def normalize_teams(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    text = _first_text(payload, "text", "body", "message")
    if not text:
        return None
    message_id = _first_text(payload, "id") or payload_hash[:FINGERPRINT_HASH_PREFIX]
    return _build(
        title=text[:MESSAGE_TITLE_LENGTH],
        description=text,
        fingerprint=f"teams-{message_id}",
        occurred_at=_parse_timestamp(payload.get("timestamp")),
    )


def normalize_twitter(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    tweet = _sub_dict(payload, "data", "tweet")
    text = _first_text(tweet, "text", "full_text")
    if not text:
        return None
    tweet_id = _first_text(tweet, "id", "id_str") or payload_hash[:FINGERPRINT_HASH_PREFIX]
    return _build(
        title=text[:MESSAGE_TITLE_LENGTH],
        description=text,
        fingerprint=f"twitter-{tweet_id}",
        occurred_at=_parse_timestamp(tweet.get("created_at")),
    )


def normalize_rss(payload: Payload, payload_hash: str) -> Optional[RawSignal]:
    item = _sub_dict(payload, "item", "entry")
    title = _first_text(item, "title")
    description = _first_text(item, "description", "content", "summary")
    if not title and not description:
        return None
    return _build(
        title=title or description[:MESSAGE_TITLE_LENGTH],
        description=description,
        fingerprint=_first_text(item, "link", "url", "guid", "id")
        or _fallback_fingerprint(SourceKind.RSS_FEED, payload_hash),
        location=_first_text(item, "location", "country"),
        occurred_at=_parse_timestamp(
            item.get("pubDate") or item.get("published") or item.get("updated")
        ),
    )


def normalize_generic(
    payload: Payload,
    payload_hash: str,
    kind: SourceKind = SourceKind.CUSTOM,
) -> Optional[RawSignal]:
    """Generic JSON: CUSTOM, ZAPIER, IFTTT and anything unrecognised."""
    title = _first_text(payload, "title", "name", "headline", "subject", "event")
    description = _first_text(
        payload, "description", "body", "content", "message", "text", "summary"
    )
    if not title and not description:
        return None
    return _build(
        title=title or description[:MESSAGE_TITLE_LENGTH],
        description=description or title,
        fingerprint=_first_text(payload, "url", "link", "source", "id")
        or _fallback_fingerprint(kind, payload_hash),
        location=_first_text(payload, "location", "country", "region"),
        latitude=_first_number(payload, "latitude", "lat"),
        longitude=_first_number(payload, "longitude", "lng", "lon"),
        occurred_at=_parse_timestamp(
            payload.get("date") or payload.get("timestamp") or payload.get("created_at")
        ),
    )


NORMALIZERS: dict[SourceKind, Callable[[Payload, str], Optional[RawSignal]]] = {
    SourceKind.GDACS: normalize_gdacs,
    SourceKind.USGS: normalize_usgs,
    SourceKind.RELIEFWEB: normalize_reliefweb,
    SourceKind.WHO: normalize_who,
    SourceKind.SLACK: normalize_slack,
    SourceKind.TEAMS: normalize_teams,
    SourceKind.TWITTER: normalize_twitter,
    SourceKind.RSS_FEED: normalize_rss,
}


def normalize(source_kind: str, payload: Any, payload_hash: str) -> Optional[RawSignal]:
    """
    Normalize a payload for the given source kind.
    Non-object payloads (arrays, scalars) are unparseable.
    """
    if not isinstance(payload, dict):
        return None
    try:
        kind = SourceKind(source_kind)
    except ValueError:
        kind = SourceKind.CUSTOM
    normalizer = NORMALIZERS.get(kind)
    if normalizer is None:
        return normalize_generic(payload, payload_hash, kind)
    return normalizer(payload, payload_hash)
