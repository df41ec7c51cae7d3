"""
Enumerations shared by the models, the pipeline and the API.
Values are stored as plain strings in the database.
"""
from enum import Enum
from typing import Optional


class Severity(str, Enum):
    UNKNOWN = "UNKNOWN"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "Severity":
        """Lenient conversion; anything unrecognised becomes UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def at_least(cls, minimum: "Severity") -> list[str]:
        """String values ranking at or above minimum, for SQL IN filters."""
        return [s.value for s in cls if s.rank >= minimum.rank]


_SEVERITY_RANK = {
    Severity.UNKNOWN: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class CrisisType(str, Enum):
    NATURAL_DISASTER = "NATURAL_DISASTER"
    CONFLICT = "CONFLICT"
    DISEASE_OUTBREAK = "DISEASE_OUTBREAK"
    FOOD_SECURITY = "FOOD_SECURITY"
    DISPLACEMENT = "DISPLACEMENT"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    ECONOMIC = "ECONOMIC"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CrisisType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return cls.OTHER


class CrisisStatus(str, Enum):
    EMERGING = "EMERGING"
    DEVELOPING = "DEVELOPING"
    ONGOING = "ONGOING"
    STABILIZING = "STABILIZING"
    RESOLVED = "RESOLVED"


OPEN_CRISIS_STATUSES = [
    CrisisStatus.EMERGING.value,
    CrisisStatus.DEVELOPING.value,
    CrisisStatus.ONGOING.value,
]


class WebhookEventStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    BOUNCED = "BOUNCED"


class Cadence(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class SourceKind(str, Enum):
    """Shape of the payloads an ingestion endpoint receives."""
    GDACS = "GDACS"
    RELIEFWEB = "RELIEFWEB"
    USGS = "USGS"
    WHO = "WHO"
    CUSTOM = "CUSTOM"
    SLACK = "SLACK"
    TEAMS = "TEAMS"
    TWITTER = "TWITTER"
    RSS_FEED = "RSS_FEED"
    ZAPIER = "ZAPIER"
    IFTTT = "IFTTT"


class SourceType(str, Enum):
    """Provenance category recorded on every Event."""
    NEWS = "NEWS"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    GOVERNMENT = "GOVERNMENT"
    UN_REPORT = "UN_REPORT"
    NGO_REPORT = "NGO_REPORT"
    SATELLITE = "SATELLITE"
    SENSOR = "SENSOR"
    OTHER = "OTHER"


SOURCE_KIND_TO_TYPE = {
    SourceKind.GDACS: SourceType.SATELLITE,
    SourceKind.RELIEFWEB: SourceType.UN_REPORT,
    SourceKind.USGS: SourceType.GOVERNMENT,
    SourceKind.WHO: SourceType.UN_REPORT,
    SourceKind.CUSTOM: SourceType.OTHER,
    SourceKind.SLACK: SourceType.SOCIAL_MEDIA,
    SourceKind.TEAMS: SourceType.OTHER,
    SourceKind.TWITTER: SourceType.SOCIAL_MEDIA,
    SourceKind.RSS_FEED: SourceType.NEWS,
    SourceKind.ZAPIER: SourceType.OTHER,
    SourceKind.IFTTT: SourceType.OTHER,
}


class SummaryType(str, Enum):
    SITUATION = "SITUATION"
    TIMELINE = "TIMELINE"
    IMPACT = "IMPACT"
    RESPONSE = "RESPONSE"
    BRIEFING = "BRIEFING"
