"""
Signal schemas - the canonical shapes flowing through the intake pipeline.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from aidwatch.models.enums import CrisisType, Severity


class RawSignal(BaseModel):
    """
    Normalized form of one incoming payload. Produced by a source normalizer,
    consumed by the filter stage and classifier; never persisted directly.
    """
    title: str
    description: str = ""
    origin_fingerprint: str = Field(..., description="Source URL or upstream id")
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    occurred_at: Optional[datetime] = None

    @property
    def text(self) -> str:
        """Title and description joined, the way they are sent to the classifier."""
        if self.description:
            return f"{self.title}\n\n{self.description}"
        return self.title


class ClassificationResult(BaseModel):
    """Structured judgment returned by the classifier for one piece of text."""
    relevant: bool
    type: CrisisType = CrisisType.OTHER
    severity: Severity = Severity.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    summary: str = ""
    locations: list[str] = Field(default_factory=list)
    organizations: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    recommendations: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return CrisisType.parse(value)

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value):
        return Severity.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        return min(max(float(value or 0.0), 0.0), 1.0)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _clamp_sentiment(cls, value):
        return min(max(float(value or 0.0), -1.0), 1.0)

    @field_validator("locations", "organizations", "keywords", "recommendations", mode="before")
    @classmethod
    def _clean_strings(cls, value):
        if not value:
            return []
        if not isinstance(value, list):
            raise ValueError(f"expected a list of strings, got {type(value).__name__}")
        return [str(v).strip() for v in value if v and str(v).strip()]

    def entities(self) -> dict:
        return {
            "locations": self.locations,
            "organizations": self.organizations,
            "keywords": self.keywords,
        }
