"""Schemas for proposed updates, evidence and verified-field protection.

Flow:
- ProposedChange: produced by upstream extraction, consumed once
- EvidenceRecord: independently observed value, append-only
- ValidatedChange: ProposedChange plus corroboration outcome
- VerificationRecord: fields confirmed by manual research (read-only input)
- GuardDecision: outcome of the verified-data gate

Semantic outcomes (flagged confidence, blocked change) are values on these
records, never exceptions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Confidence(str, Enum):
    """Ordered confidence scale: low < medium < high < flagged.

    FLAGGED means more contradiction than support. It is a hard signal for
    review, not a stronger form of HIGH.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    FLAGGED = "flagged"

    @property
    def rank(self) -> int:
        return list(Confidence).index(self)


class Severity(str, Enum):
    """Conflict severity between two values of the same field."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    @property
    def is_blocking(self) -> bool:
        """High and critical conflicts block changes to verified fields."""
        return self in (Severity.HIGH, Severity.CRITICAL)


class ProposedChange(BaseModel):
    """A candidate update to one field of a show's canonical record."""

    subject_id: str = Field(..., description="Show identifier")
    field: str = Field(..., description="Field being updated, e.g. 'capitalization'")
    old_value: Any = Field(default=None, description="Currently accepted value")
    new_value: Any = Field(default=None, description="Proposed value")
    confidence: Confidence = Field(default=Confidence.MEDIUM, description="Stated confidence")
    source_type: str = Field(..., description="Source that produced the change, e.g. 'Variety'")
    source_url: Optional[str] = Field(default=None, description="URL of the source")
    methodology: Optional[str] = Field(
        default=None,
        description="How a cost figure was derived, e.g. 'sec-filing'",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "subject_id": "hamilton-2015",
                    "field": "capitalization",
                    "old_value": 12_500_000,
                    "new_value": 12_000_000,
                    "confidence": "medium",
                    "source_type": "Variety",
                    "source_url": "https://variety.com/example",
                    "methodology": "trade-reported",
                }
            ]
        },
    }


class EvidenceRecord(BaseModel):
    """An independently observed value for a (subject, field) pair."""

    subject_id: str = Field(..., description="Show identifier")
    field: str = Field(..., description="Observed field")
    value: Any = Field(default=None, description="Observed value (None when unknown)")
    source_type: str = Field(..., description="Source of the observation")
    methodology: Optional[str] = Field(default=None)
    source_url: Optional[str] = Field(default=None)
    observed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @classmethod
    def from_change(cls, change: ProposedChange) -> "EvidenceRecord":
        """Record a proposed change's value as an observation of its source."""
        return cls(
            subject_id=change.subject_id,
            field=change.field,
            value=change.new_value,
            source_type=change.source_type,
            methodology=change.methodology,
            source_url=change.source_url,
        )


class ValidatedChange(ProposedChange):
    """ProposedChange augmented with the corroboration outcome."""

    validated_confidence: Confidence = Field(..., description="Confidence after corroboration")
    supporting_evidence: list[EvidenceRecord] = Field(default_factory=list)
    contradicting_evidence: list[EvidenceRecord] = Field(default_factory=list)
    notes: str = Field(default="", description="Human-readable corroboration summary")
    severity: Severity = Field(
        default=Severity.LOW,
        description="Conflict severity between old_value and new_value",
    )
    discrepancy: str = Field(default="", description="Formatted old -> new description")
    support_weight: float = Field(default=0.0, ge=0.0, description="Summed source weight of support")
    contradiction_weight: float = Field(
        default=0.0, ge=0.0, description="Summed source weight of contradiction"
    )
    validated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VerificationRecord(BaseModel):
    """Fields of a show confirmed through manual primary-document research."""

    subject_id: str = Field(..., description="Show identifier")
    verified_fields: list[str] = Field(default_factory=list)
    verified_date: Optional[str] = Field(default=None, description="ISO date of verification")
    notes: str = Field(default="")

    model_config = {"frozen": True}

    def protects(self, field: str) -> bool:
        return field in self.verified_fields


class GuardDecision(BaseModel):
    """Outcome of the verified-data gate for one change."""

    blocked: bool = Field(..., description="Whether the change must go to human review")
    severity: Optional[Severity] = Field(
        default=None,
        description="Conflict severity vs. the verified value (None when the field is unprotected)",
    )
    subject_id: str
    field: str
    verified_value: Any = Field(default=None)
    proposed_value: Any = Field(default=None)
    discrepancy: str = Field(default="")
    overridden: bool = Field(default=False, description="Passed via the manual override list")
    reason: str = Field(default="")

    model_config = {"frozen": True}
