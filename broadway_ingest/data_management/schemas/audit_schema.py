"""Audit note schema.

Every stage that rejects, holds or fails something leaves an AuditNote so
nothing is silently dropped.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditStage(str, Enum):
    FETCH = "fetch"
    ASSESS = "assess"
    SEMANTIC = "semantic"
    VALIDATE = "validate"
    GUARD = "guard"


class AuditOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    HELD = "held"  # needs human review
    FAILED = "failed"


class AuditNote(BaseModel):
    """Structured record of a pipeline decision or failure."""

    subject_id: Optional[str] = Field(default=None)
    stage: AuditStage
    outcome: AuditOutcome
    reason: str
    details: dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}
