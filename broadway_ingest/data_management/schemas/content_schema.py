"""Content quality schemas.

A ContentAssessment is derived from fetched text plus contextual hints and
never changes afterwards. ``invalid`` is terminal: later stages may demote
usable content to invalid but never promote invalid content.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ContentTier(str, Enum):
    """Quality tier of a fetched document.

    COMPLETE: Full body text with a genuine ending
    TRUNCATED: Real body text cut off (paywall, teaser, missing ending)
    EXCERPT: No usable body, but short aggregator excerpts exist
    STUB: Only a short fragment of body text
    INVALID: Not content at all (wall, error page, menu, wrong page)
    """

    COMPLETE = "complete"
    TRUNCATED = "truncated"
    EXCERPT = "excerpt"
    STUB = "stub"
    INVALID = "invalid"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @property
    def is_usable(self) -> bool:
        return self in (ContentTier.COMPLETE, ContentTier.TRUNCATED, ContentTier.EXCERPT)


_TIER_RANK = {
    ContentTier.INVALID: 0,
    ContentTier.STUB: 1,
    ContentTier.EXCERPT: 2,
    ContentTier.TRUNCATED: 3,
    ContentTier.COMPLETE: 4,
}


class AssessmentContext(BaseModel):
    """Hints about what a fetched document is expected to be."""

    subject_id: Optional[str] = Field(default=None, description="Expected show id")
    subject_title: Optional[str] = Field(default=None, description="Expected show title")
    source_url: Optional[str] = Field(default=None, description="Where the text came from")
    excerpts: list[str] = Field(
        default_factory=list,
        description="Short quotes for the same review from independent aggregators",
    )

    model_config = {"frozen": True}


class ContentAssessment(BaseModel):
    """Classifier verdict for one fetched document."""

    tier: ContentTier = Field(..., description="Quality tier")
    word_count: int = Field(default=0, ge=0, description="Words in the stripped body")
    char_count: int = Field(default=0, ge=0, description="Characters in the stripped body")
    signals: list[str] = Field(
        default_factory=list,
        description="Evidence behind the tier, e.g. 'severe:sign_in_to_continue'",
    )
    reason: str = Field(..., description="Human-readable reason for the tier")
    subject_id: Optional[str] = Field(default=None)
    source_url: Optional[str] = Field(default=None)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "tier": "truncated",
                    "word_count": 352,
                    "char_count": 2034,
                    "signals": ["severe:sign_in_to_continue", "moderate:trailing_ellipsis"],
                    "reason": "Truncation signal: severe:sign_in_to_continue",
                    "subject_id": "the-outsiders-2024",
                    "source_url": "https://example.com/review",
                }
            ]
        },
    }

    @property
    def is_usable(self) -> bool:
        return self.tier.is_usable

    def demote(self, signal: str, reason: str) -> "ContentAssessment":
        """Return a copy downgraded to INVALID with an extra signal."""
        return self.model_copy(
            update={
                "tier": ContentTier.INVALID,
                "signals": [*self.signals, signal],
                "reason": reason,
            }
        )
