"""Content quality classification.

- ContentQualityClassifier: ordered tier rules over fetched text
- clean_text / strip_structural_junk: normalization and junk stripping
"""

from broadway_ingest.sifters.quality.content_classifier import (
    ContentQualityClassifier,
    PreparedText,
    RuleMatch,
    TierRule,
)
from broadway_ingest.sifters.quality.text_cleaning import (
    StripResult,
    clean_text,
    strip_structural_junk,
)

__all__ = [
    "ContentQualityClassifier",
    "PreparedText",
    "RuleMatch",
    "TierRule",
    "StripResult",
    "clean_text",
    "strip_structural_junk",
]
