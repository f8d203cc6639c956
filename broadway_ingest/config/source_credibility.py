"""Source credibility configuration for change corroboration.

Source hierarchy (from most to least credible):
1. Deep research against primary documents: 1.2
2. SEC Form D filings: 1.0
3. Trade press (Deadline, Variety): 0.9
4. New York Times: 0.85
5. Broadway Journal: 0.8
6. Playbill: 0.75
7. Reddit weekly grosses analysis: 0.7
8. Reddit comments: 0.4
9. Unattributed estimates: 0.3

Weights above 1.0 are allowed: deep research outranks a single filing
because it reconciles several of them.
"""

from typing import Dict, FrozenSet

# Key: source_type (lowercase, as carried on ProposedChange/EvidenceRecord)
# Value: credibility weight
SOURCE_WEIGHTS: Dict[str, float] = {
    "deep research": 1.2,
    "sec form d": 1.0,
    "deadline": 0.9,
    "variety": 0.9,
    "new york times": 0.85,
    "broadway journal": 0.8,
    "playbill": 0.75,
    "reddit grosses analysis": 0.7,
    "reddit comment": 0.4,
    "estimate": 0.3,
}

# Weight for source types not listed above
DEFAULT_SOURCE_WEIGHT = 0.5

# Methodology compatibility (many-to-many, not an ordering).
# "*" means the methodology is comparable to every other one.
METHODOLOGY_COMPATIBILITY: Dict[str, FrozenSet[str]] = {
    "reddit-standard": frozenset({"reddit-standard"}),
    "trade-reported": frozenset(
        {"trade-reported", "sec-filing", "producer-confirmed", "deep-research"}
    ),
    "sec-filing": frozenset(
        {"sec-filing", "trade-reported", "producer-confirmed", "deep-research"}
    ),
    "producer-confirmed": frozenset(
        {"producer-confirmed", "trade-reported", "sec-filing", "deep-research"}
    ),
    "deep-research": frozenset({"*"}),
    "industry-estimate": frozenset({"industry-estimate"}),
}

# Cost fields whose evidence is filtered by methodology
METHODOLOGY_SENSITIVE_FIELDS: FrozenSet[str] = frozenset(
    {"weekly_running_cost", "capitalization"}
)

# Field kinds drive severity rules
RANGE_FIELDS: FrozenSet[str] = frozenset({"estimated_recoupment_pct"})
BOOLEAN_FIELDS: FrozenSet[str] = frozenset({"recouped"})
CATEGORICAL_FIELDS: FrozenSet[str] = frozenset({"designation"})
FINANCIAL_FIELDS: FrozenSet[str] = frozenset(
    {
        "capitalization",
        "weekly_running_cost",
        "weekly_gross_target",
        "break_even_gross",
        "cumulative_gross",
        "cumulative_profit",
    }
)

# Relative tolerance for numeric agreement between independent sources
NUMERIC_MATCH_TOLERANCE = 0.10


def get_source_weight(source_type: str | None) -> float:
    """Look up the credibility weight for a source type (case-insensitive)."""
    if not source_type:
        return DEFAULT_SOURCE_WEIGHT
    return SOURCE_WEIGHTS.get(source_type.strip().lower(), DEFAULT_SOURCE_WEIGHT)
