"""Conflict severity between a previously accepted value and a proposed one.

Field-type-specific rules:

| Field kind  | Rule                                                         |
|-------------|--------------------------------------------------------------|
| range       | midpoint distance: > 30 critical, > 15 high, > 5 medium      |
| boolean     | any flip is critical                                         |
| categorical | any change is high                                           |
| financial   | zero/null on one side critical; relative change              |
|             | > 50% critical, > 30% high, > 15% medium, else low           |
| other       | equal low, otherwise medium                                  |

A transition to or from a zero/null financial baseline usually means a
data-entry error rather than a real revision, so it is always critical.
"""

from typing import Any, Optional

from broadway_ingest.config.source_credibility import (
    BOOLEAN_FIELDS,
    CATEGORICAL_FIELDS,
    FINANCIAL_FIELDS,
    RANGE_FIELDS,
)
from broadway_ingest.data_management.schemas import Severity
from broadway_ingest.sifters.corroboration.matching import is_number, values_match

# (threshold, severity), checked in order with ">"
RANGE_POINT_THRESHOLDS = ((30, Severity.CRITICAL), (15, Severity.HIGH), (5, Severity.MEDIUM))
FINANCIAL_RATIO_THRESHOLDS = ((0.5, Severity.CRITICAL), (0.3, Severity.HIGH), (0.15, Severity.MEDIUM))


def range_midpoint(value: Any) -> float:
    """Midpoint of a [low, high] range; a bare number is its own midpoint."""
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(is_number(v) for v in value):
        return (value[0] + value[1]) / 2
    if is_number(value):
        return float(value)
    return 0.0


def _bucket(amount: float, thresholds) -> Severity:
    for threshold, severity in thresholds:
        if amount > threshold:
            return severity
    return Severity.LOW


def _is_zero_or_null(value: Any) -> bool:
    return value is None or (is_number(value) and value == 0)


def assess_severity(field: str, previous: Any, proposed: Any) -> Severity:
    """
    Rate how materially ``proposed`` disagrees with ``previous`` for ``field``.

    Args:
        field: Field name (snake_case), selects the rule
        previous: Previously accepted or verified value
        proposed: Newly proposed value

    Returns:
        Severity bucket
    """
    if field in RANGE_FIELDS:
        diff = abs(range_midpoint(previous) - range_midpoint(proposed))
        return _bucket(diff, RANGE_POINT_THRESHOLDS)

    if field in BOOLEAN_FIELDS or isinstance(previous, bool) or isinstance(proposed, bool):
        return Severity.CRITICAL if previous != proposed else Severity.LOW

    if field in CATEGORICAL_FIELDS:
        return Severity.LOW if values_match(previous, proposed) else Severity.HIGH

    if field in FINANCIAL_FIELDS:
        if _is_zero_or_null(previous) and _is_zero_or_null(proposed):
            return Severity.LOW
        if _is_zero_or_null(previous) or _is_zero_or_null(proposed):
            return Severity.CRITICAL
        if not (is_number(previous) and is_number(proposed)):
            return Severity.LOW if values_match(previous, proposed) else Severity.HIGH
        larger = max(abs(previous), abs(proposed))
        return _bucket(abs(previous - proposed) / larger, FINANCIAL_RATIO_THRESHOLDS)

    return Severity.LOW if values_match(previous, proposed) else Severity.MEDIUM


def format_money(value: Any) -> str:
    """Render a dollar amount as $X.XM / $XK / $X."""
    if value is None:
        return "null"
    if not is_number(value):
        return str(value)
    if abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if abs(value) >= 1_000:
        return f"${round(value / 1_000)}K"
    return f"${value:g}"


def format_range_pct(value: Any) -> str:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return f"{value[0]:g}-{value[1]:g}%" if all(is_number(v) for v in value) else str(value)
    if is_number(value):
        return f"{value:g}%"
    return str(value)


def describe_discrepancy(field: str, previous: Any, proposed: Any, label: str = "verified") -> str:
    """
    Human-readable description of a value change.

    Example:
        >>> describe_discrepancy("capitalization", 20_000_000, 5_000_000)
        'verified $20.0M, proposed $5.0M (-75.0% change)'
    """
    if field in RANGE_FIELDS:
        diff = abs(range_midpoint(previous) - range_midpoint(proposed))
        return (
            f"{label} {format_range_pct(previous)}, proposed {format_range_pct(proposed)} "
            f"({diff:g}pt difference)"
        )

    if field in FINANCIAL_FIELDS:
        change: Optional[str] = None
        if is_number(previous) and previous != 0 and (proposed is None or is_number(proposed)):
            pct = ((proposed or 0) - previous) / previous * 100
            change = f"{'+' if pct >= 0 else ''}{pct:.1f}% change"
        text = f"{label} {format_money(previous)}, proposed {format_money(proposed)}"
        return f"{text} ({change})" if change else text

    return f"{label} {previous}, proposed {proposed}"
