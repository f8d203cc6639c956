"""Value comparison and methodology compatibility for corroboration."""

from typing import Any, Optional

from broadway_ingest.config.source_credibility import (
    METHODOLOGY_COMPATIBILITY,
    NUMERIC_MATCH_TOLERANCE,
)


def is_number(value: Any) -> bool:
    """True for int/float values; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_match(a: Any, b: Any, tolerance: float = NUMERIC_MATCH_TOLERANCE) -> bool:
    """
    Whether two independently observed values agree.

    - None on both sides: agree
    - numbers: within ``tolerance`` of the larger magnitude (equal if that is 0)
    - lists/tuples: same length, element-wise
    - strings: case-insensitive, surrounding whitespace ignored
    - anything else: strict equality
    """
    if a is None and b is None:
        return True
    if a is None or b is None:
        return False

    if is_number(a) and is_number(b):
        larger = max(abs(a), abs(b))
        if larger == 0:
            return a == b
        return abs(a - b) / larger <= tolerance

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_match(x, y, tolerance) for x, y in zip(a, b))

    if isinstance(a, str) and isinstance(b, str):
        return a.strip().lower() == b.strip().lower()

    if isinstance(a, bool) or isinstance(b, bool):
        return a is b

    return a == b


def methodologies_comparable(a: Optional[str], b: Optional[str]) -> bool:
    """
    Whether figures derived by methodologies ``a`` and ``b`` can corroborate each other.

    A missing methodology on either side is comparable. An unknown one is not.
    """
    if not a or not b:
        return True
    a, b = a.strip().lower(), b.strip().lower()

    compatible_a = METHODOLOGY_COMPATIBILITY.get(a)
    compatible_b = METHODOLOGY_COMPATIBILITY.get(b)
    if compatible_a is None or compatible_b is None:
        return False
    if "*" in compatible_a or "*" in compatible_b:
        return True
    return b in compatible_a or a in compatible_b
