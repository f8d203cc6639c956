"""Source corroboration: evidence matching, confidence and conflict severity."""

from broadway_ingest.sifters.corroboration.engine import (
    CorroborationEngine,
    calculate_confidence,
)
from broadway_ingest.sifters.corroboration.matching import (
    is_number,
    methodologies_comparable,
    values_match,
)
from broadway_ingest.sifters.corroboration.severity import (
    assess_severity,
    describe_discrepancy,
    format_money,
)

__all__ = [
    "CorroborationEngine",
    "calculate_confidence",
    "values_match",
    "methodologies_comparable",
    "is_number",
    "assess_severity",
    "describe_discrepancy",
    "format_money",
]
