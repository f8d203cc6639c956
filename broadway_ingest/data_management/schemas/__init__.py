"""Schema package for fetch, content quality, corroboration and audit records.

All models are pydantic v2 and serialize with ``model_dump(mode="json")`` so
an external storage layer can persist them as-is:
- ValidatedChange keyed by (subject_id, field)
- ContentAssessment keyed by (subject_id, source_url)

Usage:
    from broadway_ingest.data_management.schemas import ProposedChange, Confidence
    change = ProposedChange(
        subject_id="hamilton-2015", field="capitalization",
        old_value=12_500_000, new_value=12_000_000, source_type="Variety",
    )
"""

from broadway_ingest.data_management.schemas.fetch_schema import (
    ContentFormat,
    FetchRequest,
    FetchResult,
    ProviderKind,
)
from broadway_ingest.data_management.schemas.content_schema import (
    AssessmentContext,
    ContentAssessment,
    ContentTier,
)
from broadway_ingest.data_management.schemas.change_schema import (
    Confidence,
    EvidenceRecord,
    GuardDecision,
    ProposedChange,
    Severity,
    ValidatedChange,
    VerificationRecord,
)
from broadway_ingest.data_management.schemas.audit_schema import (
    AuditNote,
    AuditOutcome,
    AuditStage,
)

__all__ = [
    "ProviderKind",
    "ContentFormat",
    "FetchRequest",
    "FetchResult",
    "ContentTier",
    "AssessmentContext",
    "ContentAssessment",
    "Confidence",
    "Severity",
    "ProposedChange",
    "EvidenceRecord",
    "ValidatedChange",
    "VerificationRecord",
    "GuardDecision",
    "AuditNote",
    "AuditStage",
    "AuditOutcome",
]
