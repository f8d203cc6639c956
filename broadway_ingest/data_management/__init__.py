"""Data management: schemas and in-process stores."""

from broadway_ingest.data_management.audit_store import AuditStore
from broadway_ingest.data_management.evidence_store import EvidenceStore

__all__ = ["AuditStore", "EvidenceStore"]
