"""Audit storage for validated changes, content assessments and pipeline notes.

Follows the same shape as EvidenceStore:
- ValidatedChange keyed by (subject_id, field), latest wins
- ContentAssessment keyed by (subject_id, source_url), latest wins
- AuditNote append-only
- asyncio lock around every mutation
- Optional JSON persistence

Usage:
    store = AuditStore()
    await store.save_change(validated)
    change = await store.get_change("hamilton-2015", "capitalization")
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import structlog

from broadway_ingest.data_management.schemas import (
    AuditNote,
    AuditOutcome,
    ContentAssessment,
    ValidatedChange,
)

_NO_SUBJECT = "_unassigned"


class AuditStore:
    """Storage for everything the pipeline decided."""

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize AuditStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._changes: dict[tuple[str, str], ValidatedChange] = {}
        self._assessments: dict[tuple[str, str], ContentAssessment] = {}
        self._notes: list[AuditNote] = []
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="AuditStore")

    async def save_change(self, change: ValidatedChange) -> None:
        async with self._lock:
            self._changes[(change.subject_id, change.field)] = change
            self._logger.debug(
                "change_saved",
                subject_id=change.subject_id,
                field=change.field,
                validated_confidence=change.validated_confidence.value,
            )
            if self._persistence_path:
                self._save_to_file()

    async def get_change(self, subject_id: str, field: str) -> Optional[ValidatedChange]:
        async with self._lock:
            return self._changes.get((subject_id, field))

    async def save_assessment(self, assessment: ContentAssessment) -> None:
        """Store an assessment; assessments without a subject or URL share a placeholder key."""
        key = (assessment.subject_id or _NO_SUBJECT, assessment.source_url or "")
        async with self._lock:
            self._assessments[key] = assessment
            self._logger.debug(
                "assessment_saved",
                subject_id=assessment.subject_id,
                source_url=assessment.source_url,
                tier=assessment.tier.value,
            )
            if self._persistence_path:
                self._save_to_file()

    async def get_assessment(
        self,
        subject_id: Optional[str],
        source_url: Optional[str],
    ) -> Optional[ContentAssessment]:
        async with self._lock:
            return self._assessments.get((subject_id or _NO_SUBJECT, source_url or ""))

    async def add_note(self, note: AuditNote) -> None:
        async with self._lock:
            self._notes.append(note)
            log = self._logger.warning if note.outcome is AuditOutcome.FAILED else self._logger.info
            log(
                "audit_note",
                subject_id=note.subject_id,
                stage=note.stage.value,
                outcome=note.outcome.value,
                reason=note.reason,
                correlation_id=note.correlation_id,
            )
            if self._persistence_path:
                self._save_to_file()

    async def get_notes(
        self,
        subject_id: Optional[str] = None,
        outcome: Optional[AuditOutcome] = None,
    ) -> list[AuditNote]:
        """Notes in insertion order, optionally filtered."""
        async with self._lock:
            return [
                n
                for n in self._notes
                if (subject_id is None or n.subject_id == subject_id)
                and (outcome is None or n.outcome == outcome)
            ]

    async def get_stats(self) -> dict[str, Any]:
        """Counts by confidence, tier and note outcome."""
        async with self._lock:
            confidence_counts: dict[str, int] = {}
            for change in self._changes.values():
                key = change.validated_confidence.value
                confidence_counts[key] = confidence_counts.get(key, 0) + 1

            tier_counts: dict[str, int] = {}
            for assessment in self._assessments.values():
                tier_counts[assessment.tier.value] = tier_counts.get(assessment.tier.value, 0) + 1

            outcome_counts: dict[str, int] = {}
            for note in self._notes:
                outcome_counts[note.outcome.value] = outcome_counts.get(note.outcome.value, 0) + 1

            return {
                "changes": len(self._changes),
                "assessments": len(self._assessments),
                "notes": len(self._notes),
                "confidence_counts": confidence_counts,
                "tier_counts": tier_counts,
                "outcome_counts": outcome_counts,
                "pending_review": outcome_counts.get(AuditOutcome.HELD.value, 0),
            }

    def _save_to_file(self) -> None:
        """Save to JSON file (synchronous)."""
        if not self._persistence_path:
            return
        try:
            self._persistence_path.parent.mkdir(parents=True, exist_ok=True)
            data: dict[str, Any] = {
                "changes": [c.model_dump(mode="json") for c in self._changes.values()],
                "assessments": [a.model_dump(mode="json") for a in self._assessments.values()],
                "notes": [n.model_dump(mode="json") for n in self._notes],
            }
            with open(self._persistence_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as e:
            self._logger.error("persistence_failed", error=str(e))
