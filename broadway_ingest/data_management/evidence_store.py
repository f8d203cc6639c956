"""Append-only pool of observed field values.

Every value any source reported for a (subject, field) lands here. The
corroboration engine reads immutable snapshots; writers never mutate
records in place, they rebind the stored tuple, so a snapshot taken before
a write is never affected by it.

Usage:
    from broadway_ingest.data_management.evidence_store import EvidenceStore

    store = EvidenceStore()
    await store.add(EvidenceRecord(subject_id="hamilton-2015", field="capitalization",
                                   value=12_500_000, source_type="Variety"))
    pool = await store.snapshot("hamilton-2015", "capitalization")
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog

from broadway_ingest.data_management.schemas import EvidenceRecord


class EvidenceStore:
    """Evidence records grouped by subject_id.

    Data structure:
    {
        subject_id: (EvidenceRecord, ...),
        ...
    }
    """

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize EvidenceStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only. An existing
                            file is loaded on construction.
        """
        self._records: dict[str, tuple[EvidenceRecord, ...]] = {}
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="EvidenceStore")

        if self._persistence_path and self._persistence_path.exists():
            self._load_from_file()

    async def add(self, record: EvidenceRecord) -> None:
        """Append one observation."""
        await self.add_many([record])

    async def add_many(self, records: Iterable[EvidenceRecord]) -> int:
        """Append observations.

        Returns:
            Number of records added.
        """
        records = list(records)
        if not records:
            return 0

        async with self._lock:
            grouped: dict[str, list[EvidenceRecord]] = {}
            for record in records:
                grouped.setdefault(record.subject_id, []).append(record)
            for subject_id, new in grouped.items():
                self._records[subject_id] = self._records.get(subject_id, ()) + tuple(new)

            self._logger.debug(
                "evidence_added",
                count=len(records),
                subjects=sorted(grouped),
            )

            if self._persistence_path:
                self._save_to_file()
        return len(records)

    async def snapshot(
        self,
        subject_id: Optional[str] = None,
        field: Optional[str] = None,
    ) -> tuple[EvidenceRecord, ...]:
        """Immutable view of the pool, optionally filtered by subject and field."""
        async with self._lock:
            if subject_id is not None:
                records = self._records.get(subject_id, ())
            else:
                records = tuple(r for group in self._records.values() for r in group)
        if field is not None:
            records = tuple(r for r in records if r.field == field)
        return records

    async def count(self, subject_id: Optional[str] = None) -> int:
        async with self._lock:
            if subject_id is not None:
                return len(self._records.get(subject_id, ()))
            return sum(len(group) for group in self._records.values())

    def _save_to_file(self) -> None:
        """Save to JSON file (synchronous)."""
        if not self._persistence_path:
            return
        try:
            self._persistence_path.parent.mkdir(parents=True, exist_ok=True)
            data: dict[str, Any] = {
                subject_id: [record.model_dump(mode="json") for record in records]
                for subject_id, records in self._records.items()
            }
            with open(self._persistence_path, "w") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as e:
            self._logger.error("persistence_failed", error=str(e))

    def _load_from_file(self) -> None:
        try:
            with open(self._persistence_path) as f:
                data = json.load(f)
            self._records = {
                subject_id: tuple(EvidenceRecord.model_validate(r) for r in records)
                for subject_id, records in data.items()
            }
            self._logger.info(
                "evidence_loaded",
                path=str(self._persistence_path),
                subjects=len(self._records),
            )
        except (OSError, ValueError) as e:
            self._logger.error("load_failed", path=str(self._persistence_path), error=str(e))
