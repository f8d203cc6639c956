"""Tests for EvidenceStore."""

import pytest

from broadway_ingest.data_management import EvidenceStore
from broadway_ingest.data_management.schemas import EvidenceRecord


def record(value, source_type="Variety", subject_id="hamilton-2015", field="capitalization") -> EvidenceRecord:
    return EvidenceRecord(subject_id=subject_id, field=field, value=value, source_type=source_type)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def store() -> EvidenceStore:
    return EvidenceStore()


class TestEvidenceStore:
    @pytest.mark.asyncio
    async def test_add_and_snapshot(self, store) -> None:
        await store.add(record(12_500_000))
        await store.add(record(1_400_000, field="weekly_running_cost"))
        await store.add(record(35_000_000, subject_id="wicked-2003"))

        assert len(await store.snapshot()) == 3
        assert len(await store.snapshot("hamilton-2015")) == 2
        only = await store.snapshot("hamilton-2015", "capitalization")
        assert [r.value for r in only] == [12_500_000]

    @pytest.mark.asyncio
    async def test_snapshot_unaffected_by_later_writes(self, store) -> None:
        await store.add(record(12_500_000))
        before = await store.snapshot("hamilton-2015")
        await store.add(record(13_000_000, source_type="Deadline"))

        assert len(before) == 1
        assert len(await store.snapshot("hamilton-2015")) == 2

    @pytest.mark.asyncio
    async def test_add_many_and_count(self, store) -> None:
        added = await store.add_many([record(1), record(2), record(3, subject_id="wicked-2003")])
        assert added == 3
        assert await store.count() == 3
        assert await store.count("wicked-2003") == 1
        assert await store.add_many([]) == 0

    @pytest.mark.asyncio
    async def test_unknown_subject_is_empty(self, store) -> None:
        assert await store.snapshot("nope") == ()


class TestPersistence:
    @pytest.mark.asyncio
    async def test_reload_from_file(self, tmp_path) -> None:
        path = tmp_path / "evidence.json"
        store = EvidenceStore(str(path))
        original = record([40, 60], field="estimated_recoupment_pct")
        await store.add(original)

        reloaded = EvidenceStore(str(path))
        assert await reloaded.snapshot("hamilton-2015") == (original,)

    def test_corrupt_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "evidence.json"
        path.write_text("{not json")
        store = EvidenceStore(str(path))
        assert store._records == {}
