"""
Tests for portables.core.checkpoints module.

Tests cover:
- Checkpoint dataclass defaults and the failed property
- CheckpointStore in-memory backend (upsert, load, get, delete_job)
- Isolation of stored copies from later in-place mutation
- CheckpointStore SQLite backend
"""

import sqlite3

import pytest

from portables.core.checkpoints import Checkpoint, CheckpointStore


# =============================================================================
# Checkpoint dataclass
# =============================================================================


class TestCheckpoint:
    """Tests for the Checkpoint dataclass."""

    def test_defaults(self):
        cp = Checkpoint(job_id="j1", category="Pages")
        assert cp.stage == 0
        assert cp.stage_data is None
        assert cp.progress == 0.0
        assert cp.completed is False
        assert cp.error is None
        assert cp.updated_at is None

    def test_failed_reflects_error(self):
        cp = Checkpoint(job_id="j1", category="Pages")
        assert not cp.failed
        cp.error = "RuntimeError: boom"
        assert cp.failed


# =============================================================================
# CheckpointStore: in-memory backend
# =============================================================================


class TestCheckpointStoreMemory:
    """In-memory checkpoint store."""

    def test_empty_job(self):
        store = CheckpointStore()
        assert store.get_checkpoints("j1") == []
        assert store.load("j1") == {}
        assert store.has_checkpoints("j1") is False

    def test_upsert_and_load(self):
        store = CheckpointStore()
        store.upsert(Checkpoint(job_id="j1", category="Pages", stage=2))
        store.upsert(Checkpoint(job_id="j1", category="Users"))

        loaded = store.load("j1")
        assert set(loaded) == {"Pages", "Users"}
        assert loaded["Pages"].stage == 2
        assert store.has_checkpoints("j1")

    def test_upsert_stamps_updated_at(self):
        store = CheckpointStore()
        cp = store.upsert(Checkpoint(job_id="j1", category="Pages"))
        assert cp.updated_at is not None
        assert store.get("j1", "Pages").updated_at == cp.updated_at

    def test_upsert_replaces_same_category(self):
        store = CheckpointStore()
        cp = Checkpoint(job_id="j1", category="Pages")
        store.upsert(cp)
        cp.stage = 3
        cp.completed = True
        store.save(cp)

        assert len(store.get_checkpoints("j1")) == 1
        assert store.get("j1", "Pages").stage == 3
        assert store.get("j1", "Pages").completed is True

    def test_stored_copy_is_isolated(self):
        """Mutating a checkpoint after saving does not change the stored one."""
        store = CheckpointStore()
        cp = Checkpoint(job_id="j1", category="Pages", stage=1)
        store.upsert(cp)
        cp.stage = 99
        assert store.get("j1", "Pages").stage == 1

    def test_get_is_exact_match(self):
        store = CheckpointStore()
        store.upsert(Checkpoint(job_id="j1", category="Pages"))
        assert store.get("j1", "pages") is None
        assert store.get("j1", "Pages") is not None

    def test_jobs_are_isolated(self):
        store = CheckpointStore()
        store.upsert(Checkpoint(job_id="j1", category="Pages"))
        store.upsert(Checkpoint(job_id="j2", category="Pages", stage=5))
        assert store.get("j1", "Pages").stage == 0
        assert store.get("j2", "Pages").stage == 5

    def test_delete_job(self):
        store = CheckpointStore()
        store.upsert(Checkpoint(job_id="j1", category="Pages"))
        store.upsert(Checkpoint(job_id="j1", category="Users"))
        store.upsert(Checkpoint(job_id="j2", category="Pages"))

        assert store.delete_job("j1") == 2
        assert store.get_checkpoints("j1") == []
        assert store.has_checkpoints("j2")


# =============================================================================
# CheckpointStore: SQLite backend
# =============================================================================


class TestCheckpointStoreSQLite:
    """SQLite-backed checkpoint store."""

    @pytest.fixture
    def conn(self):
        conn = sqlite3.connect(":memory:")
        yield conn
        conn.close()

    def test_table_created(self, conn):
        CheckpointStore(conn)
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='portable_checkpoints'"
        ).fetchone()
        assert row is not None

    def test_round_trip_all_fields(self, conn):
        store = CheckpointStore(conn)
        store.upsert(
            Checkpoint(
                job_id="j1",
                category="Pages",
                stage=4,
                stage_data='{"last": 17}',
                progress=42.5,
                total_items=40,
                processed_items=17,
                completed=False,
                error="ValueError: bad page",
            )
        )
        cp = store.get("j1", "Pages")
        assert cp.stage == 4
        assert cp.stage_data == '{"last": 17}'
        assert cp.progress == 42.5
        assert cp.total_items == 40
        assert cp.processed_items == 17
        assert cp.completed is False
        assert cp.error == "ValueError: bad page"
        assert cp.updated_at is not None

    def test_unique_per_job_category(self, conn):
        store = CheckpointStore(conn)
        cp = Checkpoint(job_id="j1", category="Pages")
        store.upsert(cp)
        cp.completed = True
        cp.progress = 100.0
        store.upsert(cp)

        count = conn.execute("SELECT COUNT(*) FROM portable_checkpoints").fetchone()[0]
        assert count == 1
        assert store.get("j1", "Pages").completed is True

    def test_survives_new_store_instance(self, conn):
        CheckpointStore(conn).upsert(Checkpoint(job_id="j1", category="Users", stage=2))
        assert CheckpointStore(conn).get("j1", "Users").stage == 2

    def test_delete_job(self, conn):
        store = CheckpointStore(conn)
        store.upsert(Checkpoint(job_id="j1", category="Pages"))
        store.upsert(Checkpoint(job_id="j2", category="Pages"))
        assert store.delete_job("j1") == 1
        assert not store.has_checkpoints("j1")
        assert store.has_checkpoints("j2")
