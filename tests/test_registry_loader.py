"""Reconciliation loader tests against an in-memory store."""
import os
import sys

import psycopg2
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scripts.registry import loader as loader_mod  # noqa: E402
from scripts.registry.config import LoaderConfig  # noqa: E402
from scripts.registry.loader import ReconciliationLoader  # noqa: E402
from scripts.registry.models import Coverage, LoadState, ReferenceEntity  # noqa: E402


class _FakeStore:
    """In-memory stand-in for RegistryStore."""

    def __init__(self, references=None, existing=0):
        self.references = list(references or [])
        self.existing = existing
        self.batches = {}
        self.records = {}
        self.matches = {}
        self.rollbacks = 0
        self.fail_insert = {}
        self.fail_match = {}
        self.coverage_error = None
        self.guard_calls = 0
        self._next = 0

    def _id(self, prefix):
        self._next += 1
        return f"{prefix}-{self._next}"

    def count_existing(self, state):
        self.guard_calls += 1
        return self.existing + sum(1 for r in self.records.values() if r[0].state == state)

    def load_reference_entities(self, state):
        return list(self.references)

    def coverage(self, state=None):
        if self.coverage_error is not None:
            raise self.coverage_error
        return Coverage(total=10, with_superintendent=len(self.matches))

    def create_import_batch(self, batch):
        self.batches[batch.id] = batch
        return batch.id

    def insert_record(self, record, batch_id):
        if record.district_name in self.fail_insert:
            raise self.fail_insert[record.district_name]
        record_id = self._id("rec")
        self.records[record_id] = (record, batch_id)
        return record_id

    def insert_match(self, record_id, decision, source_name, matched_by):
        if source_name in self.fail_match:
            raise self.fail_match[source_name]
        assert record_id not in self.matches
        self.matches[record_id] = (decision, matched_by)
        return self._id("match")

    def finalize_batch(self, batch_id, record_count, success_count, error_count):
        batch = self.batches[batch_id]
        batch.record_count = record_count
        batch.success_count = success_count
        batch.error_count = error_count

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture()
def store():
    return _FakeStore(references=[
        ReferenceEntity("2500030", "Agawam"),
        ReferenceEntity("2500090", "Amherst"),
        ReferenceEntity("2511130", "Springfield"),
        ReferenceEntity("2512990", "West Springfield"),
    ])


@pytest.fixture()
def records(make_record):
    return [
        make_record("Agawam Public Schools"),
        make_record("Amherst Public Schools"),
        make_record("Springfield Sch Dist"),
        make_record("Atlantis Schools"),
    ]


# ============================================================================
# Happy path
# ============================================================================

class TestLoad:

    def test_counts(self, store, records, roster_source):
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.status == LoadState.FINALIZED
        assert stats.total_incoming == 4
        assert stats.reference_count == 4
        assert stats.loaded == 4
        assert stats.matched == 3
        assert stats.unmatched_count == 1
        assert stats.unmatched_sample == ["Atlantis Schools"]
        assert stats.errors == 0
        assert len(store.records) == 4
        assert len(store.matches) == 3

    def test_methods(self, store, records, roster_source):
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)
        # MA keeps "ps" so these are fuzzy/normalized, not exact
        assert sum(stats.by_method.values()) == stats.matched
        linked = {d.entity.reference_id for d, _ in store.matches.values()}
        assert linked == {"2500030", "2500090", "2511130"}

    def test_batch_counters_equal_persisted(self, store, records, roster_source):
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)
        batch = store.batches[stats.batch_id]
        persisted = sum(1 for _, b in store.records.values() if b == stats.batch_id)
        assert batch.record_count == persisted
        assert batch.success_count == persisted
        assert batch.error_count == 0
        assert batch.source_name == roster_source.name
        assert batch.state == "MA"

    def test_matched_by_attribution(self, store, records, roster_source):
        config = LoaderConfig(matched_by="nightly-import")
        ReconciliationLoader(store, "MA", config).run(records, roster_source)
        assert {by for _, by in store.matches.values()} == {"nightly-import"}

    def test_coverage_captured(self, store, records, roster_source):
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)
        assert stats.coverage_before.with_superintendent == 0
        assert stats.coverage_after.with_superintendent == 3
        assert stats.overall_coverage is not None

    def test_near_miss_hint(self, store, records, roster_source):
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)
        assert [h["state_name"] for h in stats.near_misses] == ["Atlantis Schools"]

    def test_to_dict(self, store, records, roster_source):
        data = ReconciliationLoader(store, "MA").run(records, roster_source).to_dict()
        assert data["status"] == "finalized"
        assert data["matched"] == 3
        assert data["match_rate"] == 75.0

    def test_empty_roster(self, store, roster_source):
        stats = ReconciliationLoader(store, "MA").run([], roster_source)
        assert stats.status == LoadState.FINALIZED
        assert stats.loaded == 0
        assert store.batches[stats.batch_id].record_count == 0


# ============================================================================
# Idempotency guard
# ============================================================================

class TestGuard:

    def test_aborts_when_state_has_records(self, records, roster_source):
        store = _FakeStore(references=[ReferenceEntity("1", "Agawam")], existing=7)
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.aborted
        assert stats.existing_records == 7
        assert stats.batch_id is None
        assert store.batches == {}
        assert store.records == {}
        assert store.matches == {}

    def test_second_run_writes_nothing(self, store, records, roster_source):
        ReconciliationLoader(store, "MA").run(records, roster_source)
        before = (len(store.batches), len(store.records), len(store.matches))

        second = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert second.aborted
        assert second.existing_records == 4
        assert (len(store.batches), len(store.records), len(store.matches)) == before

    def test_other_state_not_blocked(self, store, records, make_record, roster_source):
        ReconciliationLoader(store, "MA").run(records, roster_source)
        stats = ReconciliationLoader(store, "VT").run([make_record("Agawam", state="VT")],
                                                      roster_source)
        assert stats.status == LoadState.FINALIZED


# ============================================================================
# Per-record failures
# ============================================================================

class TestErrors:

    def test_insert_error_counted_and_run_continues(self, store, records, roster_source):
        store.fail_insert["Amherst Public Schools"] = psycopg2.DataError("value too long")
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.status == LoadState.FINALIZED
        assert stats.loaded == 3
        assert stats.errors == 1
        assert stats.matched == 2
        assert "Amherst Public Schools" in stats.unmatched_sample
        assert store.rollbacks == 1
        batch = store.batches[stats.batch_id]
        assert (batch.record_count, batch.success_count, batch.error_count) == (3, 3, 1)

    def test_match_insert_error_counted(self, store, records, roster_source):
        store.fail_match["Agawam Public Schools"] = psycopg2.IntegrityError("duplicate key")
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.loaded == 4
        assert stats.matched == 2
        assert stats.errors == 1
        assert stats.unmatched_count == 2
        assert len(store.matches) == 2

    def test_connection_loss_propagates(self, store, records, roster_source):
        store.fail_insert["Springfield Sch Dist"] = psycopg2.OperationalError("server closed")
        loader = ReconciliationLoader(store, "MA")

        with pytest.raises(psycopg2.OperationalError):
            loader.run(records, roster_source)

        assert loader.status == LoadState.LOADING
        # Rows written before the failure stay behind, tagged with the batch
        assert len(store.records) == 2
        batch_id = loader.stats.batch_id
        assert all(b == batch_id for _, b in store.records.values())

    def test_wrong_state_record_not_persisted(self, store, make_record, roster_source):
        records = [make_record("Agawam"), make_record("Agawam", state="CT")]
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.loaded == 1
        assert stats.errors == 1
        assert len(store.records) == 1

    def test_coverage_failure_tolerated(self, store, records, roster_source):
        store.coverage_error = psycopg2.ProgrammingError('relation "national_registry" does not exist')
        stats = ReconciliationLoader(store, "MA").run(records, roster_source)

        assert stats.status == LoadState.FINALIZED
        assert stats.coverage_before is None
        assert stats.coverage_after is None
        assert stats.matched == 3


# ============================================================================
# State machine
# ============================================================================

def test_loader_runs_once(store, records, roster_source):
    loader = ReconciliationLoader(store, "MA")
    first = loader.run(records, roster_source)

    with pytest.raises(RuntimeError):
        loader.run(records, roster_source)

    assert loader.stats is first
    assert loader.status == LoadState.FINALIZED
    assert store.guard_calls == 1


def test_state_code_validated(store):
    with pytest.raises(ValueError):
        ReconciliationLoader(store, "Massachusetts")


def test_run_load_closes_connection(monkeypatch, records, roster_source):
    closed = []

    class _Conn:
        def close(self):
            closed.append(True)

    fake_store = _FakeStore(references=[ReferenceEntity("1", "Agawam")])
    monkeypatch.setattr(loader_mod, "get_connection", lambda db: _Conn())
    monkeypatch.setattr(loader_mod, "RegistryStore", lambda conn: fake_store)

    stats = loader_mod.run_load("MA", records, roster_source,
                                db=loader_mod.DBConfig(database="test"))

    assert stats.status == LoadState.FINALIZED
    assert closed == [True]


def test_run_load_closes_connection_on_failure(monkeypatch, records, roster_source):
    closed = []

    class _Conn:
        def close(self):
            closed.append(True)

    fake_store = _FakeStore(references=[ReferenceEntity("1", "Agawam")])
    fake_store.fail_insert["Amherst Public Schools"] = psycopg2.OperationalError("server closed")
    monkeypatch.setattr(loader_mod, "get_connection", lambda db: _Conn())
    monkeypatch.setattr(loader_mod, "RegistryStore", lambda conn: fake_store)

    with pytest.raises(psycopg2.OperationalError):
        loader_mod.run_load("MA", records, roster_source,
                            db=loader_mod.DBConfig(database="test"))

    assert closed == [True]
