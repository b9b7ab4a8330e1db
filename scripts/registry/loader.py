"""
Reconciliation Loader

Loads one state's roster into state_registry_districts and links each row
to its NCES district:

  NOT_STARTED -> GUARDED -> BATCH_OPENED -> LOADING -> FINALIZED
                    |
                    +-> ABORTED  (state already has roster rows; nothing written)

Records are processed one at a time: insert row, match, insert match edge.
A failed insert for one record is logged and counted, and the run moves on.
Losing the connection ends the run; rows committed so far stay behind and
can be found (or removed) by the run's import batch id.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

import psycopg2

from db_config import DBConfig, get_connection

from .config import LoaderConfig, normalize_state_code
from .matcher import DistrictMatcher
from .models import Coverage, ImportBatch, IncomingRecord, LoadState, RosterSource, RunStats
from .report import nearest_references
from .store import RegistryStore, is_fatal, new_id

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    LoadState.NOT_STARTED: {LoadState.GUARDED},
    LoadState.GUARDED: {LoadState.BATCH_OPENED, LoadState.ABORTED},
    LoadState.BATCH_OPENED: {LoadState.LOADING},
    LoadState.LOADING: {LoadState.FINALIZED},
    LoadState.FINALIZED: set(),
    LoadState.ABORTED: set(),
}

PROGRESS_EVERY = 100


class ReconciliationLoader:
    """
    One reconciliation run for one state.

    A loader instance runs once; create a new one per load.
    """

    def __init__(self, store: RegistryStore, state: str,
                 config: Optional[LoaderConfig] = None):
        self.store = store
        self.state = normalize_state_code(state)
        self.config = config or LoaderConfig()
        self.status = LoadState.NOT_STARTED
        self.matcher: Optional[DistrictMatcher] = None
        self.stats: Optional[RunStats] = None

    def _transition(self, new_status: LoadState):
        if new_status not in _TRANSITIONS[self.status]:
            raise RuntimeError(f"Illegal load transition {self.status.value} -> {new_status.value}")
        self.status = new_status
        if self.stats is not None:
            self.stats.status = new_status

    def run(self, records: Iterable[IncomingRecord], source: RosterSource) -> RunStats:
        """
        Run the load.

        Args:
            records: Parsed roster rows for this state
            source: Provenance written to data_imports

        Returns:
            RunStats; status is FINALIZED, or ABORTED when the state was
            already loaded
        """
        if self.status != LoadState.NOT_STARTED:
            raise RuntimeError(f"Loader for {self.state} already ran ({self.status.value})")

        records = list(records)
        self.stats = stats = RunStats(
            state=self.state,
            started_at=datetime.now(),
            total_incoming=len(records),
        )

        # Idempotency guard
        existing = self.store.count_existing(self.state)
        self._transition(LoadState.GUARDED)
        if existing > 0:
            stats.existing_records = existing
            stats.completed_at = datetime.now()
            self._transition(LoadState.ABORTED)
            logger.warning(f"{self.state} already has {existing:,} roster records; "
                           f"skipping to avoid duplicates")
            return stats

        candidates = self.store.load_reference_entities(self.state)
        self.matcher = DistrictMatcher(candidates, self.state)
        stats.reference_count = len(self.matcher)
        logger.info(f"Found {stats.reference_count:,} NCES districts for {self.state}")
        stats.coverage_before = self._coverage(self.state)

        batch = ImportBatch(
            id=new_id(),
            state=self.state,
            source_name=source.name,
            source_url=source.url,
            source_file=source.file,
            notes=source.notes,
            source_type=self.config.source_type,
            imported_by=self.config.matched_by,
            record_count=len(records),
        )
        stats.batch_id = self.store.create_import_batch(batch)
        self._transition(LoadState.BATCH_OPENED)
        logger.info(f"Created data_imports record: {stats.batch_id}")

        self._transition(LoadState.LOADING)
        try:
            for i, record in enumerate(records, 1):
                self._load_one(record, stats)
                if i % PROGRESS_EVERY == 0:
                    logger.info(f"Processed: {i:,} / {len(records):,} "
                                f"({stats.matched:,} matched)")
        except Exception:
            logger.error(f"Load of {self.state} interrupted after {stats.loaded:,} records; "
                         f"batch {stats.batch_id} needs manual audit")
            raise

        self.store.finalize_batch(
            stats.batch_id,
            record_count=stats.loaded,
            success_count=stats.loaded,
            error_count=stats.errors,
        )

        stats.coverage_after = self._coverage(self.state)
        stats.overall_coverage = self._coverage(None)
        stats.near_misses = nearest_references(
            stats.unmatched_sample, self.matcher.candidates, self.state,
            limit=self.config.near_miss_limit,
        )
        stats.completed_at = datetime.now()
        self._transition(LoadState.FINALIZED)

        logger.info(f"Completed {self.state}: {stats.matched:,} / {stats.loaded:,} matched "
                    f"({stats.match_rate:.1f}%), {stats.errors:,} errors")
        return stats

    def _load_one(self, record: IncomingRecord, stats: RunStats):
        """Insert, match and link a single roster row."""
        name = record.district_name
        sample = self.config.unmatched_sample_size

        if record.state != self.state:
            error = ValueError(f"record state {record.state!r} does not match run state {self.state!r}")
            logger.warning(f"Skipping {name!r}: {error}")
            stats.record_error(name, error, sample)
            stats.record_unmatched(name, sample)
            return

        try:
            record_id = self.store.insert_record(record, stats.batch_id)
        except psycopg2.Error as e:
            self._handle_write_error(e, "insert", name)
            stats.record_error(name, e, sample)
            stats.record_unmatched(name, sample)
            return
        stats.loaded += 1

        decision = self.matcher.match(name)
        if decision is None:
            stats.record_unmatched(name, sample)
            return

        try:
            self.store.insert_match(record_id, decision, name, self.config.matched_by)
        except psycopg2.Error as e:
            self._handle_write_error(e, "match insert", name)
            stats.record_error(name, e, sample)
            stats.record_unmatched(name, sample)
            return
        stats.record_match(decision)

    def _handle_write_error(self, error: psycopg2.Error, action: str, name: str):
        if is_fatal(error):
            raise error
        logger.warning(f"{action} failed for {name!r}: {error}")
        # Clear aborted transaction state before the next record
        self.store.rollback()

    def _coverage(self, state: Optional[str]) -> Optional[Coverage]:
        try:
            return self.store.coverage(state)
        except psycopg2.Error as e:
            if is_fatal(e):
                raise
            logger.warning(f"Coverage query failed: {e}")
            self.store.rollback()
            return None


def run_load(state: str, records: Iterable[IncomingRecord], source: RosterSource,
             db: Optional[DBConfig] = None,
             config: Optional[LoaderConfig] = None) -> RunStats:
    """
    Convenience function: open a connection, run one load, close it.

    Args:
        state: Two-letter postal code
        records: Parsed roster rows
        source: Provenance for data_imports
        db: Connection settings (defaults to DBConfig.from_env())
        config: Loader settings

    Returns:
        RunStats for the run
    """
    db = db or DBConfig.from_env()
    logger.info(f"Connecting to {db.describe()}")
    conn = get_connection(db)
    try:
        loader = ReconciliationLoader(RegistryStore(conn), state, config)
        return loader.run(records, source)
    finally:
        conn.close()
