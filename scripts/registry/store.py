"""
Record store access for registry reconciliation.

All SQL the loader issues lives here. Writes commit per statement, so a
crash mid-run leaves every record inserted so far in place, tagged with the
run's import batch id.

Tables:
  districts                 NCES reference registry (read-only here)
  national_registry         destination reporting view (read-only here)
  data_imports              one row per load run (ImportBatch)
  state_registry_districts  persisted roster rows
  district_matches          accepted roster -> NCES links
"""

import json
import logging
import uuid
from typing import Dict, List, Optional

import psycopg2

from .models import Coverage, ImportBatch, IncomingRecord, MatchDecision, ReferenceEntity

logger = logging.getLogger(__name__)

# Errors that mean the connection itself is gone; these abort a run.
FATAL_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


DDL = """
-- ============================================================================
-- data_imports: provenance for every roster load
-- ============================================================================
CREATE TABLE IF NOT EXISTS data_imports (
    id UUID PRIMARY KEY,
    source_type VARCHAR(50) NOT NULL DEFAULT 'state_registry',
    source_name TEXT NOT NULL,
    source_url TEXT,
    source_file TEXT,
    state CHAR(2),
    record_count INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER DEFAULT 0,
    error_count INTEGER DEFAULT 0,
    imported_at TIMESTAMP DEFAULT NOW(),
    imported_by TEXT,
    notes TEXT
);

-- ============================================================================
-- state_registry_districts: roster rows as supplied by the state
-- ============================================================================
CREATE TABLE IF NOT EXISTS state_registry_districts (
    id UUID PRIMARY KEY,
    state CHAR(2) NOT NULL,
    state_district_id TEXT,
    district_name TEXT NOT NULL,
    administrator_first_name TEXT,
    administrator_last_name TEXT,
    administrator_email TEXT,
    administrator_phone TEXT,
    website_url TEXT,
    raw_data JSONB NOT NULL DEFAULT '{}',
    import_batch_id UUID REFERENCES data_imports(id),
    created_at TIMESTAMP DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_srd_state
    ON state_registry_districts(state);
CREATE INDEX IF NOT EXISTS idx_srd_import_batch
    ON state_registry_districts(import_batch_id);

-- ============================================================================
-- district_matches: at most one accepted NCES link per roster row
-- ============================================================================
CREATE TABLE IF NOT EXISTS district_matches (
    id UUID PRIMARY KEY,
    nces_id VARCHAR(20) NOT NULL,
    state_registry_id UUID NOT NULL UNIQUE
        REFERENCES state_registry_districts(id) ON DELETE CASCADE,
    match_method VARCHAR(30) NOT NULL,
    match_confidence NUMERIC(5,4),
    matched_at TIMESTAMP DEFAULT NOW(),
    matched_by TEXT,
    flag_for_review BOOLEAN DEFAULT FALSE,
    match_details JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_dm_nces_id
    ON district_matches(nces_id);
CREATE INDEX IF NOT EXISTS idx_dm_review
    ON district_matches(flag_for_review) WHERE flag_for_review;
"""


def new_id() -> str:
    return str(uuid.uuid4())


def is_fatal(error: Exception) -> bool:
    """True when the error means the store connection is unusable."""
    return isinstance(error, FATAL_ERRORS)


class RegistryStore:
    """Thin SQL layer over one psycopg2 connection."""

    def __init__(self, conn):
        self.conn = conn

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_existing(self, state: str) -> int:
        """Number of roster rows already persisted for a state."""
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT COUNT(*) FROM state_registry_districts WHERE state = %s",
                [state],
            )
            return int(cur.fetchone()[0])

    def load_reference_entities(self, state: str) -> List[ReferenceEntity]:
        """All NCES districts for a state, ordered by NCES id."""
        with self.conn.cursor() as cur:
            cur.execute("""
                SELECT nces_id, name
                FROM districts
                WHERE state = %s AND nces_id IS NOT NULL
                ORDER BY nces_id
            """, [state])
            rows = cur.fetchall()
        return [ReferenceEntity(reference_id=str(nid), name=name or "") for nid, name in rows]

    def coverage(self, state: Optional[str] = None) -> Coverage:
        """Superintendent coverage in national_registry (one state or overall)."""
        query = """
            SELECT COUNT(*), COUNT(superintendent_name)
            FROM national_registry
        """
        params = []
        if state:
            query += " WHERE state = %s"
            params.append(state)
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            total, with_supt = cur.fetchone()
        return Coverage(total=int(total or 0), with_superintendent=int(with_supt or 0))

    def state_counts(self, state: str) -> Dict[str, int]:
        """Roster and match row counts for a state."""
        with self.conn.cursor() as cur:
            cur.execute("""
                SELECT
                    (SELECT COUNT(*) FROM state_registry_districts WHERE state = %s),
                    (SELECT COUNT(*) FROM district_matches WHERE state_registry_id IN
                        (SELECT id FROM state_registry_districts WHERE state = %s))
            """, [state, state])
            registry_count, matches_count = cur.fetchone()
        return {"registry": int(registry_count), "matches": int(matches_count)}

    # ------------------------------------------------------------------
    # Writes (each commits)
    # ------------------------------------------------------------------

    def create_import_batch(self, batch: ImportBatch) -> str:
        """Insert the data_imports row for a run; returns its id."""
        with self.conn.cursor() as cur:
            cur.execute("""
                INSERT INTO data_imports
                    (id, source_type, source_name, source_url, source_file, state,
                     record_count, imported_at, imported_by, notes)
                VALUES (%s, %s, %s, %s, %s, %s, %s, NOW(), %s, %s)
            """, [
                batch.id, batch.source_type, batch.source_name, batch.source_url,
                batch.source_file, batch.state, batch.record_count,
                batch.imported_by, batch.notes,
            ])
        self.conn.commit()
        return batch.id

    def insert_record(self, record: IncomingRecord, batch_id: str) -> str:
        """Persist one roster row under a batch; returns the new row id."""
        record_id = new_id()
        with self.conn.cursor() as cur:
            cur.execute("""
                INSERT INTO state_registry_districts
                    (id, state, state_district_id, district_name,
                     administrator_first_name, administrator_last_name,
                     administrator_email, administrator_phone, website_url,
                     raw_data, import_batch_id, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            """, [
                record_id, record.state, record.state_district_id, record.district_name,
                record.administrator_first_name, record.administrator_last_name,
                record.administrator_email, record.administrator_phone, record.website_url,
                json.dumps(record.to_payload(), default=str), batch_id,
            ])
        self.conn.commit()
        return record_id

    def insert_match(self, record_id: str, decision: MatchDecision,
                     source_name: str, matched_by: str) -> str:
        """Persist the accepted match edge for a roster row."""
        match_id = new_id()
        with self.conn.cursor() as cur:
            cur.execute("""
                INSERT INTO district_matches
                    (id, nces_id, state_registry_id, match_method, match_confidence,
                     matched_at, matched_by, flag_for_review, match_details)
                VALUES (%s, %s, %s, %s, %s, NOW(), %s, %s, %s)
            """, [
                match_id, decision.entity.reference_id, record_id, decision.method,
                round(decision.score, 4), matched_by, decision.needs_review,
                json.dumps(decision.details(source_name), default=str),
            ])
        self.conn.commit()
        return match_id

    def finalize_batch(self, batch_id: str, record_count: int,
                       success_count: int, error_count: int):
        """Write the final counters onto the run's data_imports row."""
        with self.conn.cursor() as cur:
            cur.execute("""
                UPDATE data_imports
                SET record_count = %s, success_count = %s, error_count = %s
                WHERE id = %s
            """, [record_count, success_count, error_count, batch_id])
        self.conn.commit()

    def rollback(self):
        """Clear an aborted transaction after a failed statement."""
        self.conn.rollback()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def create_tables(self):
        with self.conn.cursor() as cur:
            cur.execute(DDL)
        self.conn.commit()

    def delete_state(self, state: str, keep_imports: bool = False) -> Dict[str, int]:
        """
        Remove every roster row and match for a state.

        Matches go first (foreign key), then roster rows, then the state's
        import batches unless keep_imports is set. Runs as one transaction.
        """
        deleted = {"matches": 0, "registry": 0, "imports": 0}
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM district_matches
                    WHERE state_registry_id IN
                        (SELECT id FROM state_registry_districts WHERE state = %s)
                """, [state])
                deleted["matches"] = cur.rowcount

                cur.execute("DELETE FROM state_registry_districts WHERE state = %s", [state])
                deleted["registry"] = cur.rowcount

                if not keep_imports:
                    cur.execute("""
                        DELETE FROM data_imports
                        WHERE state = %s AND source_type = 'state_registry'
                    """, [state])
                    deleted["imports"] = cur.rowcount
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise
        logger.info(f"Deleted {state}: {deleted}")
        return deleted

    def delete_batch(self, batch_id: str, keep_imports: bool = False) -> Dict[str, int]:
        """Remove everything one import batch created."""
        deleted = {"matches": 0, "registry": 0, "imports": 0}
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM district_matches
                    WHERE state_registry_id IN
                        (SELECT id FROM state_registry_districts WHERE import_batch_id = %s)
                """, [batch_id])
                deleted["matches"] = cur.rowcount

                cur.execute(
                    "DELETE FROM state_registry_districts WHERE import_batch_id = %s",
                    [batch_id],
                )
                deleted["registry"] = cur.rowcount

                if not keep_imports:
                    cur.execute("DELETE FROM data_imports WHERE id = %s", [batch_id])
                    deleted["imports"] = cur.rowcount
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise
        logger.info(f"Deleted batch {batch_id}: {deleted}")
        return deleted
