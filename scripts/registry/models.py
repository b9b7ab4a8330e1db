"""
Data structures for registry reconciliation runs.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class IncomingRecord:
    """
    One parsed roster row, before it is persisted.

    Attributes:
        state: Two-letter postal code of the supplying state
        district_name: District name as the state writes it
        state_district_id: State-side identifier, if the roster has one
        administrator_first_name / administrator_last_name: Superintendent name
        administrator_email: Lower-cased email
        administrator_phone: Phone as given
        website_url: District website (derived from email when absent)
        raw: Original row, passed through unchanged into raw_data
    """
    state: str
    district_name: str
    state_district_id: Optional[str] = None
    administrator_first_name: str = ""
    administrator_last_name: str = ""
    administrator_email: Optional[str] = None
    administrator_phone: Optional[str] = None
    website_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_payload(self) -> Dict[str, Any]:
        """Row payload stored in state_registry_districts.raw_data."""
        payload = asdict(self)
        payload["raw"] = dict(self.raw)
        return payload


@dataclass(frozen=True)
class ReferenceEntity:
    """One NCES district: the stable id and the canonical name."""
    reference_id: str
    name: str


@dataclass
class MatchDecision:
    """Accepted link between an incoming name and a reference district."""
    entity: ReferenceEntity
    method: str
    score: float
    needs_review: bool
    normalized_source: str = ""
    normalized_target: str = ""

    def details(self, source_name: str) -> Dict[str, Any]:
        """Free-form payload for district_matches.match_details."""
        return {
            "state_name": source_name,
            "nces_name": self.entity.name,
            "score": round(self.score, 4),
            "normalized_state_name": self.normalized_source,
            "normalized_nces_name": self.normalized_target,
        }


@dataclass(frozen=True)
class RosterSource:
    """Where a roster came from; copied onto the run's data_imports row."""
    name: str
    url: Optional[str] = None
    file: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ImportBatch:
    """Provenance row in data_imports; one per run."""
    id: str
    state: str
    source_name: str
    record_count: int
    source_type: str = "state_registry"
    source_url: Optional[str] = None
    source_file: Optional[str] = None
    imported_by: Optional[str] = None
    notes: Optional[str] = None
    success_count: int = 0
    error_count: int = 0
    imported_at: Optional[datetime] = None


@dataclass(frozen=True)
class Coverage:
    """Superintendent coverage in national_registry."""
    total: int
    with_superintendent: int

    @property
    def pct(self) -> float:
        if not self.total:
            return 0.0
        return round(self.with_superintendent * 100.0 / self.total, 1)

    def __str__(self) -> str:
        return f"{self.with_superintendent:,}/{self.total:,} ({self.pct:.1f}%)"


class LoadState(str, Enum):
    NOT_STARTED = "not_started"
    GUARDED = "guarded"
    BATCH_OPENED = "batch_opened"
    LOADING = "loading"
    FINALIZED = "finalized"
    ABORTED = "aborted"


@dataclass
class RunStats:
    """
    Statistics for one reconciliation run.
    """
    state: str
    started_at: datetime
    status: LoadState = LoadState.NOT_STARTED
    batch_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    total_incoming: int = 0
    reference_count: int = 0
    existing_records: int = 0
    loaded: int = 0
    matched: int = 0
    flagged_for_review: int = 0
    errors: int = 0
    by_method: Dict[str, int] = field(default_factory=dict)
    unmatched_count: int = 0
    unmatched_sample: List[str] = field(default_factory=list)
    error_sample: List[str] = field(default_factory=list)
    near_misses: List[Dict[str, Any]] = field(default_factory=list)
    coverage_before: Optional[Coverage] = None
    coverage_after: Optional[Coverage] = None
    overall_coverage: Optional[Coverage] = None

    @property
    def aborted(self) -> bool:
        return self.status == LoadState.ABORTED

    @property
    def match_rate(self) -> float:
        if not self.loaded:
            return 0.0
        return self.matched / self.loaded * 100

    def record_match(self, decision: MatchDecision):
        self.matched += 1
        self.by_method[decision.method] = self.by_method.get(decision.method, 0) + 1
        if decision.needs_review:
            self.flagged_for_review += 1

    def record_unmatched(self, name: str, sample_size: int):
        self.unmatched_count += 1
        if len(self.unmatched_sample) < sample_size:
            self.unmatched_sample.append(name)

    def record_error(self, name: str, error: Exception, sample_size: int):
        self.errors += 1
        if len(self.error_sample) < sample_size:
            self.error_sample.append(f"{name}: {error}")

    def to_dict(self) -> Dict[str, Any]:
        def _cov(c: Optional[Coverage]):
            if c is None:
                return None
            return {"total": c.total, "with_superintendent": c.with_superintendent, "pct": c.pct}

        return {
            "state": self.state,
            "status": self.status.value,
            "batch_id": self.batch_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_incoming": self.total_incoming,
            "reference_count": self.reference_count,
            "existing_records": self.existing_records,
            "loaded": self.loaded,
            "matched": self.matched,
            "match_rate": round(self.match_rate, 2),
            "flagged_for_review": self.flagged_for_review,
            "errors": self.errors,
            "by_method": self.by_method,
            "unmatched": self.unmatched_count,
            "unmatched_sample": self.unmatched_sample,
            "error_sample": self.error_sample,
            "near_misses": self.near_misses,
            "coverage_before": _cov(self.coverage_before),
            "coverage_after": _cov(self.coverage_after),
            "overall_coverage": _cov(self.overall_coverage),
        }
