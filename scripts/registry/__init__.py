"""
District Registry Reconciliation

Links state-supplied superintendent rosters to NCES districts with a
confidence score and a per-run audit trail.

Usage:
    from scripts.registry import DistrictMatcher, ReconciliationLoader

    matcher = DistrictMatcher(candidates, state="MA")
    decision = matcher.match("Agawam Public Schools")

    loader = ReconciliationLoader(RegistryStore(conn), "MA")
    stats = loader.run(records, RosterSource(name="Massachusetts MASS"))
"""

from .config import LoaderConfig, JURISDICTIONS, get_jurisdiction
from .loader import ReconciliationLoader, run_load
from .matcher import DistrictMatcher, match_district
from .models import IncomingRecord, ReferenceEntity, RosterSource, RunStats
from .normalizer import normalize_district_name
from .similarity import jaro_winkler
from .store import RegistryStore

__all__ = [
    'LoaderConfig',
    'JURISDICTIONS',
    'get_jurisdiction',
    'ReconciliationLoader',
    'run_load',
    'DistrictMatcher',
    'match_district',
    'IncomingRecord',
    'ReferenceEntity',
    'RosterSource',
    'RunStats',
    'normalize_district_name',
    'jaro_winkler',
    'RegistryStore',
]
