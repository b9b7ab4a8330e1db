"""
Shared test fixtures for the registry reconciliation test suite.
"""
import sys
import os
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scripts.registry.models import IncomingRecord, ReferenceEntity, RosterSource


@pytest.fixture()
def springfield_candidates():
    """Two NCES districts that share a town name."""
    return [
        ReferenceEntity(reference_id="1", name="Springfield School District"),
        ReferenceEntity(reference_id="2", name="West Springfield Schools"),
    ]


@pytest.fixture()
def roster_source():
    return RosterSource(name="Test State DOE", url="https://doe.example.gov/supts.csv")


@pytest.fixture()
def make_record():
    """Build an IncomingRecord with sensible defaults."""
    def _make(name, state="MA", **kwargs):
        return IncomingRecord(state=state, district_name=name, **kwargs)
    return _make
