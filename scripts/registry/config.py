"""
Registry Matching Configuration

Defines match thresholds, method tags, LoaderConfig, and the per-state
name vocabulary table used by the normalizer.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

# Acceptance / tagging thresholds
ACCEPT_THRESHOLD = 0.80
REVIEW_THRESHOLD = 0.85
NORMALIZED_THRESHOLD = 0.90
EXACT_MATCH_SCORE = 0.95

# Method tags written to district_matches.match_method
METHOD_EXACT = "exact_name"
METHOD_NORMALIZED = "normalized_name"
METHOD_FUZZY = "fuzzy"

MATCH_METHODS = (METHOD_EXACT, METHOD_NORMALIZED, METHOD_FUZZY)

DEFAULT_SOURCE_TYPE = "state_registry"
DEFAULT_MATCHED_BY = "scripts.registry"

_STATE_CODE = re.compile(r"^[A-Z]{2}$")


@dataclass
class LoaderConfig:
    """Run-level settings passed into ReconciliationLoader."""
    matched_by: str = DEFAULT_MATCHED_BY
    source_type: str = DEFAULT_SOURCE_TYPE
    # How many unmatched names to keep for the summary
    unmatched_sample_size: int = 20
    # How many unmatched names get a nearest-reference hint
    near_miss_limit: int = 10


# A vocabulary entry is (regex, replacement). Patterns run against the
# lower-cased, trimmed name, in table order, before punctuation removal.
Vocabulary = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class JurisdictionConfig:
    """Name vocabulary for one state's roster."""
    code: str
    name: str
    vocabulary: Vocabulary
    # Also strip the state's own postal code as a standalone token
    strip_postal_code: bool = False
    notes: str = ""

    def effective_vocabulary(self) -> Vocabulary:
        if not self.strip_postal_code:
            return self.vocabulary
        return self.vocabulary + ((rf"\b{self.code.lower()}\b", ""),)


DEFAULT_VOCABULARY: Vocabulary = (
    (r"\bpublic school district\b", ""),
    (r"\bpublic schools?\b", ""),
    (r"\bschool district\b", ""),
    (r"\bschools\b", ""),
    (r"\bcounty\b", ""),
    (r"\bmunicipal\b", ""),
)


# ============================================================================
# PER-STATE VOCABULARY
# ============================================================================

JURISDICTIONS: Dict[str, JurisdictionConfig] = {

    "AZ": JurisdictionConfig(
        code="AZ",
        name="Arizona",
        vocabulary=(
            (r"\bunified school district\b", ""),
            (r"\bunion high school district\b", ""),
            (r"\bschool district\b", ""),
            (r"\bunified district\b", ""),
            (r"\belementary district\b", ""),
            (r"\bpublic schools?\b", ""),
            (r"\bcharter school\b", ""),
            (r"\(.*?\)", ""),  # district numbers in parentheses
        ),
    ),

    "KS": JurisdictionConfig(
        code="KS",
        name="Kansas",
        vocabulary=(
            (r"^usd\s*\d+\s*", ""),
            (r"^ksd\s*", ""),
            (r"^kssb\s*", ""),
            (r"\bunified school district\b", ""),
            (r"\bschool district\b", ""),
            (r"\bpublic schools?\b", ""),
            (r"-", " "),
        ),
        notes="USD numbers precede the district name in the KSDE directory.",
    ),

    "MA": JurisdictionConfig(
        code="MA",
        name="Massachusetts",
        vocabulary=(
            (r"\bregl\.\s*school\b", "regional"),
            (r"\bregional school district\b", "rsd"),
            (r"\bpublic schools?\b", "ps"),
            (r"\bschool district\b", "sd"),
        ),
    ),

    "MD": JurisdictionConfig(
        code="MD",
        name="Maryland",
        vocabulary=(
            (r"\bpublic school system\b", ""),
            (r"\bpublic schools?\b", ""),
            (r"\bcounty\b", ""),
            (r"\bcity\b", ""),
        ),
    ),

    "MN": JurisdictionConfig(
        code="MN",
        name="Minnesota",
        vocabulary=(
            (r"\bindependent school district\b", "isd"),
            (r"\bpublic school district\b", "psd"),
            (r"\bschool district\b", "sd"),
            (r"\bpublic schools?\b", "ps"),
        ),
    ),

    "NH": JurisdictionConfig(
        code="NH",
        name="New Hampshire",
        vocabulary=(
            (r"\bcooperative school district\b", ""),
            (r"\bregional school district\b", ""),
            (r"\bschool district\b", ""),
            (r"\bsau \d+\b", ""),
        ),
        notes="SAU numbers are supervisory unions, not districts.",
    ),

    "OR": JurisdictionConfig(
        code="OR",
        name="Oregon",
        vocabulary=(
            (r"\bsd\s*\d+j?\b", ""),  # SD 5J, SD 16J
            (r"\bschool district\b", ""),
            (r"\belementary\b", ""),
            (r"\bunified\b", ""),
            (r"\bunion high\b", ""),
        ),
    ),

    "SD": JurisdictionConfig(
        code="SD",
        name="South Dakota",
        vocabulary=(
            (r"\bschool district \d+-\d+\b", ""),
            (r"\bschool district\b", ""),
            (r"\b\d+-\d+\b", ""),  # district ids like 06-1
        ),
    ),

    "TN": JurisdictionConfig(
        code="TN",
        name="Tennessee",
        vocabulary=(
            (r"\bspecial school district\b", ""),
            (r"\bspecial school system\b", ""),
            (r"\bcounty schools\b", ""),
            (r"\bcity schools\b", ""),
            (r"\bmunicipal schools\b", ""),
            (r"\bcommunity schools\b", ""),
            (r"\bschool district\b", ""),
            (r"\bschools\b", ""),
            (r"\bcounty\b", ""),
            (r"\bcity\b", ""),
            (r"\bssd\b", ""),
        ),
        strip_postal_code=True,
    ),

    "VT": JurisdictionConfig(
        code="VT",
        name="Vermont",
        vocabulary=(
            (r"\bunified union school district\b", ""),
            (r"\bunified school district\b", ""),
            (r"\bsupervisory union\b", ""),
            (r"\bsupervisory district\b", ""),
            (r"\bschool district\b", ""),
            (r"\buusd\b", ""),
        ),
    ),

    "WI": JurisdictionConfig(
        code="WI",
        name="Wisconsin",
        vocabulary=(
            (r"\barea school district\b", "asd"),
            (r"\bschool district( of)?\b", "sd"),
            (r"\bpublic schools?\b", "ps"),
        ),
    ),

    "WV": JurisdictionConfig(
        code="WV",
        name="West Virginia",
        vocabulary=(
            (r"\bcounty school district\b", ""),
            (r"\bcounty schools\b", ""),
            (r"\bschool district\b", ""),
            (r"\bschools\b", ""),
            (r"\bcounty\b", ""),
        ),
    ),
}


def normalize_state_code(code: str) -> str:
    """Upper-case and validate a two-letter postal code."""
    value = (code or "").strip().upper()
    if not _STATE_CODE.match(value):
        raise ValueError(f"State must be a 2-letter code (e.g., MD, CA), got: {code!r}")
    return value


def get_jurisdiction(code: Optional[str]) -> JurisdictionConfig:
    """Vocabulary for a state; states without one get the default table."""
    if not code:
        return JurisdictionConfig(code="", name="Default", vocabulary=DEFAULT_VOCABULARY)
    state = normalize_state_code(code)
    if state in JURISDICTIONS:
        return JURISDICTIONS[state]
    return JurisdictionConfig(code=state, name=state, vocabulary=DEFAULT_VOCABULARY)


def list_jurisdictions() -> List[str]:
    """List state codes that have their own vocabulary."""
    return sorted(JURISDICTIONS.keys())
