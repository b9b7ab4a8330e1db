"""
Roster file readers.

Turns a state's superintendent roster (CSV or Excel) into IncomingRecords.
Column names differ from state to state, so they are passed in through
RosterColumns.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from .config import normalize_state_code
from .models import IncomingRecord

FREE_MAIL_DOMAINS = ("gmail", "yahoo", "hotmail", "outlook", "aol")

HONORIFIC_RE = re.compile(r"^(dr\.?|mr\.?|mrs\.?|ms\.?|miss)\s+", re.IGNORECASE)
ROLE_SUFFIX_RE = re.compile(r",?\s*\b(interim|acting)$", re.IGNORECASE)
GENERATION_SUFFIX_RE = re.compile(r",?\s*\b(jr\.?|sr\.?|iii|ii|iv)$", re.IGNORECASE)


class RosterFormatError(ValueError):
    """Roster file is missing a required column."""


@dataclass
class RosterColumns:
    """Column names in a roster file. Only `district` is required."""
    district: str = "district"
    first: Optional[str] = "first"
    last: Optional[str] = "last"
    # Single "Dr. Jane Q. Smith" style column, used when first/last are absent
    full_name: Optional[str] = None
    email: Optional[str] = "email"
    phone: Optional[str] = None
    state_id: Optional[str] = None


def parse_admin_name(full_name: Optional[str]) -> Tuple[str, str]:
    """
    Split a superintendent's name into (first, last).

    Honorifics, a trailing Interim/Acting and generational suffixes are
    dropped. A single token is treated as the last name.

    Examples:
        >>> parse_admin_name("Dr. Jane Smith")
        ('Jane', 'Smith')

        >>> parse_admin_name("Robert De La Cruz, Jr.")
        ('Robert', 'De La Cruz')
    """
    if not full_name:
        return "", ""

    cleaned = full_name.strip()
    cleaned = HONORIFIC_RE.sub("", cleaned)
    cleaned = ROLE_SUFFIX_RE.sub("", cleaned).strip()
    cleaned = GENERATION_SUFFIX_RE.sub("", cleaned).strip().rstrip(",").strip()

    parts = cleaned.split()
    if not parts:
        return "", ""
    if len(parts) == 1:
        return "", parts[0]
    return parts[0], " ".join(parts[1:])


def website_from_email(email: Optional[str]) -> Optional[str]:
    """District website guessed from an email domain; None for free-mail."""
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    if not domain or "." not in domain:
        return None
    if any(provider in domain for provider in FREE_MAIL_DOMAINS):
        return None
    return "https://" + domain


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".xlsx":
        return pd.read_excel(path, engine="openpyxl", dtype=str).fillna("")
    if suffix in {".csv", ".txt"}:
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    raise ValueError(f"Unsupported roster format: {path.suffix}. Use CSV or XLSX.")


def _cell(row: Dict[str, str], column: Optional[str]) -> str:
    if not column:
        return ""
    return str(row.get(column, "") or "").strip()


def records_from_frame(df: pd.DataFrame, state: str,
                       columns: Optional[RosterColumns] = None) -> List[IncomingRecord]:
    """Build IncomingRecords from an already-loaded roster frame."""
    columns = columns or RosterColumns()
    state = normalize_state_code(state)

    if columns.district not in df.columns:
        raise RosterFormatError(
            f"Roster has no '{columns.district}' column. "
            f"Columns: {', '.join(map(str, df.columns))}"
        )

    records = []
    for i, row in enumerate(df.to_dict(orient="records")):
        district = _cell(row, columns.district)
        if not district:
            continue

        first = _cell(row, columns.first)
        last = _cell(row, columns.last)
        if not (first or last) and columns.full_name:
            first, last = parse_admin_name(_cell(row, columns.full_name))

        email = _cell(row, columns.email).lower() or None
        records.append(IncomingRecord(
            state=state,
            district_name=district,
            state_district_id=_cell(row, columns.state_id) or f"{state}-{i}",
            administrator_first_name=first,
            administrator_last_name=last,
            administrator_email=email,
            administrator_phone=_cell(row, columns.phone) or None,
            website_url=website_from_email(email),
            raw={str(k): v for k, v in row.items()},
        ))
    return records


def read_roster(path: Union[str, Path], state: str,
                columns: Optional[RosterColumns] = None) -> List[IncomingRecord]:
    """
    Read a roster file into IncomingRecords.

    Args:
        path: CSV or XLSX file
        state: Two-letter postal code the roster belongs to
        columns: Column mapping (defaults: district, first, last, email)

    Returns:
        One record per row with a non-blank district name
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Roster file not found: {file_path}")
    return records_from_frame(_read_frame(file_path), state, columns)
