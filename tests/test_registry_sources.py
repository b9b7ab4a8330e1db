import sys
from pathlib import Path

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from scripts.registry.sources import (  # noqa: E402
    RosterColumns,
    RosterFormatError,
    parse_admin_name,
    read_roster,
    records_from_frame,
    website_from_email,
)


# ============================================================================
# Name parsing
# ============================================================================

@pytest.mark.parametrize("full,expected", [
    ("Dr. Jane Smith", ("Jane", "Smith")),
    ("Mrs Mary Ann Jones", ("Mary", "Ann Jones")),
    ("Robert De La Cruz, Jr.", ("Robert", "De La Cruz")),
    ("John Adams III", ("John", "Adams")),
    ("Pat Lee, Interim", ("Pat", "Lee")),
    ("Drew Carey", ("Drew", "Carey")),
    ("Madonna", ("", "Madonna")),
    ("", ("", "")),
    (None, ("", "")),
])
def test_parse_admin_name(full, expected):
    assert parse_admin_name(full) == expected


# ============================================================================
# Website from email
# ============================================================================

def test_website_from_district_email():
    assert website_from_email("supt@agawamps.org") == "https://agawamps.org"


def test_website_domain_lowercased():
    assert website_from_email("Supt@AgawamPS.ORG") == "https://agawamps.org"


@pytest.mark.parametrize("email", [
    "someone@gmail.com",
    "someone@yahoo.com",
    "someone@hotmail.com",
    "someone@outlook.com",
    "someone@aol.com",
    "not-an-email",
    "",
    None,
    "user@localhost",
])
def test_website_none_for_free_or_bad(email):
    assert website_from_email(email) is None


# ============================================================================
# Frames
# ============================================================================

def _frame():
    return pd.DataFrame([
        {"District Name": "Agawam Public Schools", "Superintendent": "Dr. Sheryl Stanton",
         "Email": "SStanton@agawamps.org", "Org Code": "00050000"},
        {"District Name": "  ", "Superintendent": "Nobody",
         "Email": "", "Org Code": "00060000"},
        {"District Name": "Amherst Public Schools", "Superintendent": "Michael Morris",
         "Email": "mmorris@gmail.com", "Org Code": ""},
    ])


class TestRecordsFromFrame:

    columns = RosterColumns(
        district="District Name",
        first=None,
        last=None,
        full_name="Superintendent",
        email="Email",
        state_id="Org Code",
    )

    def test_skips_blank_district(self):
        records = records_from_frame(_frame(), "ma", self.columns)
        assert [r.district_name for r in records] == [
            "Agawam Public Schools", "Amherst Public Schools",
        ]

    def test_fields(self):
        first = records_from_frame(_frame(), "MA", self.columns)[0]
        assert first.state == "MA"
        assert first.administrator_first_name == "Sheryl"
        assert first.administrator_last_name == "Stanton"
        assert first.administrator_email == "sstanton@agawamps.org"
        assert first.website_url == "https://agawamps.org"
        assert first.state_district_id == "00050000"
        assert first.raw["Superintendent"] == "Dr. Sheryl Stanton"

    def test_default_state_id_and_free_mail(self):
        amherst = records_from_frame(_frame(), "MA", self.columns)[1]
        assert amherst.state_district_id == "MA-2"
        assert amherst.website_url is None

    def test_first_last_columns(self):
        df = pd.DataFrame([{"district": "Knox County Schools", "first": "Jon",
                            "last": "Rysewyk", "email": ""}])
        record = records_from_frame(df, "TN")[0]
        assert (record.administrator_first_name, record.administrator_last_name) == \
            ("Jon", "Rysewyk")
        assert record.administrator_email is None

    def test_missing_district_column(self):
        df = pd.DataFrame([{"name": "Agawam"}])
        with pytest.raises(RosterFormatError):
            records_from_frame(df, "MA")

    def test_bad_state(self):
        with pytest.raises(ValueError):
            records_from_frame(_frame(), "Mass", self.columns)


# ============================================================================
# Files
# ============================================================================

def test_read_roster_csv(tmp_path):
    path = tmp_path / "roster.csv"
    path.write_text(
        "district,first,last,email\n"
        "Concord School District,Kathleen,Murphy,kmurphy@sau8.org\n"
        "NA,,,\n"
    )
    records = read_roster(path, "NH")
    assert len(records) == 2
    assert records[0].website_url == "https://sau8.org"
    # "NA" is a district name here, not a missing value
    assert records[1].district_name == "NA"


def test_read_roster_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_roster(tmp_path / "nope.csv", "NH")


def test_read_roster_unsupported_format(tmp_path):
    path = tmp_path / "roster.json"
    path.write_text("[]")
    with pytest.raises(ValueError):
        read_roster(path, "NH")


def test_read_roster_xlsx(tmp_path):
    path = tmp_path / "roster.xlsx"
    pd.DataFrame([
        {"district": "Concord School District", "first": "Kathleen", "last": "Murphy",
         "email": "KMurphy@sau8.org", "sau": 8},
        {"district": "Bow School District", "first": "Dean", "last": "Cascadden",
         "email": None, "sau": None},
    ]).to_excel(path, index=False, engine="openpyxl")

    records = read_roster(path, "NH")

    assert [r.district_name for r in records] == ["Concord School District", "Bow School District"]
    assert records[0].administrator_email == "kmurphy@sau8.org"
    assert records[1].administrator_email is None
    assert records[1].raw["sau"] == ""


def test_read_roster_rejects_legacy_xls(tmp_path):
    path = tmp_path / "roster.xls"
    path.write_bytes(b"")
    with pytest.raises(ValueError):
        read_roster(path, "NH")
