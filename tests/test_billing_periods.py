from __future__ import annotations

from datetime import date, datetime

import pytest

from sheetpilot_agent.billing_periods import (
    get_current_period,
    get_period_by_id,
    group_rows_by_period,
    parse_row_date,
    resolve_period_for_date,
    validate_period_availability,
)
from sheetpilot_agent.models import BillingPeriod

PERIODS = [
    BillingPeriod("Q4-2025", "Q4 2025", "2025-10-01", "2025-12-31", "https://f/q4", "q4"),
    BillingPeriod("Q1-2026", "Q1 2026", "2026-01-01", "2026-03-31", "https://f/q1", "q1"),
]


@pytest.mark.parametrize("raw,iso", [
    ("01/15/2025", "2025-01-15"),
    ("1/5/2025", "2025-01-05"),
    ("12-31-2025", "2025-12-31"),
    (" 3/9/2026 ", "2026-03-09"),
    (date(2025, 11, 3), "2025-11-03"),
    (datetime(2025, 11, 3, 8, 30), "2025-11-03"),
])
def test_parse_row_date(raw, iso):
    assert parse_row_date(raw) == iso


def test_parse_row_date_rejects_bad_format():
    with pytest.raises(ValueError, match="Invalid date format: 2025-01-15. Expected mm/dd/yyyy"):
        parse_row_date("2025-01-15")


@pytest.mark.parametrize("raw", ["13/01/2025", "01/32/2025", "01/01/1899", "00/10/2025"])
def test_parse_row_date_rejects_out_of_range(raw):
    with pytest.raises(ValueError, match="Invalid date values"):
        parse_row_date(raw)


def test_resolve_is_inclusive():
    assert resolve_period_for_date("2025-10-01", PERIODS).id == "Q4-2025"
    assert resolve_period_for_date("2025-12-31", PERIODS).id == "Q4-2025"
    assert resolve_period_for_date("2026-01-01", PERIODS).id == "Q1-2026"
    assert resolve_period_for_date("2025-09-30", PERIODS) is None


@pytest.mark.parametrize("bad", ["2026-02-30", "2025-1-5", "", "not a date"])
def test_resolve_rejects_invalid_iso(bad):
    assert resolve_period_for_date(bad, PERIODS) is None


def test_validate_period_availability_lists_periods():
    assert validate_period_availability("2025-11-01", PERIODS) is None
    assert validate_period_availability("", PERIODS) == "Please enter a date"
    msg = validate_period_availability("2024-01-01", PERIODS)
    assert msg == "Date must be in Q4 2025 (10/01-12/31) or Q1 2026 (01/01-03/31)"


def test_group_rows_by_period():
    rows = [
        {"Date": "11/03/2025"},
        {"Date": "02/10/2026"},
        {"Date": "garbage"},
        {"Date": "12/01/2025"},
        {"Date": None},
        {"Date": "06/01/2024"},
    ]
    assert group_rows_by_period(rows, "Date", PERIODS) == {"Q4-2025": [0, 3], "Q1-2026": [1]}


def test_lookup_helpers():
    assert get_period_by_id("Q1-2026", PERIODS).form_id == "q1"
    assert get_period_by_id("Q9-2099", PERIODS) is None
    assert get_current_period(PERIODS, today=date(2025, 12, 24)).id == "Q4-2025"
    assert get_current_period(PERIODS, today=date(2030, 1, 1)) is None
