# sheetpilot_agent/billing_periods.py
"""
Billing periods ("quarters"): each date range maps to exactly one Smartsheet form.

The table itself lives in config/billing_periods.yaml; everything here is a pure
lookup over it.
"""
from __future__ import annotations

import re
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .config_loader import load_billing_periods
from .models import BillingPeriod, Row

_ROW_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_row_date(value) -> str:
    """
    Convert a row's date cell to ISO `YYYY-MM-DD`.

    Accepts m/d/yyyy or mm/dd/yyyy with '/' or '-' separators, or a date/datetime
    object straight from a spreadsheet. Raises ValueError otherwise.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    m = _ROW_DATE_RE.match(text)
    if not m:
        raise ValueError(f"Invalid date format: {text}. Expected mm/dd/yyyy")
    month, day, year = (int(g) for g in m.groups())
    if not (1 <= month <= 12 and 1 <= day <= 31 and 1900 <= year <= 2100):
        raise ValueError(f"Invalid date values: {text}")
    return f"{year:04d}-{month:02d}-{day:02d}"


def _is_calendar_date(iso_date: str) -> bool:
    if not isinstance(iso_date, str) or not _ISO_RE.match(iso_date):
        return False
    try:
        date.fromisoformat(iso_date)
    except ValueError:
        return False
    return True


def _table(periods: Optional[Sequence[BillingPeriod]]) -> Sequence[BillingPeriod]:
    return load_billing_periods() if periods is None else periods


def resolve_period_for_date(iso_date: str, periods: Optional[Sequence[BillingPeriod]] = None) -> Optional[BillingPeriod]:
    if not _is_calendar_date(iso_date):
        return None
    for period in _table(periods):
        if period.contains(iso_date):
            return period
    return None


def describe_periods(periods: Optional[Sequence[BillingPeriod]] = None) -> str:
    return " or ".join(f"{p.name} ({p.short_range()})" for p in _table(periods))


def validate_period_availability(iso_date: str, periods: Optional[Sequence[BillingPeriod]] = None) -> Optional[str]:
    """None when the date has a form to go to; otherwise a user-facing message."""
    if not iso_date:
        return "Please enter a date"
    if resolve_period_for_date(iso_date, periods) is None:
        return f"Date must be in {describe_periods(periods)}"
    return None


def group_rows_by_period(
    rows: Iterable[Row],
    date_label: str = "Date",
    periods: Optional[Sequence[BillingPeriod]] = None,
) -> Dict[str, List[int]]:
    """
    Map period id -> indices of rows whose date falls in it, in first-seen order.
    Rows without a parseable date or a matching period are left out.
    """
    grouped: Dict[str, List[int]] = OrderedDict()
    for i, row in enumerate(rows):
        raw = row.get(date_label)
        if raw in (None, ""):
            continue
        try:
            iso = parse_row_date(raw)
        except ValueError:
            continue
        period = resolve_period_for_date(iso, periods)
        if period is not None:
            grouped.setdefault(period.id, []).append(i)
    return grouped


def get_period_by_id(period_id: str, periods: Optional[Sequence[BillingPeriod]] = None) -> Optional[BillingPeriod]:
    for p in _table(periods):
        if p.id == period_id:
            return p
    return None


def get_current_period(periods: Optional[Sequence[BillingPeriod]] = None, today: Optional[date] = None) -> Optional[BillingPeriod]:
    today = today or date.today()
    return resolve_period_for_date(today.isoformat(), periods)
