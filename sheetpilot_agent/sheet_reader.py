# sheetpilot_agent/sheet_reader.py
"""
Load timesheet rows from a spreadsheet and write the run's outcome back out.

Rows are plain dicts keyed by the header row's labels, exactly what
BotOrchestrator.run_automation expects.
"""
from __future__ import annotations

import csv
import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Sequence

from openpyxl import Workbook, load_workbook

from .config_loader import StatusCfg
from .models import BatchResult, Row, RowOutcome
from .styles import (
    bold_font, center_alignment, failed_fill, header_fill, red_font,
    skipped_fill, submitted_fill, thin_border, wrap_alignment,
)

log = logging.getLogger(__name__)

RESULT_COLUMN = "Result"


def _cell_value(value):
    if isinstance(value, datetime):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, date):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, str):
        return value.strip()
    return value


def _is_blank(row: Row) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _read_xlsx(path: Path, sheet: Optional[str]) -> List[Row]:
    wb = load_workbook(str(path), read_only=True, data_only=True)
    try:
        ws = wb[sheet] if sheet else wb.worksheets[0]
        it = ws.iter_rows(values_only=True)
        header = next(it, None)
        if not header:
            return []
        labels = [str(h).strip() if h is not None else "" for h in header]
        rows: List[Row] = []
        for values in it:
            row = {lab: _cell_value(v) for lab, v in zip(labels, values) if lab}
            if not _is_blank(row):
                rows.append(row)
        return rows
    finally:
        wb.close()


def _read_csv(path: Path) -> List[Row]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        rows = []
        for raw in reader:
            row = {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in raw.items() if k}
            if not _is_blank(row):
                rows.append(row)
        return rows


def read_rows(path, sheet: Optional[str] = None) -> List[Row]:
    """Read `.xlsx` (first sheet unless `sheet` is given) or `.csv` into rows."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"No such file: {p}")
    suffix = p.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        rows = _read_xlsx(p, sheet)
    elif suffix == ".csv":
        rows = _read_csv(p)
    else:
        raise ValueError(f"Unsupported file type '{suffix}' (expected .xlsx or .csv)")
    log.info("Read %d rows from %s", len(rows), p.name)
    return rows


def write_results(
    out_path,
    rows: Sequence[Row],
    result: BatchResult,
    status: StatusCfg,
) -> str:
    """
    Write the rows back out with their outcome.

    Rows the form confirmed as submitted get the status column set to the
    "complete" value, so feeding the file back in skips them. Rows that were
    only filled keep their status.
    """
    errors = dict(result.errors)
    labels: List[str] = []
    for row in rows:
        for k in row:
            if k not in labels:
                labels.append(k)
    if status.column not in labels:
        labels.append(status.column)
    labels.append(RESULT_COLUMN)

    wb = Workbook()
    ws = wb.active
    ws.title = "Timesheet"

    for c, label in enumerate(labels, start=1):
        cell = ws.cell(row=1, column=c, value=label)
        cell.font = bold_font
        cell.fill = header_fill
        cell.alignment = center_alignment
        cell.border = thin_border

    status_col = labels.index(status.column) + 1
    result_col = len(labels)
    submitted = set(result.submitted_indices)

    for i, row in enumerate(rows):
        r = i + 2
        for c, label in enumerate(labels[:-1], start=1):
            ws.cell(row=r, column=c, value=row.get(label)).border = thin_border

        outcome = result.outcomes.get(i)
        if outcome is RowOutcome.SUBMIT_SUCCEEDED:
            ws.cell(row=r, column=status_col, value=status.complete_value)
            text, fill = "submitted", submitted_fill
        elif i in submitted:
            text, fill = "filled, not submitted", skipped_fill
        elif i in errors:
            text, fill = errors[i], failed_fill
        elif outcome is RowOutcome.SKIPPED:
            text, fill = "already complete", skipped_fill
        else:
            text, fill = "", None

        cell = ws.cell(row=r, column=result_col, value=text)
        cell.border = thin_border
        cell.alignment = wrap_alignment
        if fill is not None:
            cell.fill = fill
        if i in errors:
            cell.font = red_font

    ws.column_dimensions[ws.cell(row=1, column=result_col).column_letter].width = 48
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(p))
    return str(p)
