from __future__ import annotations

from datetime import datetime

import pytest
from openpyxl import Workbook, load_workbook

from sheetpilot_agent.config_loader import StatusCfg
from sheetpilot_agent.models import BatchResult, RowOutcome
from sheetpilot_agent.sheet_reader import RESULT_COLUMN, read_rows, write_results

STATUS = StatusCfg(column="Status", complete_value="Complete")


def _xlsx(path, header, *rows):
    wb = Workbook()
    ws = wb.active
    ws.append(header)
    for r in rows:
        ws.append(r)
    wb.save(str(path))
    return path


def test_read_xlsx_formats_dates_and_drops_blank_rows(tmp_path):
    path = _xlsx(
        tmp_path / "week.xlsx",
        ["Project", "Date", "Hours", " Task Description "],
        ["OSC-BBB", datetime(2025, 10, 6), 8, " Pump repair "],
        [None, None, None, None],
        ["FL-Carver Techs", "10/07/2025", 7.5, "Install"],
    )
    rows = read_rows(path)
    assert rows == [
        {"Project": "OSC-BBB", "Date": "10/06/2025", "Hours": 8, "Task Description": "Pump repair"},
        {"Project": "FL-Carver Techs", "Date": "10/07/2025", "Hours": 7.5, "Task Description": "Install"},
    ]


def test_read_named_sheet(tmp_path):
    wb = Workbook()
    wb.active.append(["ignored"])
    ws = wb.create_sheet("Hours")
    ws.append(["Project", "Date"])
    ws.append(["P1", "10/01/2025"])
    path = tmp_path / "multi.xlsx"
    wb.save(str(path))
    assert read_rows(path, sheet="Hours") == [{"Project": "P1", "Date": "10/01/2025"}]


def test_read_csv(tmp_path):
    path = tmp_path / "week.csv"
    path.write_text("﻿Project,Date,Hours\nP1,10/01/2025,8\n,,\nP2,10/02/2025, 4 \n", encoding="utf-8")
    assert read_rows(path) == [
        {"Project": "P1", "Date": "10/01/2025", "Hours": "8"},
        {"Project": "P2", "Date": "10/02/2025", "Hours": "4"},
    ]


def test_read_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_rows(tmp_path / "nope.xlsx")


def test_read_unsupported_extension(tmp_path):
    path = tmp_path / "week.txt"
    path.write_text("x")
    with pytest.raises(ValueError, match="Unsupported"):
        read_rows(path)


def test_write_results_marks_submitted_rows_complete(tmp_path):
    rows = [
        {"Project": "P1", "Date": "10/01/2025"},
        {"Project": "P2", "Date": "10/02/2025"},
        {"Project": "P3", "Date": "10/03/2025", "Status": "Complete"},
    ]
    outcomes = {0: RowOutcome.SUBMIT_SUCCEEDED, 1: RowOutcome.UNEXPECTED_ERROR, 2: RowOutcome.SKIPPED}
    result = BatchResult.from_rows([0], [(1, "Field 'Hours' did not become visible within timeout")], 3, outcomes)

    out = write_results(tmp_path / "out" / "result.xlsx", rows, result, STATUS)

    ws = load_workbook(out).active
    header = [c.value for c in ws[1]]
    assert header == ["Project", "Date", "Status", RESULT_COLUMN]
    assert [c.value for c in ws[2]] == ["P1", "10/01/2025", "Complete", "submitted"]
    assert ws.cell(row=3, column=3).value is None
    assert "did not become visible" in ws.cell(row=3, column=4).value
    assert ws.cell(row=4, column=3).value == "Complete"
    assert ws.cell(row=4, column=4).value == "already complete"


def test_written_file_reads_back_with_status(tmp_path):
    rows = [{"Project": "P1", "Date": "10/01/2025"}]
    result = BatchResult.from_rows([0], [], 1, {0: RowOutcome.SUBMIT_SUCCEEDED})
    out = write_results(tmp_path / "r.xlsx", rows, result, STATUS)
    back = read_rows(out)
    assert back[0]["Status"] == "Complete"


def test_filled_rows_are_not_marked_complete(tmp_path):
    rows = [{"Project": "P1", "Date": "10/01/2025"}]
    result = BatchResult.from_rows([0], [], 1, {0: RowOutcome.FILLED})
    out = write_results(tmp_path / "r.xlsx", rows, result, STATUS)
    ws = load_workbook(out).active
    assert ws.cell(row=2, column=3).value is None
    assert ws.cell(row=2, column=4).value == "filled, not submitted"
    assert read_rows(out)[0].get("Status") in (None, "")


def test_cancelled_run_keeps_rows_submitted_before_cancel(tmp_path):
    rows = [{"Project": "P1", "Date": "10/01/2025"}, {"Project": "P2", "Date": "01/05/2026"}]
    result = BatchResult.cancelled_run([0], [], 2, "Cancelled by user", {0: RowOutcome.SUBMIT_SUCCEEDED})
    out = write_results(tmp_path / "r.xlsx", rows, result, STATUS)
    ws = load_workbook(out).active
    assert ws.cell(row=2, column=3).value == "Complete"
    assert ws.cell(row=3, column=3).value is None
