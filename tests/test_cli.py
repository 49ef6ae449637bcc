from __future__ import annotations

from openpyxl import load_workbook

from sheetpilot_agent import cli, storage
from sheetpilot_agent.models import BatchResult, Credentials, RowOutcome

CREDS = Credentials("me@example.com", "pw")


def _week_csv(tmp_path):
    path = tmp_path / "week.csv"
    path.write_text(
        "Project,Date,Hours,Task Description\n"
        "P1,10/05/2025,8,Pump repair\n"
        "P2,01/05/2026,4,Install\n",
        encoding="utf-8",
    )
    return path


def _results_sheet():
    files = sorted(storage.get_results_dir().glob("week_*.xlsx"))
    assert len(files) == 1
    return load_workbook(files[0]).active


def test_cancelled_run_still_writes_submitted_rows(tmp_path, cfg, monkeypatch):
    path = _week_csv(tmp_path)

    def cancelled(rows, credentials, cfg, **kw):
        return BatchResult.cancelled_run([0], [], len(rows), "Cancelled by user", {0: RowOutcome.SUBMIT_SUCCEEDED})

    monkeypatch.setattr(cli, "submit_by_period", cancelled)
    result = cli.run_file(str(path), cfg, creds=CREDS)

    assert result.cancelled
    ws = _results_sheet()
    header = [c.value for c in ws[1]]
    status_col = header.index(cfg.status.column) + 1
    assert ws.cell(row=2, column=status_col).value == cfg.status.complete_value
    assert ws.cell(row=3, column=status_col).value is None
    assert storage.load_last_run()["cancelled"] is True


def test_interrupt_writes_results_without_completions(tmp_path, cfg, monkeypatch):
    path = _week_csv(tmp_path)

    def interrupted(*a, **kw):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "submit_by_period", interrupted)
    result = cli.run_file(str(path), cfg, creds=CREDS)

    assert result.cancelled
    assert result.submitted_indices == ()
    ws = _results_sheet()
    header = [c.value for c in ws[1]]
    status_col = header.index(cfg.status.column) + 1
    assert [ws.cell(row=r, column=status_col).value for r in (2, 3)] == [None, None]
