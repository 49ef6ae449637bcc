from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from sheetpilot_agent.logging_setup import configure_logging


@pytest.fixture()
def app_logger():
    yield
    root = logging.getLogger("sheetpilot_agent")
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)


def test_handlers_and_level(app_logger, tmp_path):
    root = configure_logging("warning", tmp_path / "app.log")
    rich = [h for h in root.handlers if isinstance(h, RichHandler)]
    assert len(rich) == 1 and rich[0].level == logging.WARNING
    assert logging.getLogger("playwright").level == logging.WARNING


def test_reconfigure_replaces_handlers(app_logger, tmp_path):
    configure_logging("INFO", tmp_path / "a.log")
    root = configure_logging("INFO", tmp_path / "a.log")
    assert len(root.handlers) == 2


def test_file_log_masks_emails(app_logger, tmp_path):
    path = tmp_path / "app.log"
    configure_logging("DEBUG", path, console=False)
    logging.getLogger("sheetpilot_agent.orchestrator").info("Logged in as %s", "jane.doe@example.com")
    text = path.read_text(encoding="utf-8")
    assert "ja******@example.com" in text
    assert "jane.doe@example.com" not in text


def test_level_from_env(app_logger, tmp_path, monkeypatch):
    monkeypatch.setenv("SHEETPILOT_LOG_LEVEL", "ERROR")
    root = configure_logging(log_file=tmp_path / "x.log")
    assert [h.level for h in root.handlers if isinstance(h, RichHandler)] == [logging.ERROR]


def test_default_log_file_lives_in_app_dir(app_logger, tmp_path):
    root = configure_logging("INFO", console=False)
    files = [h.baseFilename for h in root.handlers if isinstance(h, logging.FileHandler)]
    assert files == [str(tmp_path / "home" / "sheetpilot.log")]
