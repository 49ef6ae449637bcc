# sheetpilot_agent/logging_setup.py
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

from .security import redact_emails

LOG_FILENAME = "sheetpilot.log"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class RedactingFilter(logging.Filter):
    """Masks email addresses in the rendered message before any handler sees it."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        record.msg = redact_emails(msg)
        record.args = ()
        return True


def default_log_path() -> Path:
    from .storage import get_app_dir
    return get_app_dir() / LOG_FILENAME


def configure_logging(
    level: Union[int, str, None] = None,
    log_file: Optional[Path] = None,
    *,
    console: bool = True,
) -> logging.Logger:
    """
    Set up the `sheetpilot_agent` logger: rich output on the terminal and a
    rotating plain-text file. Calling it again replaces the handlers.

    Level defaults to SHEETPILOT_LOG_LEVEL, then INFO.
    """
    level = level or os.environ.get("SHEETPILOT_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("sheetpilot_agent")
    root.setLevel(logging.DEBUG)
    root.propagate = False
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    redact = RedactingFilter()

    if console:
        rh = RichHandler(rich_tracebacks=False, show_path=False, markup=False)
        rh.setLevel(level)
        rh.addFilter(redact)
        root.addHandler(rh)

    path = Path(log_file) if log_file else default_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(str(path), maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        fh.addFilter(redact)
        root.addHandler(fh)
    except OSError as e:
        root.warning("File logging disabled (%s): %s", path, e)

    # playwright's own logger is noisy at DEBUG
    logging.getLogger("playwright").setLevel(logging.WARNING)
    return root
