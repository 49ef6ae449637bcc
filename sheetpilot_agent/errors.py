# sheetpilot_agent/errors.py
from __future__ import annotations

import os
import sys
import traceback
from functools import wraps
from datetime import datetime

LOG_DIR = os.path.join(os.path.expanduser("~"), ".sheetpilot")
LOG_PATH = os.path.join(LOG_DIR, "sheetpilot_errors.log")


# ──────────────────────────────── Bot errors ──────────────────────────────────

class BotError(RuntimeError):
    """Base class for everything the automation layer raises on purpose."""


class ConfigError(BotError):
    pass


class LaunchError(BotError):
    pass


class NotStartedError(BotError):
    pass


class NavigationError(BotError):
    def __init__(self, url: str, attempts: int, cause: object = None):
        self.url = url
        self.attempts = attempts
        msg = f"Could not navigate to {url} after {attempts} attempts"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class FieldNotVisibleError(BotError):
    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' did not become visible within timeout")


class FieldValidationError(BotError):
    def __init__(self, field_key: str, message: str):
        self.field_key = field_key
        self.validation_message = message
        super().__init__(f"Validation error on field '{field_key}': {message}")


class SubmitButtonNotFoundError(BotError):
    def __init__(self, tried: int):
        self.tried = tried
        super().__init__(f"No submit button found ({tried} selectors tried)")


class AutomationCancelled(BotError):
    """Raised at a cancellation checkpoint; never recorded as a row failure."""


# ──────────────────────────────── CLI safety net ──────────────────────────────

def _log_error(e: BaseException) -> str:
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with open(LOG_PATH, "a", encoding="utf-8") as f:
            f.write(f"\n[{ts}] {type(e).__name__}: {e}\n")
            traceback.print_exception(type(e), e, e.__traceback__, file=f)
        return LOG_PATH
    except OSError:
        return ""


def catch_all(*, flow: str = "App", on_cancel: str = "stay"):
    """
    Decorator to make top-level loops resilient.
    - on_cancel: "stay" -> show Cancelled panel and return to the loop.
                 "exit" -> show Cancelled panel and exit the program.
    """
    assert on_cancel in ("stay", "exit")

    def _decorator(fn):
        @wraps(fn)
        def _wrapped(*args, **kwargs):
            from .ui import UserCancelled, panel

            try:
                return fn(*args, **kwargs)
            except (KeyboardInterrupt, EOFError, UserCancelled):
                panel("↩️ Cancelled.")
                if on_cancel == "exit":
                    sys.exit(0)
                return None
            except SystemExit:
                raise
            except Exception as e:
                path = _log_error(e)
                hint = f"\nDetails -> {path}" if path else ""
                panel(f"❌ {flow}: {e}{hint}")
                return None
        return _wrapped
    return _decorator
