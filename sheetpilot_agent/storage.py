# sheetpilot_agent/storage.py
from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import tempfile
import shutil

from .models import BatchResult, Credentials
from .security import mask_email

logger = logging.getLogger(__name__)

APP_DIRNAME = ".sheetpilot"  # ~/.sheetpilot
SETTINGS_FILENAME = "settings.json"
LAST_RUN_FILENAME = "last_run.json"
RESULTS_DIRNAME = "results"


# ---------- path helpers ----------

def get_app_dir() -> Path:
    """
    Cross-platform data dir:
      macOS/Linux: ~/.sheetpilot
      Windows: %USERPROFILE%\\.sheetpilot
    SHEETPILOT_HOME overrides the location.
    """
    override = os.environ.get("SHEETPILOT_HOME")
    app_dir = Path(override) if override else Path.home() / APP_DIRNAME
    app_dir.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(app_dir, 0o700)
    except OSError:
        pass
    return app_dir


def get_settings_path() -> Path:
    return get_app_dir() / SETTINGS_FILENAME


def get_last_run_path() -> Path:
    return get_app_dir() / LAST_RUN_FILENAME


def get_results_dir() -> Path:
    d = get_app_dir() / RESULTS_DIRNAME
    d.mkdir(parents=True, exist_ok=True)
    return d


# ---------- json io (robust) ----------

def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f) or {}
    except (OSError, ValueError) as e:
        logger.warning(f"[storage] failed to read {path}: {e}")
        return {}


def _atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    """
    Write JSON atomically to avoid corrupting files on crash/kill.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    shutil.move(tmp, str(path))


# ---------- credentials ----------

def load_credentials() -> Optional[Credentials]:
    """
    Returns the stored Smartsheet login, or None if nothing usable is saved.
    """
    raw = _read_json(get_settings_path())
    c = raw.get("smartsheet") or {}
    email = (c.get("email") or "").strip()
    password = c.get("password") or ""
    if email and password:
        return Credentials(email, password)
    return None


def save_credentials(creds: Credentials) -> None:
    if not creds.email or not creds.password:
        raise ValueError("email and password are both required")
    p = get_settings_path()
    raw = _read_json(p)
    raw["smartsheet"] = {"email": creds.email, "password": creds.password}
    _atomic_write_json(p, raw)
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    logger.info(f"[storage] saved credentials for {mask_email(creds.email)}")


def clear_credentials() -> bool:
    """
    Forget the stored login. Returns True if something was removed.
    """
    p = get_settings_path()
    raw = _read_json(p)
    if "smartsheet" not in raw:
        return False
    raw.pop("smartsheet")
    _atomic_write_json(p, raw)
    return True


# ---------- run reports ----------

def save_run_report(result: BatchResult, source: str = "", extra: Optional[Dict[str, Any]] = None) -> Path:
    """
    Record the last batch outcome (overwrites the previous one).
    """
    payload: Dict[str, Any] = {
        "finished_at": datetime.now().isoformat(timespec="seconds"),
        "source": source,
        **result.to_dict(),
    }
    if extra:
        payload.update(extra)
    p = get_last_run_path()
    _atomic_write_json(p, payload)
    return p


def load_last_run() -> Dict[str, Any]:
    return _read_json(get_last_run_path())


def get_results_path(source: str) -> Path:
    """
    ~/.sheetpilot/results/<source stem>_<timestamp>.xlsx
    """
    stem = Path(source).stem or "timesheet"
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return get_results_dir() / f"{stem}_{ts}.xlsx"
