# sheetpilot_agent/config_loader.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError
from .models import BillingPeriod, FieldDescriptor, LoginStep, parse_login_step

# ──────────────────────────────────────────────────────────────────────────────
# Dataclasses for structured config
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class BrowserCfg:
    headless: bool = False
    channel: Optional[str] = None
    viewport_width: int = 1400
    viewport_height: int = 1000
    user_agent: str = ""
    launch_args: List[str] = field(default_factory=list)
    block_analytics: bool = True


@dataclass
class WaitCfg:
    base_timeout: float = 0.2
    max_timeout: float = 10.0
    multiplier: float = 1.2
    global_timeout: float = 10.0
    short_wait: float = 0.3


@dataclass
class SubmitCfg:
    enabled: bool = True
    verify_timeout_ms: int = 3000
    success_min_status: int = 200
    success_max_status: int = 299
    quick_retry_delay: float = 1.0
    full_retry_delay: float = 2.0
    button_locator: str = "button[type='submit']"
    fallback_locators: List[str] = field(default_factory=list)
    dom_success_indicators: List[str] = field(default_factory=list)
    response_success_indicators: List[str] = field(default_factory=list)

    @property
    def button_candidates(self) -> List[str]:
        out = [self.button_locator]
        out += [s for s in self.fallback_locators if s != self.button_locator]
        return out


@dataclass
class StatusCfg:
    column: str = "Status"
    complete_value: str = "Complete"


@dataclass
class AutomationCfg:
    browser: BrowserCfg
    waits: WaitCfg
    submit: SubmitCfg
    status: StatusCfg
    fields: Dict[str, FieldDescriptor]
    field_order: List[str]
    critical_fields: Tuple[str, ...]
    project_to_tool_label: Dict[str, str]
    login_steps: List[LoginStep]
    login_success_urls: List[str] = field(default_factory=list)
    navigation_retries: int = 3

    def with_overrides(self, **groups) -> "AutomationCfg":
        """Copy with whole groups swapped, e.g. cfg.with_overrides(waits=WaitCfg(...))."""
        return replace(self, **groups)


# Singletons (memoized after first load)
_cfg: Optional[AutomationCfg] = None
_periods: Optional[List[BillingPeriod]] = None


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def _config_dir() -> Path:
    # The config/ folder lives inside the package: sheetpilot_agent/config/
    return Path(__file__).parent / "config"


def _require_keys(data: dict, keys: list[str], root_label: str = "config") -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"Section {root_label} must be a mapping")
    missing = [k for k in keys if k not in data]
    if missing:
        raise ConfigError(f"Missing keys in {root_label}: {missing}")


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return data or {}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _build_fields(raw: dict) -> Dict[str, FieldDescriptor]:
    fields: Dict[str, FieldDescriptor] = {}
    for key, spec in raw.items():
        _require_keys(spec, ["label", "locator"], f"fields.{key}")
        fields[key] = FieldDescriptor(
            key=key,
            label=str(spec["label"]),
            locator=str(spec["locator"]),
            type=str(spec.get("type", "text")),
            optional=bool(spec.get("optional", False)),
        )
    return fields


# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def parse_config(data: dict) -> AutomationCfg:
    """Validate a raw config mapping and build the typed config."""
    _require_keys(
        data,
        ["browser", "waits", "submit", "status", "fields", "field_order", "login_steps"],
        "automation_config.yaml",
    )
    _require_keys(data["submit"], ["button_locator"], "submit")

    b = data["browser"]
    viewport = b.get("viewport") or {}
    browser_cfg = BrowserCfg(
        headless=_env_bool("SHEETPILOT_HEADLESS", bool(b.get("headless", False))),
        channel=b.get("channel") or None,
        viewport_width=int(viewport.get("width", 1400)),
        viewport_height=int(viewport.get("height", 1000)),
        user_agent=str(b.get("user_agent", "")),
        launch_args=list(b.get("launch_args") or []),
        block_analytics=bool(b.get("block_analytics", True)),
    )

    w = data["waits"]
    wait_cfg = WaitCfg(
        base_timeout=float(w.get("base_timeout", 0.2)),
        max_timeout=float(w.get("max_timeout", 10.0)),
        multiplier=float(w.get("multiplier", 1.2)),
        global_timeout=_env_float("SHEETPILOT_GLOBAL_TIMEOUT", float(w.get("global_timeout", 10.0))),
        short_wait=float(w.get("short_wait", 0.3)),
    )
    if wait_cfg.multiplier < 1.0:
        raise ConfigError("waits.multiplier must be >= 1.0")

    s = data["submit"]
    submit_cfg = SubmitCfg(
        enabled=_env_bool("SHEETPILOT_SUBMIT", bool(s.get("enabled", True))),
        verify_timeout_ms=int(s.get("verify_timeout_ms", 3000)),
        success_min_status=int(s.get("success_min_status", 200)),
        success_max_status=int(s.get("success_max_status", 299)),
        quick_retry_delay=float(s.get("quick_retry_delay", 1.0)),
        full_retry_delay=float(s.get("full_retry_delay", 2.0)),
        button_locator=str(s["button_locator"]),
        fallback_locators=list(s.get("fallback_locators") or []),
        dom_success_indicators=list(s.get("dom_success_indicators") or []),
        response_success_indicators=list(s.get("response_success_indicators") or []),
    )

    st = data["status"]
    status_cfg = StatusCfg(
        column=str(st.get("column", "Status")),
        complete_value=str(st.get("complete_value", "Complete")),
    )

    fields = _build_fields(data["fields"])
    field_order = list(data["field_order"])
    unknown = [k for k in field_order if k not in fields]
    if unknown:
        raise ConfigError(f"field_order names undefined fields: {unknown}")

    try:
        login_steps = [parse_login_step(step) for step in data["login_steps"]]
    except (KeyError, ValueError) as e:
        raise ConfigError(f"Bad login step: {e}") from e

    return AutomationCfg(
        browser=browser_cfg,
        waits=wait_cfg,
        submit=submit_cfg,
        status=status_cfg,
        fields=fields,
        field_order=field_order,
        critical_fields=tuple(data.get("critical_fields") or ("project_code", "date", "hours", "task_description")),
        project_to_tool_label=dict(data.get("project_to_tool_label") or {}),
        login_steps=login_steps,
        login_success_urls=list(data.get("login_success_urls") or []),
        navigation_retries=int(data.get("navigation_retries", 3)),
    )


def load_config(path: Optional[Path] = None) -> AutomationCfg:
    """
    Load the automation configuration.

    With no path, config/automation_config.yaml is loaded once and cached.
    An explicit path is always read fresh.
    """
    global _cfg
    if path is not None:
        return parse_config(_read_yaml(Path(path)))
    if _cfg:
        return _cfg
    _cfg = parse_config(_read_yaml(_config_dir() / "automation_config.yaml"))
    return _cfg


def parse_billing_periods(data: dict) -> List[BillingPeriod]:
    _require_keys(data, ["periods"], "billing_periods.yaml")
    periods = []
    for i, raw in enumerate(data["periods"] or []):
        _require_keys(raw, ["id", "name", "start", "end", "form_url", "form_id"], f"periods[{i}]")
        periods.append(BillingPeriod(
            id=str(raw["id"]),
            name=str(raw["name"]),
            start=str(raw["start"]),
            end=str(raw["end"]),
            form_url=str(raw["form_url"]),
            form_id=str(raw["form_id"]),
        ))
    return periods


def load_billing_periods(path: Optional[Path] = None) -> List[BillingPeriod]:
    """
    Load and cache the billing period table from config/billing_periods.yaml.
    """
    global _periods
    if path is not None:
        return parse_billing_periods(_read_yaml(Path(path)))
    if _periods is not None:
        return _periods
    _periods = parse_billing_periods(_read_yaml(_config_dir() / "billing_periods.yaml"))
    return _periods
