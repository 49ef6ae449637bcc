from __future__ import annotations

import pytest
import yaml

from sheetpilot_agent.config_loader import load_billing_periods, load_config, parse_config
from sheetpilot_agent.errors import ConfigError
from sheetpilot_agent.models import ClickStep, InputStep, WaitStep

from conftest import CONFIG_DIR


def _raw():
    return yaml.safe_load((CONFIG_DIR / "automation_config.yaml").read_text(encoding="utf-8"))


def test_packaged_config_loads():
    cfg = load_config(CONFIG_DIR / "automation_config.yaml")
    assert cfg.field_order[0] == "project_code"
    assert cfg.fields["date"].label == "Date"
    assert cfg.fields["project_code"].type == "dropdown"
    assert set(cfg.critical_fields) == {"project_code", "date", "hours", "task_description"}
    assert cfg.submit.button_candidates[0] == cfg.submit.button_locator
    assert cfg.navigation_retries == 3
    kinds = {type(s) for s in cfg.login_steps}
    assert kinds == {WaitStep, InputStep, ClickStep}


def test_missing_section_is_a_config_error():
    raw = _raw()
    del raw["submit"]
    with pytest.raises(ConfigError, match="submit"):
        parse_config(raw)


def test_field_order_must_name_defined_fields():
    raw = _raw()
    raw["field_order"].append("overtime")
    with pytest.raises(ConfigError, match="overtime"):
        parse_config(raw)


def test_bad_login_step_is_a_config_error():
    raw = _raw()
    raw["login_steps"].append({"action": "teleport", "locator": "#x"})
    with pytest.raises(ConfigError):
        parse_config(raw)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SHEETPILOT_HEADLESS", "1")
    monkeypatch.setenv("SHEETPILOT_SUBMIT", "false")
    monkeypatch.setenv("SHEETPILOT_GLOBAL_TIMEOUT", "3.5")
    cfg = parse_config(_raw())
    assert cfg.browser.headless is True
    assert cfg.submit.enabled is False
    assert cfg.waits.global_timeout == 3.5


def test_bad_env_number(monkeypatch):
    monkeypatch.setenv("SHEETPILOT_GLOBAL_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        parse_config(_raw())


def test_billing_periods_load():
    periods = load_billing_periods(CONFIG_DIR / "billing_periods.yaml")
    assert [p.id for p in periods] == ["Q4-2025", "Q1-2026"]
    assert all(p.form_id in p.form_url for p in periods)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml")
