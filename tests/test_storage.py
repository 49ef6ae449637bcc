from __future__ import annotations

import json

import pytest

from sheetpilot_agent import storage
from sheetpilot_agent.models import BatchResult, Credentials
from sheetpilot_agent.security import mask_email, mask_secret, redact_emails


def test_app_dir_follows_env(tmp_path):
    assert storage.get_app_dir() == tmp_path / "home"
    assert storage.get_results_dir().is_dir()


def test_credentials_round_trip():
    assert storage.load_credentials() is None
    storage.save_credentials(Credentials("me@example.com", "s3cret"))
    creds = storage.load_credentials()
    assert creds == Credentials("me@example.com", "s3cret")
    assert "s3cret" not in repr(creds)


def test_save_keeps_other_settings():
    path = storage.get_settings_path()
    path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
    storage.save_credentials(Credentials("me@example.com", "pw"))
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["theme"] == "dark"
    assert data["smartsheet"]["email"] == "me@example.com"


def test_save_rejects_empty_password():
    with pytest.raises(ValueError):
        storage.save_credentials(Credentials("me@example.com", ""))


def test_clear_credentials():
    assert storage.clear_credentials() is False
    storage.save_credentials(Credentials("me@example.com", "pw"))
    assert storage.clear_credentials() is True
    assert storage.load_credentials() is None


def test_corrupt_settings_are_ignored():
    storage.get_settings_path().write_text("{not json", encoding="utf-8")
    assert storage.load_credentials() is None


def test_run_report():
    assert storage.load_last_run() == {}
    result = BatchResult.from_rows([0], [(1, "boom")], 2)
    storage.save_run_report(result, source="week.xlsx", extra={"periods": ["Q4-2025"]})
    data = storage.load_last_run()
    assert data["source"] == "week.xlsx"
    assert data["submitted_indices"] == [0]
    assert data["errors"] == [[1, "boom"]]
    assert data["periods"] == ["Q4-2025"]
    assert "finished_at" in data


def test_results_path_uses_source_stem():
    p = storage.get_results_path("/tmp/my week.xlsx")
    assert p.parent == storage.get_results_dir()
    assert p.name.startswith("my week_") and p.suffix == ".xlsx"


@pytest.mark.parametrize("email,masked", [
    ("jane.doe@example.com", "ja******@example.com"),
    ("ab@example.com", "a*@example.com"),
    ("not-an-email", "not-an-email"),
    ("", ""),
])
def test_mask_email(email, masked):
    assert mask_email(email) == masked


def test_redact_emails_in_text():
    text = "login failed for jane.doe@example.com on retry"
    assert redact_emails(text) == "login failed for ja******@example.com on retry"
    assert mask_secret("pw") == "***"
