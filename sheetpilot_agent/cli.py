# sheetpilot_agent/cli.py
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .billing_periods import get_current_period
from .cancellation import CancellationToken
from .config_loader import AutomationCfg, load_billing_periods, load_config
from .errors import catch_all
from .logging_setup import configure_logging
from .models import BatchResult, Credentials, create_form_target
from .orchestrator import BotOrchestrator
from .routing import submit_by_period
from .security import mask_email
from .sheet_reader import read_rows, write_results
from .storage import (
    clear_credentials,
    get_results_path,
    load_credentials,
    load_last_run,
    save_credentials,
    save_run_report,
)

# UI
from .ui import (
    ProgressPrinter,
    UserCancelled,
    banner,
    confirm,
    input_prompt,
    menu,
    note,
    panel,
    periods_table,
    results_table,
    secret_prompt,
    suppress_ctrlc_echo,
)

log = logging.getLogger(__name__)


def _configure_playwright_for_frozen_app() -> None:
    # Only apply for PyInstaller/frozen builds
    if not getattr(sys, "frozen", False):
        return

    base_dir = Path(sys.executable).resolve().parent
    browsers_dir = base_dir / "_internal" / "ms-playwright"

    # Tell Playwright where the bundled browsers are
    os.environ["PLAYWRIGHT_BROWSERS_PATH"] = str(browsers_dir)

    # Avoid Playwright trying to download browsers on user machines
    os.environ.setdefault("PLAYWRIGHT_SKIP_BROWSER_DOWNLOAD", "1")

_configure_playwright_for_frozen_app()


# ------------------------------ credentials ----------------------------------

def _prompt_credentials() -> Credentials:
    panel("🔐 Smartsheet login (stored locally in ~/.sheetpilot/settings.json)")
    email = input_prompt("Email").strip()
    password = secret_prompt("Password")
    if not email or not password:
        raise UserCancelled()
    creds = Credentials(email, password)
    if confirm("Save these credentials for next time?"):
        save_credentials(creds)
        panel(f"💾 Saved credentials for {mask_email(email)}")
    return creds


def get_credentials() -> Credentials:
    creds = load_credentials()
    if creds:
        note(f"Using saved login for {mask_email(creds.email)}")
        return creds
    return _prompt_credentials()


@catch_all(flow="Credentials", on_cancel="stay")
def credentials_menu() -> None:
    creds = load_credentials()
    current = mask_email(creds.email) if creds else "none saved"
    choice = menu(f"Credentials ({current})", ["Update", "Clear", "Back"])
    if choice == "1":
        _prompt_credentials()
    elif choice == "2":
        if clear_credentials():
            panel("✅ Saved credentials removed.")
        else:
            panel("⚠️ No saved credentials to remove.")


# ------------------------------ actions --------------------------------------

def run_file(path: str, cfg: AutomationCfg, *, headless: Optional[bool] = None, creds: Optional[Credentials] = None) -> BatchResult:
    """
    Submit every row of `path`, routed to the form of each row's billing period.
    Ctrl-C cancels the run and closes the browser; rows submitted before the
    cancel are still written to the results file.
    """
    rows = read_rows(path)
    if not rows:
        panel("⚠️ No rows found in that file.")
        return BatchResult.from_rows([], [], 0)

    creds = creds or get_credentials()
    token = CancellationToken()
    mode = "submit" if cfg.submit.enabled else "fill only"
    panel(f"📊 {len(rows)} rows from {Path(path).name} ({mode})")

    with suppress_ctrlc_echo():
        try:
            with ProgressPrinter() as progress:
                result = submit_by_period(
                    rows, tuple(creds), cfg,
                    cancel_token=token, progress_callback=progress, headless=headless,
                )
        except KeyboardInterrupt:
            token.cancel("Cancelled by user")
            result = BatchResult.cancelled_run([], [], len(rows), token.reason)

    columns = [cfg.fields[k].label for k in ("date", "project_code", "hours") if k in cfg.fields]
    results_table(rows, result, columns)

    save_run_report(result, source=str(path))
    out = write_results(get_results_path(str(path)), rows, result, cfg.status)
    panel(f"💾 Results saved -> {out}")
    return result


@catch_all(flow="Login", on_cancel="stay")
def login_only(cfg: AutomationCfg, *, headless: Optional[bool] = None) -> None:
    periods = load_billing_periods()
    period = get_current_period(periods) or (periods[0] if periods else None)
    if period is None:
        panel("❌ No billing periods configured.")
        return
    creds = get_credentials()
    orch = BotOrchestrator(cfg, create_form_target(period.form_url, period.form_id), headless=headless)
    try:
        with suppress_ctrlc_echo():
            orch.start()
            orch.login(creds.email, creds.password)
            ok = orch.login_manager.validate_login_state(0)
    finally:
        orch.close()
    if ok:
        panel(f"✅ Logged in to the {period.name} form as {mask_email(creds.email)}")
    else:
        panel("⚠️ Login steps finished but the form page was not reached. Check your credentials.")


def show_periods() -> None:
    periods = load_billing_periods()
    periods_table(periods, get_current_period(periods))


def show_last_run() -> None:
    last = load_last_run()
    if not last:
        note("No previous run recorded.")
        return
    note(
        f"Last run {last.get('finished_at', '?')}: {last.get('success_count', 0)} submitted, "
        f"{last.get('failure_count', 0)} failed of {last.get('total_rows', 0)} "
        f"({Path(last.get('source') or '-').name})"
    )


@catch_all(flow="Submit", on_cancel="stay")
def submit_interactive(cfg: AutomationCfg, *, headless: Optional[bool] = None) -> None:
    path = input_prompt("Path to timesheet (.xlsx or .csv)").strip().strip('"')
    if not path:
        raise UserCancelled()
    if not Path(path).expanduser().exists():
        panel(f"❌ File not found: {path}")
        return
    run_file(str(Path(path).expanduser()), cfg, headless=headless)


# ------------------------------ main menu ------------------------------------

def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="sheetpilot", description="Submit timesheet rows to Smartsheet.")
    ap.add_argument("file", nargs="?", help="spreadsheet to submit (.xlsx/.csv); omit for the menu")
    ap.add_argument("--headless", action="store_true", help="run the browser without a window")
    ap.add_argument("--no-submit", action="store_true", help="fill the form but do not press submit")
    ap.add_argument("--config", help="alternate automation_config.yaml")
    ap.add_argument("--log-level", default=None, help="console log level (default INFO)")
    return ap.parse_args(argv)


@catch_all(flow="CLI", on_cancel="exit")   # Ctrl-C at the main menu exits cleanly
def main(argv: Optional[list] = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    cfg = load_config(Path(args.config) if args.config else None)
    if args.no_submit:
        cfg = cfg.with_overrides(submit=replace(cfg.submit, enabled=False))
    headless = True if args.headless else None

    if args.file:
        result = run_file(args.file, cfg, headless=headless)
        return 0 if result.success else 1

    banner("Smartsheet timesheet automation")
    show_last_run()
    try:
        while True:
            choice = menu("Choose an option:", [
                "Submit a timesheet file",
                "Log in only (check credentials)",
                "Manage saved credentials",
                "Show billing periods",
                "Quit",
            ])

            if choice == "1":
                submit_interactive(cfg, headless=headless)
            elif choice == "2":
                login_only(cfg, headless=headless)
            elif choice == "3":
                credentials_menu()
            elif choice == "4":
                show_periods()
            elif choice == "5":
                panel("Goodbye! 👋")
                return 0
    except UserCancelled:
        panel("👋 Bye!")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
