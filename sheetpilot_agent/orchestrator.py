# sheetpilot_agent/orchestrator.py
"""
Row orchestrator: logs in once, then fills (and optionally submits) each
timesheet row against one Smartsheet form.

    orch = BotOrchestrator(cfg, create_form_target(url, form_id))
    orch.start()
    try:
        result = orch.run_automation(rows, (email, password), token)
    finally:
        orch.close()

Rows are processed strictly in order on a single page. Only a failed login
and cancellation abort the batch; every other problem is recorded against the
row that caused it.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .authentication import LoginManager
from .billing_periods import parse_row_date, resolve_period_for_date
from .browser_session import BrowserSession
from .cancellation import CancellationToken
from .config_loader import AutomationCfg
from .errors import AutomationCancelled, FieldValidationError
from .form_interactor import FormInteractor
from .models import BatchResult, BillingPeriod, FieldDescriptor, FormTarget, Row, RowOutcome
from .security import mask_email
from .submission_monitor import SubmissionMonitor

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
PeriodResolver = Callable[[str], Optional[BillingPeriod]]

REQUIRED_FIELDS = ("hours", "project_code", "date")
RECOVERY_TIMEOUT_MS = 30_000


def has_value(value) -> bool:
    """False for blanks and the "nan"/"none" placeholders spreadsheets produce."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return str(value).strip().lower() not in ("", "nan", "none")


def _format_value(value) -> str:
    # spreadsheets hand back 8.0 for "8"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class BotOrchestrator:
    def __init__(
        self,
        cfg: AutomationCfg,
        form_target: FormTarget,
        *,
        headless: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
        session: Optional[BrowserSession] = None,
        login_manager: Optional[LoginManager] = None,
        form_interactor: Optional[FormInteractor] = None,
        submission_monitor: Optional[SubmissionMonitor] = None,
        period_resolver: Optional[PeriodResolver] = None,
    ) -> None:
        if form_target is None:
            raise ValueError("form_target is required; build one with create_form_target()")
        self.cfg = cfg
        self.form_target = form_target
        self.progress_callback = progress_callback
        self.session = session or BrowserSession(cfg.browser, headless=headless)
        self.login_manager = login_manager or LoginManager(cfg, self.session, form_target)
        self.form_interactor = form_interactor or FormInteractor(cfg, self.session)
        self.submission_monitor = submission_monitor or SubmissionMonitor(cfg, self.session, form_target)
        self.period_resolver = period_resolver or resolve_period_for_date
        self._token = CancellationToken()

    # ────────────────── Lifecycle ──────────────────

    def start(self) -> None:
        self.session.launch()
        self.session.open_context(0)

    def close(self) -> None:
        self.session.close_all()

    def login(self, email: str, password: str) -> None:
        self.login_manager.login(email, password, 0)

    # ────────────────── Batch ──────────────────

    def run_automation(
        self,
        rows: Sequence[Row],
        credentials: Tuple[str, str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        total = len(rows)
        token = cancel_token or CancellationToken()
        self._bind_token(token)
        unregister = token.on_cancel(self.close)

        submitted: List[int] = []
        errors: List[Tuple[int, str]] = []
        outcomes: Dict[int, RowOutcome] = {}
        try:
            token.raise_if_cancelled("before start")
            email, password = credentials
            log.info("Starting automation for %d rows as %s", total, mask_email(email))

            self._progress(10, "Logging in")
            self.login(email, password)
            token.raise_if_cancelled("after login")
            self._progress(20, "Login complete")

            for i, row in enumerate(rows):
                token.raise_if_cancelled(f"row {i}")
                outcome, message = self._process_row(i, row)
                outcomes[i] = outcome
                if outcome.succeeded:
                    submitted.append(i)
                elif outcome is not RowOutcome.SKIPPED:
                    errors.append((i, message or outcome.value))
                self._progress(20 + int(80 * (i + 1) / max(total, 1)), f"Row {i + 1}/{total}: {outcome.value}")

            result = BatchResult.from_rows(submitted, errors, total, outcomes)
            log.info(
                "Automation finished: %d submitted, %d failed, %d skipped",
                result.success_count, result.failure_count,
                total - result.success_count - result.failure_count,
            )
            return result
        except AutomationCancelled as e:
            log.info("Automation cancelled: %s", e)
            self.close()
            return BatchResult.cancelled_run(submitted, errors, total, str(e), outcomes)
        except KeyboardInterrupt:
            token.cancel("Cancelled by user")
            log.info("Automation interrupted after %d submitted rows", len(submitted))
            self.close()
            return BatchResult.cancelled_run(submitted, errors, total, token.reason, outcomes)
        except Exception as e:
            log.error("Automation failed: %s", e)
            return BatchResult.whole_batch_failure(total, f"Automation failed: {e}")
        finally:
            unregister()

    # ────────────────── Rows ──────────────────

    def _process_row(self, idx: int, row: Row) -> Tuple[RowOutcome, Optional[str]]:
        st = self.cfg.status
        status = row.get(st.column)
        if status is not None and str(status).strip() == st.complete_value:
            log.info("Row %d already %s; skipping", idx, st.complete_value)
            return RowOutcome.SKIPPED, None

        fields = self._build_fields(row)

        if not all(has_value(fields.get(k)) for k in REQUIRED_FIELDS):
            log.warning("Row %d: missing required fields", idx)
            return RowOutcome.VALIDATION_FAILED, "Missing required fields"

        period_error = self._check_period(fields.get("date"))
        if period_error is not None:
            outcome, message = period_error
            log.warning("Row %d: %s", idx, message)
            return outcome, message

        try:
            self.form_interactor.wait_for_form_ready(0)
            self._fill_fields(fields)

            self._checkpoint(f"row {idx} before submit")
            if not self.cfg.submit.enabled:
                log.info("Row %d filled (submit disabled)", idx)
                return RowOutcome.FILLED, None

            if self._submit_with_retry(fields, idx):
                log.info("Row %d submitted", idx)
                return RowOutcome.SUBMIT_SUCCEEDED, None
            return RowOutcome.SUBMIT_EXHAUSTED, "Form submission failed after 3 attempts (initial + quick retry + full retry)"
        except AutomationCancelled:
            raise
        except FieldValidationError as e:
            log.warning("Row %d rejected by form: %s", idx, e)
            self._attempt_recovery(idx)
            return RowOutcome.VALIDATION_FAILED, str(e)
        except Exception as e:
            log.error("Row %d failed: %s", idx, e)
            self._attempt_recovery(idx)
            return RowOutcome.UNEXPECTED_ERROR, str(e) or type(e).__name__

    def _build_fields(self, row: Row) -> Dict[str, object]:
        fields: Dict[str, object] = {}
        for key, desc in self.cfg.fields.items():
            if desc.label in row:
                fields[key] = row[desc.label]
        return fields

    def _check_period(self, date_value) -> Optional[Tuple[RowOutcome, str]]:
        if not has_value(date_value):
            return None
        try:
            iso = parse_row_date(date_value)
        except ValueError as e:
            return RowOutcome.VALIDATION_FAILED, str(e)
        period = self.period_resolver(iso)
        if period is not None and period.form_id != self.form_target.form_id:
            shown = date_value if isinstance(date_value, str) else iso
            return (
                RowOutcome.QUARTER_MISMATCH,
                f"Date {str(shown).strip()} belongs to {period.name} but form configured for a different period",
            )
        return None

    def _tool_descriptor(self, fields: Dict[str, object], desc: FieldDescriptor) -> FieldDescriptor:
        project = fields.get("project_code")
        label = self.cfg.project_to_tool_label.get(str(project).strip()) if project is not None else None
        if not label:
            return desc
        return FieldDescriptor(desc.key, label, f"input[aria-label='{label}']", desc.type, desc.optional)

    def _fill_fields(self, fields: Dict[str, object]) -> None:
        order = list(self.cfg.field_order) + [k for k in fields if k not in self.cfg.field_order]
        for key in order:
            if key not in fields or not has_value(fields[key]):
                continue
            desc = self.cfg.fields.get(key)
            if desc is None:
                continue
            if key == "tool":
                desc = self._tool_descriptor(fields, desc)
            self.form_interactor.fill_field(desc, _format_value(fields[key]), 0)

    def _submit_with_retry(self, fields: Dict[str, object], idx: int) -> bool:
        s = self.cfg.submit

        if self.submission_monitor.submit(0):
            return True

        self._checkpoint(f"row {idx} before quick retry")
        log.info("Row %d: submit not confirmed, quick retry", idx)
        self.session.pause(s.quick_retry_delay, 0)
        if self.submission_monitor.submit(0):
            return True

        self._checkpoint(f"row {idx} before full retry")
        log.info("Row %d: quick retry failed, re-filling the form", idx)
        self.session.pause(s.full_retry_delay, 0)
        self._checkpoint(f"row {idx} before re-fill")
        self.form_interactor.wait_for_form_ready(0)
        self._fill_fields(fields)
        if self.submission_monitor.submit(0):
            return True

        log.error("Row %d: submission failed after 3 attempts", idx)
        return False

    def _bind_token(self, token: CancellationToken) -> None:
        self._token = token
        for part in (self.login_manager, self.form_interactor, self.submission_monitor):
            part.cancel_token = token

    def _checkpoint(self, where: str) -> None:
        self._token.raise_if_cancelled(where)

    def _attempt_recovery(self, idx: int) -> None:
        try:
            log.info("Row %d: navigating back to the form", idx)
            self.session.navigate_to(0, self.form_target.base_url, RECOVERY_TIMEOUT_MS)
        except Exception as e:
            log.error("Could not recover after row %d: %s", idx, e)

    def _progress(self, percent: int, message: str) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(min(100, max(0, percent)), message)
        except Exception as e:
            log.debug("Progress callback raised: %s", e)
