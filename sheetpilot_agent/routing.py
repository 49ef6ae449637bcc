# sheetpilot_agent/routing.py
"""
Split a mixed batch by billing period and send each group to its own form.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .billing_periods import (
    describe_periods,
    get_period_by_id,
    group_rows_by_period,
    parse_row_date,
    resolve_period_for_date,
)
from .cancellation import CancellationToken
from .config_loader import AutomationCfg, load_billing_periods
from .models import BatchResult, BillingPeriod, FormTarget, Row, RowOutcome, create_form_target
from .orchestrator import REQUIRED_FIELDS, BotOrchestrator, has_value

log = logging.getLogger(__name__)

OrchestratorFactory = Callable[[FormTarget], BotOrchestrator]


def submit_by_period(
    rows: Sequence[Row],
    credentials: Tuple[str, str],
    cfg: AutomationCfg,
    *,
    periods: Optional[Sequence[BillingPeriod]] = None,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback=None,
    headless: Optional[bool] = None,
    orchestrator_factory: Optional[OrchestratorFactory] = None,
) -> BatchResult:
    """
    Run one orchestrator per billing period and merge the results.

    Indices in the returned result refer to `rows`, not to the per-period
    batches. Rows whose date has no form are reported as errors. A cancelled
    run still reports the rows that were submitted before the cancel.
    """
    periods = load_billing_periods() if periods is None else periods
    token = cancel_token or CancellationToken()
    date_label = cfg.fields["date"].label if "date" in cfg.fields else "Date"

    def _factory(target: FormTarget) -> BotOrchestrator:
        if orchestrator_factory is not None:
            return orchestrator_factory(target)
        return BotOrchestrator(
            cfg, target, headless=headless, progress_callback=progress_callback,
            period_resolver=lambda iso: resolve_period_for_date(iso, periods),
        )

    groups = group_rows_by_period(rows, date_label, periods)
    routed = {i for idxs in groups.values() for i in idxs}

    submitted: List[int] = []
    errors: List[Tuple[int, str]] = []
    outcomes: Dict[int, RowOutcome] = {}

    status = cfg.status
    for i, row in enumerate(rows):
        if i in routed:
            continue
        if str(row.get(status.column, "")).strip() == status.complete_value:
            outcomes[i] = RowOutcome.SKIPPED
            continue
        errors.append((i, _unrouted_reason(row, cfg, date_label, periods)))
        outcomes[i] = RowOutcome.VALIDATION_FAILED

    cancelled = False
    for period_id, idxs in groups.items():
        if token.is_cancelled():
            cancelled = True
            break
        period = get_period_by_id(period_id, periods)
        target = create_form_target(period.form_url, period.form_id)
        log.info("Submitting %d rows to %s", len(idxs), period.name)

        orch = _factory(target)
        try:
            orch.start()
            result = orch.run_automation([rows[i] for i in idxs], credentials, token)
        except KeyboardInterrupt:
            token.cancel("Cancelled by user")
            result = BatchResult.cancelled_run([], [], len(idxs), token.reason)
        except Exception as e:
            log.error("Could not run batch for %s: %s", period.name, e)
            result = BatchResult.whole_batch_failure(len(idxs), f"Automation failed: {e}")
        finally:
            orch.close()

        if result.cancelled:
            cancelled = True
        _merge(result, idxs, submitted, errors, outcomes)
        if cancelled:
            break

    if cancelled:
        log.info("Run cancelled after %d submitted rows", len(submitted))
        return BatchResult.cancelled_run(
            submitted, errors, len(rows), token.reason or "Automation was cancelled", outcomes,
        )

    errors.sort(key=lambda e: e[0])
    return BatchResult.from_rows(sorted(submitted), errors, len(rows), outcomes)


def _merge(result: BatchResult, idxs: List[int], submitted, errors, outcomes) -> None:
    for local in result.submitted_indices:
        submitted.append(idxs[local])
    for local, message in result.errors:
        if 0 <= local < len(idxs):
            errors.append((idxs[local], message))
        elif result.cancelled:
            # reported once for the whole run
            continue
        else:
            # whole-batch failure: every row of this period failed
            errors.extend((i, message) for i in idxs if i not in submitted)
    for local, outcome in result.outcomes.items():
        outcomes[idxs[local]] = outcome


def _unrouted_reason(row: Row, cfg: AutomationCfg, date_label: str, periods: Sequence[BillingPeriod]) -> str:
    labels = [cfg.fields[k].label for k in REQUIRED_FIELDS if k in cfg.fields]
    if not all(has_value(row.get(label)) for label in labels):
        return "Missing required fields"
    raw = row.get(date_label)
    try:
        parse_row_date(raw)
    except ValueError as e:
        return str(e)
    return f"No billing period for date {raw!r}; date must be in {describe_periods(periods)}"
