# sheetpilot_agent/submission_monitor.py
from __future__ import annotations

import fnmatch
import json
import logging
import re
import time
from typing import List, Optional, Tuple

from .cancellation import CancellationToken
from .config_loader import AutomationCfg
from .errors import SubmitButtonNotFoundError
from .models import FormTarget
from .waits import dynamic_wait, page_sleeper

log = logging.getLogger(__name__)

_REQUEST_ID_HEADERS = ("x-request-id", "x-amzn-trace-id", "x-correlation-id")
_SUBMISSION_ID_RE = re.compile(r'"submissionId"\s*:\s*"([^"]+)"', re.I)
_TOKEN_RE = re.compile(r'"token"\s*:\s*"([^"]+)"', re.I)


def url_matches(url: str, patterns) -> bool:
    """Glob match, falling back to a substring test on the pattern without '*'."""
    for pattern in patterns:
        if fnmatch.fnmatch(url, pattern):
            return True
        needle = pattern.replace("*", "")
        if needle and needle in url:
            return True
    return False


def _extract_ids(body: str) -> Tuple[Optional[str], Optional[str]]:
    text = body.strip()
    if text.startswith("{") and text.endswith("}"):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict):
            sid = data.get("submissionId")
            tok = data.get("token")
            return (sid if isinstance(sid, str) else None, tok if isinstance(tok, str) else None)
    m_sid = _SUBMISSION_ID_RE.search(text)
    m_tok = _TOKEN_RE.search(text)
    return (m_sid.group(1) if m_sid else None, m_tok.group(1) if m_tok else None)


class SubmissionMonitor:
    """
    Clicks submit and decides whether the form accepted the entry.

    Success is either a 2xx response from one of the form target's URL patterns
    or a visible DOM confirmation, whichever shows up first.
    """

    def __init__(self, cfg: AutomationCfg, session, form_target: FormTarget) -> None:
        self.cfg = cfg
        self.session = session
        self.form_target = form_target
        self.cancel_token: Optional[CancellationToken] = None

    def submit(self, context_index: int = 0) -> bool:
        page = self.session.get_page(context_index)
        s = self.cfg.submit
        w = self.cfg.waits

        observed: List[Tuple[str, int]] = []
        candidates = []

        def _on_response(response) -> None:
            try:
                url, status = response.url, response.status
            except Exception:
                return
            observed.append((url, status))
            if s.success_min_status <= status <= s.success_max_status and url_matches(
                url, self.form_target.success_url_patterns
            ):
                candidates.append(response)

        page.on("response", _on_response)
        try:
            button = self._find_submit_button(page)
            started = time.monotonic()
            button.click()

            dom_hit = {"found": False}

            def _confirmed() -> bool:
                if candidates:
                    return True
                dom_hit["found"] = self._dom_success(page)
                return dom_hit["found"]

            verify_timeout = min(s.verify_timeout_ms / 1000.0, w.global_timeout)
            ok = dynamic_wait(
                _confirmed,
                w.base_timeout / 2,
                verify_timeout,
                w.multiplier,
                "form submission verification",
                sleep=page_sleeper(page),
                cancel_token=self.cancel_token,
            )
            if not ok:
                log.warning(
                    "Submission not confirmed within %.1fs (%d responses observed)",
                    verify_timeout, len(observed),
                )
                return False

            self._log_diagnostics(candidates, dom_hit["found"], time.monotonic() - started)
            return True
        finally:
            try:
                page.remove_listener("response", _on_response)
            except Exception as e:
                log.debug("Could not detach response listener: %s", e)

    # ───── Helpers ─────

    def _find_submit_button(self, page):
        w = self.cfg.waits
        selectors = self.cfg.submit.button_candidates
        found = {}

        def _usable() -> bool:
            for sel in selectors:
                try:
                    loc = page.locator(sel).first
                    if not loc.is_visible() or not loc.is_enabled():
                        continue
                    aria = loc.get_attribute("aria-disabled")
                    if aria and aria.lower() != "false":
                        continue
                except Exception:
                    continue
                found["loc"] = loc
                found["sel"] = sel
                return True
            return False

        if not dynamic_wait(
            _usable, w.base_timeout, w.global_timeout, w.multiplier, "submit button",
            sleep=page_sleeper(page), cancel_token=self.cancel_token,
        ):
            log.warning("Could not find submit button (%d selectors tried)", len(selectors))
            raise SubmitButtonNotFoundError(len(selectors))
        log.debug("Found submit button: %s", found["sel"])
        return found["loc"]

    def _dom_success(self, page) -> bool:
        for indicator in self.cfg.submit.dom_success_indicators:
            try:
                if page.locator(indicator).first.is_visible():
                    log.debug("DOM success indicator visible: %s", indicator)
                    return True
            except Exception:
                continue
        return False

    def _log_diagnostics(self, candidates, dom_found: bool, elapsed: float) -> None:
        submission_ids, tokens, request_ids = [], [], []
        body_hit = False
        for resp in candidates:
            try:
                headers = resp.request.headers or {}
                for h in _REQUEST_ID_HEADERS:
                    if headers.get(h):
                        request_ids.append(str(headers[h]))
                        break
            except Exception:
                pass
            try:
                body = resp.text()
            except Exception as e:
                log.debug("Could not read submission response body: %s", e)
                continue
            if not body:
                continue
            sid, tok = _extract_ids(body)
            if sid: submission_ids.append(sid)
            if tok: tokens.append(tok)
            lower = body.lower()
            body_hit = body_hit or any(i.lower() in lower for i in self.cfg.submit.response_success_indicators)

        log.info(
            "Submission verified via %s in %.2fs (responses=%d, submission_ids=%s, tokens=%d, request_ids=%s, body_indicator=%s)",
            "http" if candidates else "dom", elapsed, len(candidates),
            submission_ids or "-", len(tokens), request_ids or "-", body_hit,
        )
        if dom_found and not candidates:
            log.debug("No matching network response; DOM confirmation only")
