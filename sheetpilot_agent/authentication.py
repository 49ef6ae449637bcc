# sheetpilot_agent/authentication.py
"""
Config-driven login.

The login "recipe" is the ordered `login_steps` list from automation_config.yaml;
each entry is a WaitStep, InputStep or ClickStep. LoginManager runs it once per
browser context and remembers which contexts are already signed in.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from .cancellation import CancellationToken
from .config_loader import AutomationCfg
from .errors import AutomationCancelled, NavigationError
from .models import ClickStep, FormTarget, InputStep, LoginState, WaitStep
from .security import mask_email, mask_secret
from .waits import wait_for_dom_stability, wait_for_element, wait_for_page_load

log = logging.getLogger(__name__)

NAV_TIMEOUT_MS = 45_000


class LoginManager:
    def __init__(self, cfg: AutomationCfg, session, form_target: FormTarget) -> None:
        self.cfg = cfg
        self.session = session
        self.form_target = form_target
        self._states: Dict[int, LoginState] = {}
        self.cancel_token: Optional[CancellationToken] = None

    # ───── Public API ─────

    def state(self, context_index: int = 0) -> LoginState:
        return self._states.get(context_index, LoginState.NOT_LOGGED_IN)

    def is_logged_in(self, context_index: int = 0) -> bool:
        return self.state(context_index) is LoginState.LOGGED_IN

    def login(self, email: str, password: str, context_index: Optional[int] = None) -> None:
        if context_index is not None and self.is_logged_in(context_index):
            log.debug("Context %d already logged in; skipping login", context_index)
            return

        idx = 0 if context_index is None else context_index
        log.info("Logging in as %s (context %d)", mask_email(email), idx)
        self._navigate_with_retries(idx)

        page = self.session.get_page(idx)
        for i, step in enumerate(self.cfg.login_steps):
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled(f"login step {step.name}")
            log.debug("Login step %d: %s", i, step.name)
            if isinstance(step, WaitStep):
                self._run_wait(page, step)
            elif isinstance(step, InputStep):
                self._run_input(page, step, email, password)
            elif isinstance(step, ClickStep):
                self._run_click(page, step)
            else:
                log.warning("Unknown login step type: %r", step)

        if context_index is not None:
            self._states[context_index] = LoginState.LOGGED_IN
        log.info("Login sequence finished (context %d)", idx)

    def validate_login_state(self, context_index: int = 0) -> bool:
        """
        True when the page URL looks like the signed-in form.

        An unrecognized URL counts as not logged in.
        """
        try:
            url = self.session.get_page(context_index).url or ""
        except Exception as e:
            log.debug("Could not read page URL: %s", e)
            return False
        patterns = list(self.cfg.login_success_urls) or [self.form_target.base_url]
        return any(p in url for p in patterns)

    # ───── Navigation ─────

    def _navigate_with_retries(self, idx: int) -> None:
        w = self.cfg.waits
        attempts = max(1, self.cfg.navigation_retries)
        url = self.form_target.base_url
        for attempt in range(1, attempts + 1):
            try:
                page = self.session.get_page(idx)
                wait_for_dom_stability(
                    page, "body", "visible", w.base_timeout / 2, w.base_timeout, cancel_token=self.cancel_token,
                )
                self.session.navigate_to(idx, url, NAV_TIMEOUT_MS)
                log.debug("Navigated to %s", url)
                return
            except AutomationCancelled:
                raise
            except Exception as e:
                log.warning("Navigation attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt >= attempts:
                    raise NavigationError(url, attempts, e) from e
                # grows with each failed attempt
                wait_for_dom_stability(
                    self.session.get_page(idx), "body", "visible",
                    w.base_timeout * attempt, w.base_timeout * 2 * attempt,
                    cancel_token=self.cancel_token,
                )

    # ───── Steps ─────

    def _run_wait(self, page, step: WaitStep) -> None:
        try:
            page.wait_for_selector(step.selector, state=step.wait_condition, timeout=self.cfg.waits.global_timeout * 1000)
        except Exception as e:
            if not step.optional:
                log.error("Required element not found: %s (%s)", step.selector, e)
                raise
            log.debug("Optional element %s not found, continuing", step.selector)

    def _present(self, page, locator: str) -> bool:
        w = self.cfg.waits
        return wait_for_element(
            page, locator, "visible", w.base_timeout / 2, w.short_wait, w.multiplier, cancel_token=self.cancel_token,
        )

    def _run_input(self, page, step: InputStep, email: str, password: str) -> None:
        if step.value_key == "email":
            value = email
        elif step.value_key == "password":
            value = password
        else:
            value = step.value_key

        if step.optional and not self._present(page, step.locator):
            log.debug("Optional input %s not present, skipping", step.name)
            return
        log.debug("Filling %s with %s", step.name, mask_secret(value) if step.sensitive else value)
        # one bulk fill; typing per keystroke is too slow on the SSO pages
        page.locator(step.locator).first.fill(value, timeout=self.cfg.waits.global_timeout * 1000)

    def _run_click(self, page, step: ClickStep) -> None:
        if step.optional and not self._present(page, step.locator):
            log.debug("Optional click %s not present, skipping", step.name)
            return
        page.locator(step.locator).first.click(timeout=self.cfg.waits.global_timeout * 1000)
        if step.expects_navigation:
            w = self.cfg.waits
            wait_for_page_load(page, w.base_timeout, w.global_timeout, w.multiplier, cancel_token=self.cancel_token)
