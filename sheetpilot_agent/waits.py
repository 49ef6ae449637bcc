# sheetpilot_agent/waits.py
"""
Bounded exponential polling used by every wait in the bot.

All helpers return a bool instead of raising on timeout; the caller decides
whether running out of time is fatal.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .cancellation import CancellationToken

log = logging.getLogger(__name__)

Sleep = Callable[[float], None]


def page_sleeper(page) -> Sleep:
    """
    Sleep through Playwright so page events (responses, navigations) keep
    being dispatched while we wait. time.sleep would block the sync driver.
    """
    def _sleep(seconds: float) -> None:
        page.wait_for_timeout(max(0.0, seconds) * 1000)
    return _sleep


def dynamic_wait(
    condition: Callable[[], bool],
    base_timeout: float,
    max_timeout: float,
    multiplier: float = 1.2,
    operation: str = "operation",
    *,
    sleep: Optional[Sleep] = None,
    clock: Callable[[], float] = time.monotonic,
    cancel_token: Optional[CancellationToken] = None,
) -> bool:
    """
    Poll `condition` until it is true or `max_timeout` seconds have passed.

    The delay between polls starts at `base_timeout` and grows by `multiplier`,
    never sleeping past the remaining time. The condition is always checked
    at least once. A cancelled `cancel_token` ends the wait with
    AutomationCancelled.
    """
    sleep = sleep or time.sleep
    start = clock()
    current = max(0.0, base_timeout)
    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(operation)
        if condition():
            return True
        elapsed = clock() - start
        remaining = max_timeout - elapsed
        if remaining <= 0:
            log.debug("Timed out waiting for %s after %.2fs", operation, elapsed)
            return False
        sleep(min(current, remaining))
        current = current * multiplier if current > 0 else 0.05


# ──────────────────────────────── Page helpers ────────────────────────────────

def _element_in_state(page, selector: str, state: str) -> bool:
    try:
        loc = page.locator(selector)
        if state == "detached":
            return loc.count() == 0
        if loc.count() == 0:
            return state == "hidden"
        first = loc.first
        if state == "visible":
            return first.is_visible()
        if state == "hidden":
            return not first.is_visible()
        if state == "attached":
            return True
        if state == "enabled":
            return first.is_visible() and first.is_enabled()
    except Exception as e:
        log.debug("State check failed for %s: %s", selector, e)
    return False


def wait_for_element(
    page,
    selector: str,
    state: str = "visible",
    base_timeout: float = 0.2,
    max_timeout: float = 10.0,
    multiplier: float = 1.2,
    *,
    cancel_token: Optional[CancellationToken] = None,
) -> bool:
    return dynamic_wait(
        lambda: _element_in_state(page, selector, state),
        base_timeout,
        max_timeout,
        multiplier,
        f"element {state} ({selector})",
        sleep=page_sleeper(page),
        cancel_token=cancel_token,
    )


def wait_for_page_load(
    page,
    base_timeout: float = 0.2,
    max_timeout: float = 10.0,
    multiplier: float = 1.2,
    *,
    cancel_token: Optional[CancellationToken] = None,
) -> bool:
    def _complete() -> bool:
        try:
            return page.evaluate("() => document.readyState") == "complete"
        except Exception:
            return False

    return dynamic_wait(
        _complete, base_timeout, max_timeout, multiplier, "page load",
        sleep=page_sleeper(page), cancel_token=cancel_token,
    )


def wait_for_dom_stability(
    page,
    selector: str = "body",
    state: str = "visible",
    base_timeout: float = 0.2,
    max_timeout: float = 2.0,
    multiplier: float = 1.2,
    operation: str = "DOM stability",
    *,
    cancel_token: Optional[CancellationToken] = None,
) -> bool:
    """
    Wait until `selector` is in `state` and its bounding box stops moving
    between two consecutive polls.
    """
    last_box = {}

    def _stable() -> bool:
        if not _element_in_state(page, selector, state):
            return False
        if state != "visible":
            return True
        try:
            box = page.locator(selector).first.bounding_box()
        except Exception:
            return True
        prev = last_box.get("box")
        last_box["box"] = box
        if box is None or prev is None:
            return prev is None and box is None
        return abs(box["x"] - prev["x"]) < 1 and abs(box["y"] - prev["y"]) < 1

    return dynamic_wait(
        _stable, base_timeout, max_timeout, multiplier, operation,
        sleep=page_sleeper(page), cancel_token=cancel_token,
    )


_OPTION_SELECTORS = (
    "[role='listbox'] [role='option']",
    "[role='option']",
    ".dropdown-menu .dropdown-item",
    ".select-options .option",
)


def wait_for_dropdown_options(
    page,
    base_timeout: float = 0.1,
    max_timeout: float = 1.0,
    multiplier: float = 1.2,
    *,
    cancel_token: Optional[CancellationToken] = None,
) -> bool:
    def _populated() -> bool:
        for sel in _OPTION_SELECTORS:
            try:
                loc = page.locator(sel)
                if loc.count() and loc.first.is_visible():
                    return True
            except Exception:
                continue
        return False

    return dynamic_wait(
        _populated, base_timeout, max_timeout, multiplier, "dropdown options",
        sleep=page_sleeper(page), cancel_token=cancel_token,
    )
