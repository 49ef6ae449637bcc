# Shared pytest fixtures: a small in-memory stand-in for Playwright's sync Page.
from __future__ import annotations

import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from sheetpilot_agent.config_loader import AutomationCfg, WaitCfg, load_config
from sheetpilot_agent.errors import NotStartedError
from sheetpilot_agent.models import create_form_target

CONFIG_DIR = Path(__file__).resolve().parents[1] / "sheetpilot_agent" / "config"

FORM_ID = "0199fabee6497e60abb6030c48d84585"
FORM_URL = f"https://app.smartsheet.com/b/form/{FORM_ID}"


class FakeTimeout(Exception):
    pass


class FakeElement:
    def __init__(self, *, visible=True, enabled=True, text="", attrs=None, on_click=None, on_press=None, parent=None):
        self.visible = visible
        self.enabled = enabled
        self.text = text
        self.attrs: Dict[str, str] = dict(attrs or {})
        self.on_click = on_click
        self.on_press = on_press
        self.parent: Optional[FakeElement] = parent
        self.children: Dict[str, FakeElement] = {}
        self.value = ""
        self.fills: List[str] = []
        self.keys: List[str] = []
        self.clicks = 0


class FakeLocator:
    def __init__(self, page: "FakePage", element: Optional[FakeElement]):
        self.page = page
        self.element = element

    @property
    def first(self):
        return self

    def nth(self, i):
        return self

    def count(self):
        return 0 if self.element is None else 1

    def _el(self) -> FakeElement:
        if self.element is None:
            raise FakeTimeout("element not found")
        return self.element

    def is_visible(self):
        return self.element is not None and self.element.visible

    def is_enabled(self):
        return self.element is not None and self.element.enabled

    def get_attribute(self, name):
        return self._el().attrs.get(name)

    def inner_text(self):
        return self._el().text

    def bounding_box(self):
        return None

    def fill(self, value, timeout=None):
        el = self._el()
        el.fills.append(value)
        el.value = value
        self.page.fill_log.append(value)

    def press(self, key):
        el = self._el()
        el.keys.append(key)
        if el.on_press:
            el.on_press(key)

    def click(self, timeout=None):
        el = self._el()
        el.clicks += 1
        if el.on_click:
            el.on_click(self.page)

    def locator(self, selector):
        if self.element is None:
            return FakeLocator(self.page, None)
        if selector.startswith("xpath=ancestor"):
            return FakeLocator(self.page, self.element.parent)
        return FakeLocator(self.page, self.element.children.get(selector))


class FakeResponse:
    class _Request:
        def __init__(self, headers):
            self.headers = headers

    def __init__(self, url, status=200, body="", headers=None):
        self.url = url
        self.status = status
        self._body = body
        self.request = FakeResponse._Request(headers or {})

    def text(self):
        return self._body


class FakePage:
    def __init__(self):
        self.elements: Dict[str, FakeElement] = {}
        self.url = "about:blank"
        self.gotos: List[str] = []
        self.goto_errors: List[Exception] = []
        self.fill_log: List[str] = []
        self.waited_ms: List[float] = []
        self.listeners: Dict[str, List[Callable]] = {}
        self.wait_for_selector_calls: List[str] = []

    def add(self, selector, **kw) -> FakeElement:
        el = FakeElement(**kw)
        self.elements[selector] = el
        return el

    def locator(self, selector):
        return FakeLocator(self, self.elements.get(selector))

    def wait_for_timeout(self, ms):
        self.waited_ms.append(ms)
        time.sleep(min(ms, 5) / 1000.0)

    def evaluate(self, script):
        return "complete"

    def goto(self, url, timeout=None, wait_until=None):
        self.gotos.append(url)
        if self.goto_errors:
            raise self.goto_errors.pop(0)
        self.url = url

    def wait_for_selector(self, selector, state="visible", timeout=None):
        self.wait_for_selector_calls.append(selector)
        el = self.elements.get(selector)
        present = el is not None and el.visible
        if state in ("visible", "attached") and not present:
            raise FakeTimeout(f"waiting for {selector} to be {state}")
        if state in ("hidden", "detached") and present:
            raise FakeTimeout(f"waiting for {selector} to be {state}")
        return el

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    def emit(self, event, payload):
        for h in list(self.listeners.get(event, [])):
            h(payload)


class FakeSession:
    """Just enough of BrowserSession for components that take a session."""

    def __init__(self, page: Optional[FakePage] = None):
        self.page = page or FakePage()
        self.closed = 0
        self.pauses: List[float] = []
        self.navigations: List[str] = []
        self.started = True

    def launch(self):
        self.started = True

    def open_context(self, index=0):
        return self.page

    def get_page(self, index=0):
        if not self.started:
            raise NotStartedError("closed")
        return self.page

    def navigate_to(self, index, url, timeout_ms=30_000):
        self.navigations.append(url)
        self.get_page(index).goto(url, timeout=timeout_ms)

    def pause(self, seconds, context_index=0):
        self.pauses.append(seconds)

    def close_all(self):
        self.closed += 1
        self.started = False


# ─────────────────────────────── fixtures ────────────────────────────────────

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("SHEETPILOT_HEADLESS", "SHEETPILOT_SUBMIT", "SHEETPILOT_GLOBAL_TIMEOUT", "SHEETPILOT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SHEETPILOT_HOME", str(tmp_path / "home"))


@pytest.fixture()
def cfg() -> AutomationCfg:
    """Packaged config with timings shrunk so tests never wait."""
    base = load_config(CONFIG_DIR / "automation_config.yaml")
    return base.with_overrides(
        waits=WaitCfg(base_timeout=0.001, max_timeout=0.05, multiplier=1.5, global_timeout=0.05, short_wait=0.01),
        submit=replace(base.submit, verify_timeout_ms=30, quick_retry_delay=0.0, full_retry_delay=0.0),
    )


@pytest.fixture()
def form_target():
    return create_form_target(FORM_URL, FORM_ID)


@pytest.fixture()
def page() -> FakePage:
    return FakePage()


@pytest.fixture()
def session(page) -> FakeSession:
    return FakeSession(page)
