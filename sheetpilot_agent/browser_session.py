# sheetpilot_agent/browser_session.py
from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Optional

from playwright.sync_api import sync_playwright

from .config_loader import BrowserCfg
from .errors import LaunchError, NotStartedError

log = logging.getLogger(__name__)

# Slim some network requests (helps speed)
_ANALYTICS_HOSTS = (
    "googletagmanager.com", "google-analytics.com", "segment.io", "sentry.io",
    "plausible.io", "fullstory.com", "intercom.io", "hotjar.com",
    "doubleclick.net", "newrelic.com",
)

_EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Upgrade-Insecure-Requests": "1",
}

# Masks the usual automation fingerprints before any page script runs.
_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
window.chrome = window.chrome || { runtime: {} };
"""


class suppress_exc:
    """Swallow and log an exception raised inside the block."""

    def __init__(self, label: str = "operation"):
        self.label = label
        self._exc = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self._exc = exc
        if exc is not None and issubclass(exc_type, Exception):
            log.debug("Ignored error during %s: %s", self.label, exc)
            return True
        return False


def _route_slim(route):
    req = route.request
    if req.resource_type in ("image", "media", "font"):
        return route.abort()
    url = req.url
    if url.endswith(".map"):
        return route.abort()
    if any(h in url for h in _ANALYTICS_HOSTS):
        return route.abort()
    return route.continue_()


def _proxy_conf():
    url = os.getenv("PLAYWRIGHT_PROXY") or os.getenv("HTTPS_PROXY") or os.getenv("HTTP_PROXY")
    return {"server": url} if url else None


class BrowserSession:
    """
    One Chromium process with any number of isolated contexts, one page each.

    Contexts are addressed by integer index; 0 is the primary context.
    """

    def __init__(self, cfg: BrowserCfg, *, headless: Optional[bool] = None, playwright_factory=sync_playwright) -> None:
        self.cfg = cfg
        self.headless = cfg.headless if headless is None else headless
        self._factory = playwright_factory
        self._p = None
        self._browser = None
        self._contexts: Dict[int, object] = {}
        self._pages: Dict[int, object] = {}
        self._owner: Optional[int] = None

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    # ────────────────── Playwright lifecycle ──────────────────

    def launch(self):
        if self._browser is not None:
            return self._browser
        try:
            self._p = self._factory().start()
            kwargs = dict(
                headless=self.headless,
                proxy=_proxy_conf(),
                args=list(self.cfg.launch_args),
            )
            if self.cfg.channel:
                kwargs["channel"] = self.cfg.channel
            self._browser = self._p.chromium.launch(**kwargs)
            self._owner = threading.get_ident()
        except Exception as e:
            with suppress_exc("playwright stop"):
                if self._p: self._p.stop()
            self._p = None
            raise LaunchError(f"Could not launch browser: {e}") from e
        log.info("Browser launched (headless=%s)", self.headless)
        return self._browser

    def open_context(self, index: int = 0):
        """Create (or return) the isolated context at `index` and its page."""
        if self._browser is None:
            raise NotStartedError("Browser not launched; call launch() first")
        if index in self._pages:
            return self._pages[index]

        ctx_kwargs = dict(
            viewport={"width": self.cfg.viewport_width, "height": self.cfg.viewport_height},
            extra_http_headers=dict(_EXTRA_HEADERS),
        )
        if self.cfg.user_agent:
            ctx_kwargs["user_agent"] = self.cfg.user_agent
        ctx = self._browser.new_context(**ctx_kwargs)
        ctx.add_init_script(_STEALTH_SCRIPT)
        if self.cfg.block_analytics:
            ctx.route("**/*", _route_slim)
        page = ctx.new_page()

        self._contexts[index] = ctx
        self._pages[index] = page
        log.debug("Opened browser context %d", index)
        return page

    def get_page(self, index: int = 0):
        page = self._pages.get(index)
        if page is None:
            raise NotStartedError(f"No page for context {index}; call start() first")
        return page

    def navigate_to(self, index: int, url: str, timeout_ms: int = 30_000) -> None:
        page = self.get_page(index)
        page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")

    def pause(self, seconds: float, context_index: int = 0) -> None:
        """Fixed delay that keeps Playwright's event loop serviced."""
        if seconds <= 0:
            return
        self.get_page(context_index).wait_for_timeout(seconds * 1000)

    def close_all(self) -> None:
        # Playwright sync objects only work on the thread that created them.
        # A close from elsewhere (e.g. a cancel callback) is left to the owner.
        if self._owner is not None and threading.get_ident() != self._owner:
            log.info("Close requested from another thread; deferring to the session thread")
            return
        for idx, ctx in list(self._contexts.items()):
            with suppress_exc(f"close context {idx}"):
                ctx.close()
        with suppress_exc("close browser"):
            if self._browser: self._browser.close()
        with suppress_exc("stop playwright"):
            if self._p: self._p.stop()
        if self._browser is not None:
            log.info("Browser closed")
        self._p = self._browser = self._owner = None
        self._contexts = {}
        self._pages = {}
