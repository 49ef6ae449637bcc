# sheetpilot_agent/cancellation.py
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .errors import AutomationCancelled

log = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation signal shared between a caller and a running batch.

    `cancel()` may be called from any thread (e.g. a signal handler); callbacks
    registered with `on_cancel` run exactly once, in registration order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason = ""
        self._callbacks: List[Callable[[], None]] = []

    @property
    def reason(self) -> str:
        return self._reason

    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Automation was cancelled") -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception as e:
                log.warning("Cancellation callback failed: %s", e)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register `callback`; returns a function that unregisters it."""
        with self._lock:
            fire_now = self._cancelled
            if not fire_now:
                self._callbacks.append(callback)
        if fire_now:
            callback()

        def _unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)
        return _unregister

    def raise_if_cancelled(self, where: Optional[str] = None) -> None:
        if self._cancelled:
            msg = self._reason or "Automation was cancelled"
            if where:
                msg = f"{msg} ({where})"
            raise AutomationCancelled(msg)
