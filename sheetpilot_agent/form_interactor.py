# sheetpilot_agent/form_interactor.py
"""
Field-level writes against the timesheet form.

`fill_field` waits for the element, replaces its content, helps dropdown-style
inputs commit their selection, and for critical fields checks whether the form
flagged the value as invalid.
"""
from __future__ import annotations

import logging
from typing import Optional

from .cancellation import CancellationToken
from .config_loader import AutomationCfg
from .errors import AutomationCancelled, FieldNotVisibleError, FieldValidationError
from .models import FieldDescriptor
from .waits import (
    wait_for_dom_stability,
    wait_for_dropdown_options,
    wait_for_element,
)

log = logging.getLogger(__name__)

_DROPDOWN_TYPES = ("dropdown", "select", "combobox")
_DROPDOWN_KEYWORDS = ("project", "tool", "charge code", "detail_code")

_ERROR_SELECTORS = (
    "[role='alert']",
    "[aria-live='assertive']",
    ".error",
    ".error-message",
    ".field-error",
    ".invalid-feedback",
    "[class*='error']",
    "[class*='invalid']",
)

# Words an error message must mention to be blamed on a field.
_FIELD_KEYWORDS = {
    "project_code": ("project",),
    "date": ("date",),
    "hours": ("hour",),
    "task_description": ("task", "description"),
}

_HIGHLIGHTED_OPTION = "[role='option'][aria-selected='true'], [role='option'].highlighted"


def _text_of(loc) -> str:
    try:
        return (loc.inner_text() or "").strip()
    except Exception:
        return ""


def _mentions(text: str, keywords) -> bool:
    lower = text.lower()
    return any(k in lower for k in keywords)


class FormInteractor:
    def __init__(self, cfg: AutomationCfg, session) -> None:
        self.cfg = cfg
        self.session = session
        self.cancel_token: Optional[CancellationToken] = None

    # ───── Public API ─────

    def fill_field(self, descriptor: FieldDescriptor, value: str, context_index: int = 0) -> None:
        page = self.session.get_page(context_index)
        w = self.cfg.waits

        if not wait_for_element(
            page, descriptor.locator, "visible", w.base_timeout, w.global_timeout, w.multiplier,
            cancel_token=self.cancel_token,
        ):
            raise FieldNotVisibleError(descriptor.label)

        field = page.locator(descriptor.locator).first
        field.fill("")
        field.fill(value)
        log.debug("Filled %s", descriptor.label)

        if self._is_dropdown(descriptor, field):
            self._commit_dropdown(page, field, descriptor)

        if descriptor.key in self.cfg.critical_fields:
            self._check_validation(page, field, descriptor)

    def wait_for_form_ready(self, context_index: int = 0) -> bool:
        """True once the project field is visible and enabled."""
        page = self.session.get_page(context_index)
        w = self.cfg.waits
        project = self.cfg.fields.get("project_code")
        if project is None:
            return wait_for_element(
                page, "form", "visible", w.base_timeout, w.global_timeout, w.multiplier,
                cancel_token=self.cancel_token,
            )
        return wait_for_element(
            page, project.locator, "enabled", w.base_timeout, w.global_timeout, w.multiplier,
            cancel_token=self.cancel_token,
        )

    # ───── Dropdowns ─────

    def _is_dropdown(self, descriptor: FieldDescriptor, field) -> bool:
        if descriptor.type.lower() in _DROPDOWN_TYPES:
            return True
        name = f"{descriptor.key} {descriptor.label}".lower()
        if any(k in name for k in _DROPDOWN_KEYWORDS):
            return True
        try:
            haspopup = (field.get_attribute("aria-haspopup") or "").lower()
            role = (field.get_attribute("role") or "").lower()
            expanded = field.get_attribute("aria-expanded") or ""
        except Exception:
            return False
        return "listbox" in haspopup or "combobox" in role or bool(expanded)

    def _commit_dropdown(self, page, field, descriptor: FieldDescriptor) -> None:
        w = self.cfg.waits
        try:
            wait_for_dropdown_options(
                page, w.base_timeout / 2, w.short_wait * 3, w.multiplier, cancel_token=self.cancel_token,
            )
            field.press("ArrowDown")
            wait_for_element(
                page, _HIGHLIGHTED_OPTION, "visible", w.base_timeout / 2, w.short_wait, w.multiplier,
                cancel_token=self.cancel_token,
            )
            field.press("Enter")
        except AutomationCancelled:
            raise
        except Exception as e:
            log.warning("Dropdown selection for %s did not complete: %s", descriptor.label, e)

    # ───── Validation ─────

    def _check_validation(self, page, field, descriptor: FieldDescriptor) -> None:
        w = self.cfg.waits
        wait_for_dom_stability(
            page, "form", "visible", w.base_timeout / 2, w.short_wait, w.multiplier, "validation",
            cancel_token=self.cancel_token,
        )

        keywords = _FIELD_KEYWORDS.get(descriptor.key, ()) + tuple(descriptor.label.lower().split())

        message = self._near_field_error(field, keywords) or self._page_error(page, keywords)
        if message:
            raise FieldValidationError(descriptor.key, message)

        try:
            invalid = (field.get_attribute("aria-invalid") or "false").lower() not in ("false", "")
        except Exception:
            invalid = False
        if invalid:
            # no error text names this field, so the row goes on
            log.warning("%s is marked invalid but no related error message was found", descriptor.label)

    def _near_field_error(self, field, keywords) -> Optional[str]:
        try:
            container = field.locator("xpath=ancestor::*[self::div or self::fieldset][1]")
            for sel in _ERROR_SELECTORS:
                loc = container.locator(sel)
                if loc.count() and loc.first.is_visible():
                    text = _text_of(loc.first)
                    if text and _mentions(text, keywords):
                        return text
        except Exception as e:
            log.debug("Near-field error lookup failed: %s", e)
        return None

    def _page_error(self, page, keywords) -> Optional[str]:
        for sel in _ERROR_SELECTORS:
            try:
                loc = page.locator(sel)
                n = loc.count()
            except Exception:
                continue
            for i in range(min(n, 10)):
                el = loc.nth(i)
                try:
                    if not el.is_visible():
                        continue
                except Exception:
                    continue
                text = _text_of(el)
                if text and _mentions(text, keywords):
                    return text
        return None
