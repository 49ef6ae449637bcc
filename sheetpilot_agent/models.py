# sheetpilot_agent/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

Row = Dict[str, Union[str, int, float, None]]


# ──────────────────────────────── Form / fields ───────────────────────────────

@dataclass(frozen=True)
class FieldDescriptor:
    key: str
    label: str
    locator: str
    type: str = "text"
    optional: bool = False


@dataclass(frozen=True)
class FormTarget:
    base_url: str
    form_id: str
    submission_endpoint: str
    success_url_patterns: Tuple[str, ...] = ()


def create_form_target(form_url: str, form_id: str) -> FormTarget:
    """
    Build the submission target for a Smartsheet form.

    The endpoint and success patterns are derived from the form id only, so the
    same inputs always give the same target.
    """
    if not form_url or not form_id:
        raise ValueError("form_url and form_id are both required")
    return FormTarget(
        base_url=form_url,
        form_id=form_id,
        submission_endpoint=f"https://forms.smartsheet.com/api/submit/{form_id}",
        success_url_patterns=(
            f"**forms.smartsheet.com/api/submit/{form_id}",
            "**forms.smartsheet.com/**",
            "**app.smartsheet.com/**",
        ),
    )


@dataclass(frozen=True)
class BillingPeriod:
    id: str
    name: str
    start: str   # YYYY-MM-DD
    end: str     # YYYY-MM-DD
    form_url: str
    form_id: str

    def contains(self, iso_date: str) -> bool:
        # ISO dates sort lexicographically
        return self.start <= iso_date <= self.end

    def short_range(self) -> str:
        return f"{self.start[5:7]}/{self.start[8:10]}-{self.end[5:7]}/{self.end[8:10]}"


# ──────────────────────────────── Login steps ─────────────────────────────────

@dataclass(frozen=True)
class WaitStep:
    name: str
    selector: str
    wait_condition: str = "visible"   # visible | hidden | attached | detached
    optional: bool = False


@dataclass(frozen=True)
class InputStep:
    name: str
    locator: str
    value_key: str                    # "email" | "password" | literal text
    sensitive: bool = False
    optional: bool = False


@dataclass(frozen=True)
class ClickStep:
    name: str
    locator: str
    expects_navigation: bool = False
    optional: bool = False


LoginStep = Union[WaitStep, InputStep, ClickStep]

_WAIT_CONDITIONS = ("visible", "hidden", "attached", "detached")


def parse_login_step(raw: dict) -> LoginStep:
    action = (raw.get("action") or "").strip().lower()
    name = raw.get("name") or action
    optional = bool(raw.get("optional", False))
    if action == "wait":
        cond = raw.get("wait_condition") or "visible"
        if cond not in _WAIT_CONDITIONS:
            raise ValueError(f"Login step '{name}': unknown wait_condition '{cond}'")
        return WaitStep(name, raw.get("selector") or raw["locator"], cond, optional)
    if action == "input":
        return InputStep(
            name,
            raw["locator"],
            str(raw.get("value_key", "")),
            bool(raw.get("sensitive", False)),
            optional,
        )
    if action == "click":
        return ClickStep(name, raw["locator"], bool(raw.get("expects_navigation", False)), optional)
    raise ValueError(f"Login step '{name}': unknown action '{action}'")


class LoginState(Enum):
    NOT_LOGGED_IN = "not_logged_in"
    LOGGED_IN = "logged_in"


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str

    def __iter__(self):
        return iter((self.email, self.password))

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"


# ──────────────────────────────── Row / batch results ─────────────────────────

class RowOutcome(Enum):
    SKIPPED = "skipped"
    VALIDATION_FAILED = "validation_failed"
    QUARTER_MISMATCH = "quarter_mismatch"
    FILLED = "filled"
    SUBMIT_SUCCEEDED = "submit_succeeded"
    SUBMIT_EXHAUSTED = "submit_exhausted"
    UNEXPECTED_ERROR = "unexpected_error"

    @property
    def succeeded(self) -> bool:
        return self in (RowOutcome.FILLED, RowOutcome.SUBMIT_SUCCEEDED)


@dataclass(frozen=True)
class BatchResult:
    success: bool
    submitted_indices: Tuple[int, ...]
    errors: Tuple[Tuple[int, str], ...]
    total_rows: int
    success_count: int
    failure_count: int
    cancelled: bool = False
    outcomes: Dict[int, RowOutcome] = field(default_factory=dict, compare=False)

    @classmethod
    def from_rows(
        cls,
        submitted: List[int],
        errors: List[Tuple[int, str]],
        total_rows: int,
        outcomes: Optional[Dict[int, RowOutcome]] = None,
    ) -> "BatchResult":
        return cls(
            success=len(submitted) > 0,
            submitted_indices=tuple(submitted),
            errors=tuple(errors),
            total_rows=total_rows,
            success_count=len(submitted),
            failure_count=len(errors),
            outcomes=dict(outcomes or {}),
        )

    @classmethod
    def whole_batch_failure(cls, total_rows: int, message: str, *, cancelled: bool = False) -> "BatchResult":
        return cls(
            success=False,
            submitted_indices=(),
            errors=((-1, message),),
            total_rows=total_rows,
            success_count=0,
            failure_count=total_rows,
            cancelled=cancelled,
        )

    @classmethod
    def cancelled_run(
        cls,
        submitted: List[int],
        errors: List[Tuple[int, str]],
        total_rows: int,
        reason: str,
        outcomes: Optional[Dict[int, RowOutcome]] = None,
    ) -> "BatchResult":
        """
        Result of a batch stopped part way. Rows finished before the cancel
        keep their outcome; the cancel itself is reported at index -1 and every
        row not submitted or skipped counts as failed.
        """
        outcomes = dict(outcomes or {})
        skipped = sum(1 for o in outcomes.values() if o is RowOutcome.SKIPPED)
        return cls(
            success=False,
            submitted_indices=tuple(sorted(submitted)),
            errors=((-1, reason),) + tuple(sorted(errors, key=lambda e: e[0])),
            total_rows=total_rows,
            success_count=len(submitted),
            failure_count=max(0, total_rows - len(submitted) - skipped),
            cancelled=True,
            outcomes=outcomes,
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "submitted_indices": list(self.submitted_indices),
            "errors": [[i, msg] for i, msg in self.errors],
            "total_rows": self.total_rows,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "cancelled": self.cancelled,
        }
