# sheetpilot_agent/ui.py
from __future__ import annotations
from contextlib import contextmanager
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.prompt import Prompt
from rich.text import Text
from rich.box import ROUNDED

from .models import BatchResult, BillingPeriod, Row, RowOutcome


console = Console()

# Default border color for our panels
BORDER = "bright_blue"


class UserCancelled(Exception):
    """User backed out of a prompt."""


# ── Top banner ──────────────────────────────────────────────────────────────────
def banner(profile_line: str) -> None:
    """Show the welcome banner."""
    title = Text("SheetPilot: Smartsheet timesheet bot", style="bold cyan")
    subtitle = Text(profile_line, style="dim")
    body = Text("I fill in and submit your timesheet rows on the Smartsheet form.", style="white")
    console.print(
        Panel(
            body,
            title=title,
            subtitle=subtitle,
            box=ROUNDED,
            border_style=BORDER,
            expand=True,
        )
    )


# ── Menu ────────────────────────────────────────────────────────────────────────
def menu(title: str, options: list[str]) -> str:
    """Render a numbered menu and return the chosen option (as a string)."""
    table = Table(
        box=ROUNDED, show_header=False, expand=True, border_style=BORDER, padding=(0, 1)
    )
    table.add_column(justify="center", style="bold")
    table.add_column()
    for i, label in enumerate(options, start=1):
        table.add_row(f"[cyan]{i}[/]", label)
    console.print(Panel.fit(table, title=title, border_style=BORDER, box=ROUNDED))
    return Prompt.ask(
        f"[bold]Enter choice[/] (1–{len(options)})",
        choices=[str(i) for i in range(1, len(options) + 1)],
        show_choices=False,
    )


# ── Message panels ──────────────────────────────────────────────────────────────
def panel(msg: str) -> None:
    """Pretty-print a single message in a colored box based on its emoji/severity."""
    style = "white"
    if msg.startswith(("✅", "🟢", "🎉")):
        style = "green"
    elif msg.startswith(("⚠️", "❗", "🧐", "↩️")):
        style = "yellow"
    elif msg.startswith(("❌", "⛔")):
        style = "red"
    elif msg.startswith(("📊", "💾", "📁")) or "Saved ->" in msg:
        style = "cyan"
    elif msg.startswith(("🔐", "✍️")):
        style = "magenta"
    console.print(Panel(msg, border_style=style, box=ROUNDED))


def input_prompt(prompt_text: str = "›", default: Optional[str] = None) -> str:
    """Unified input prompt (styled)."""
    if default is None:
        return Prompt.ask(f"[bold cyan]{prompt_text}[/]")
    return Prompt.ask(f"[bold cyan]{prompt_text}[/]", default=default)


def secret_prompt(prompt_text: str) -> str:
    return Prompt.ask(f"[bold cyan]{prompt_text}[/]", password=True)


def confirm(prompt_text: str) -> bool:
    """Ask for yes/no and return True only on yes."""
    ans = input_prompt(f"{prompt_text} (yes/no)").strip().lower()
    return ans in ("y", "yes")


def note(msg: str) -> None:
    """Dim, inline note."""
    console.print(f"[dim]{msg}[/]")


@contextmanager
def suppress_ctrlc_echo():
    """Hide the '^C' the terminal echoes while a long browser run is in progress."""
    try:
        import termios
        import sys
        fd = sys.stdin.fileno()
        old = termios.tcgetattr(fd)
        new = list(old)
        new[3] = new[3] & ~termios.ECHOCTL
    except Exception:
        yield
        return
    try:
        termios.tcsetattr(fd, termios.TCSADRAIN, new)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


# ── Run progress ────────────────────────────────────────────────────────────────
class ProgressPrinter:
    """Adapter from the orchestrator's (percent, message) callback to a rich bar."""

    def __init__(self, title: str = "Submitting") -> None:
        self._progress = Progress(
            TextColumn("[bold cyan]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[msg]}"),
            TimeElapsedColumn(),
            console=console,
            transient=False,
        )
        self._task = self._progress.add_task(title, total=100, msg="")

    def __enter__(self) -> "ProgressPrinter":
        self._progress.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.stop()

    def __call__(self, percent: int, message: str) -> None:
        self._progress.update(self._task, completed=percent, msg=message)


# ── Tables ──────────────────────────────────────────────────────────────────────
_OUTCOME_STYLE = {
    RowOutcome.SUBMIT_SUCCEEDED: "green",
    RowOutcome.FILLED: "green",
    RowOutcome.SKIPPED: "yellow",
}


def results_table(rows: Sequence[Row], result: BatchResult, columns: Sequence[str]) -> None:
    errors = dict(result.errors)
    table = Table(box=ROUNDED, border_style=BORDER, expand=True, title="Run results")
    table.add_column("#", justify="right", style="bold")
    for c in columns:
        table.add_column(c)
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")

    for i, row in enumerate(rows):
        outcome = result.outcomes.get(i)
        label = outcome.value.replace("_", " ") if outcome else "-"
        style = _OUTCOME_STYLE.get(outcome, "red") if outcome else "dim"
        values = ["" if row.get(c) is None else str(row.get(c)) for c in columns]
        table.add_row(str(i + 1), *values, f"[{style}]{label}[/]", errors.get(i, ""))
    console.print(table)

    summary = f"{result.success_count} submitted · {result.failure_count} failed · {result.total_rows} rows"
    if result.cancelled:
        panel(f"↩️ Cancelled. {summary}")
    elif result.success:
        panel(f"✅ {summary}")
    else:
        msg = errors.get(-1)
        panel(f"❌ {msg}" if msg else f"⚠️ Nothing submitted. {summary}")


def periods_table(periods: Sequence[BillingPeriod], current: Optional[BillingPeriod] = None) -> None:
    table = Table(box=ROUNDED, border_style=BORDER, title="Billing periods")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Form")
    for p in periods:
        mark = " [green](current)[/]" if current is not None and p.id == current.id else ""
        table.add_row(p.id, p.name + mark, p.start, p.end, p.form_url)
    console.print(table)
