"""Rich rendering of context usage for the REPL status line."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from contextkit.context.session import UsageSnapshot


def _ratio_style(ratio: float, threshold: float) -> str:
    if ratio >= threshold:
        return "bold red"
    if ratio >= threshold * 0.8:
        return "yellow"
    return "green"


def render_usage(snapshot: UsageSnapshot) -> Table:
    """Build a table describing context usage.

    Args:
        snapshot: Usage snapshot from a session.

    Returns:
        Rich table with one row per metric.
    """
    table = Table(title="Context", show_header=False, expand=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")

    style = _ratio_style(snapshot.ratio, snapshot.threshold_ratio)
    table.add_row(
        "Tokens",
        f"{snapshot.used_tokens:,} / {snapshot.context_window:,}",
    )
    table.add_row("Usage", Text(f"{snapshot.ratio:.1%}", style=style))
    table.add_row("Compaction at", f"{snapshot.threshold_ratio:.0%}")
    table.add_row("Instructions", f"{snapshot.instruction_tokens:,}")
    table.add_row("Items", str(snapshot.item_count))
    table.add_row(
        "Truncations",
        f"{snapshot.last_truncation_count} this turn, {snapshot.total_truncations} total",
    )
    table.add_row("Compactions", str(snapshot.compactions))
    if snapshot.remaining_turns:
        table.add_row("Turns left", f"~{snapshot.remaining_turns}")
    return table


def print_usage(snapshot: UsageSnapshot, console: Console | None = None) -> str:
    """Print context usage and return the rendered text.

    Args:
        snapshot: Usage snapshot from a session.
        console: Optional Rich Console. When omitted, a recording console
            is created.

    Returns:
        The rendered string captured from the console.
    """
    console = console or Console(record=True)
    console.print(render_usage(snapshot))
    return console.export_text()
