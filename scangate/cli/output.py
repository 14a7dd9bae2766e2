"""Rich output helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()


def status_style(status: str) -> str:
    return {
        "success": "green",
        "running": "yellow",
        "starting": "yellow",
        "stopping": "yellow",
        "profile_created": "dim",
        "fail": "red",
        "error": "red",
        "timeout": "red",
        "crashed": "red",
        "deferred": "yellow",
        "cleaned_up": "dim",
    }.get(status, "white")


def fmt_date(iso: str | None) -> str:
    if not iso:
        return "—"
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return iso


def profiles_table(items: list[dict[str, Any]]) -> Table:
    table = Table(
        title=f"Scan profiles ({len(items)})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("App")
    table.add_column("Endpoint")
    table.add_column("Status")
    table.add_column("Report", justify="center")
    table.add_column("Created", style="dim")

    for p in items:
        status = p.get("status", "?")
        if p.get("deleted"):
            status_text = Text(f"{status} (deleted)", style="dim")
        else:
            status_text = Text(status, style=status_style(status))
        report_text = Text("✓", style="green") if p.get("report_key") else Text("—", style="dim")
        table.add_row(
            str(p.get("id", ""))[:8] + "…",
            p.get("target_app") or "—",
            p.get("endpoint", ""),
            status_text,
            report_text,
            fmt_date(p.get("created_at")),
        )
    return table


def outcomes_table(outcomes: dict[str, int]) -> Table:
    table = Table(title="Sweep outcomes", header_style="bold cyan", border_style="dim")
    table.add_column("Outcome")
    table.add_column("Profiles", justify="right")
    for outcome, count in sorted(outcomes.items()):
        table.add_row(Text(outcome, style=status_style(outcome)), str(count))
    return table
