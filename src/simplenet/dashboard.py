"""Rich rendering of the usage dashboard and stored results.

Used by the CLI ``usage``, ``search``, and ``show`` commands. The HTTP
dashboard serves the same ``UsageSummary`` as JSON.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from simplenet.models import SearchResult
    from simplenet.usage import UsageSummary


# ---------------------------------------------------------------------------
# Usage panels
# ---------------------------------------------------------------------------


def _build_service_table(summary: UsageSummary) -> Table:
    """Per-service call, cost, and latency statistics.

    Args:
        summary: Aggregated usage for the selected day.

    Returns:
        A Rich Table with one row per service.
    """
    table = Table(title="Per-service usage", expand=True)
    table.add_column("Service", style="bold")
    table.add_column("Calls", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Cost (USD)", justify="right")
    table.add_column("Avg (s)", justify="right")
    table.add_column("Max (s)", justify="right")

    for stats in summary.services:
        rate_style = "green" if stats.success_rate >= 90 else "yellow"
        if stats.success_rate < 50:
            rate_style = "red"
        table.add_row(
            stats.service,
            str(stats.calls),
            Text(f"{stats.success_rate:.1f}%", style=rate_style),
            str(stats.failures),
            f"${stats.total_cost:.4f}",
            f"{stats.avg_response_time:.2f}",
            f"{stats.max_response_time:.2f}",
        )
    return table


def _build_totals(summary: UsageSummary) -> Panel:
    text = Text()
    text.append("Calls: ", style="bold")
    text.append(f"{summary.total_calls:,}")
    text.append("  |  ", style="dim")
    text.append("Failures: ", style="bold")
    text.append(str(summary.total_failures), style="red" if summary.total_failures else None)
    text.append("  |  ", style="dim")
    text.append("Cost: ", style="bold")
    text.append(f"${summary.total_cost:.4f}")
    day = summary.day.isoformat() if summary.day else "all time"
    return Panel(text, title=f"Usage: {day}", border_style="cyan")


def render_usage(summary: UsageSummary) -> Group:
    """Build the full usage dashboard renderable."""
    if not summary.services:
        return Group(_build_totals(summary), Text("No calls recorded.", style="dim"))
    return Group(_build_totals(summary), _build_service_table(summary))


# ---------------------------------------------------------------------------
# Result panels
# ---------------------------------------------------------------------------


def render_result(result: SearchResult) -> Group:
    """Summary panel plus a table of every item in the bundle."""
    status = "posted" if result.relay_posted else "not relayed"
    if result.relay_scheduled and not result.relay_posted:
        status = "relay failed" if result.relay_failed else "relay scheduled"

    header = Text()
    header.append(result.category.value, style="bold yellow")
    header.append(" | ", style="dim")
    header.append(result.id, style="cyan")
    header.append(" | ", style="dim")
    header.append(status, style="italic")
    header.append("\n\n")
    header.append(result.summary)

    table = Table(show_header=True, expand=True)
    table.add_column("Source", style="bold", no_wrap=True)
    table.add_column("Title")
    table.add_column("URL", style="dim", overflow="fold")
    for kind, item in result.bundle.items():
        table.add_row(kind.value, item.title, item.url)

    if not table.rows:
        return Group(Panel(header, title="Digest", border_style="cyan"))
    return Group(Panel(header, title="Digest", border_style="cyan"), table)
