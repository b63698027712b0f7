"""Typer CLI entry point for simplenet."""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from simplenet import __version__
from simplenet.api.server import run_server
from simplenet.config import Settings, format_validation_error
from simplenet.dashboard import render_result, render_usage
from simplenet.exceptions import (
    InvalidCategoryError,
    PersistenceUnavailableError,
    SummarizationFailedError,
)
from simplenet.logging import configure_logging
from simplenet.models import Category
from simplenet.pipeline import build_runtime
from simplenet.relay import ScheduleOutcome
from simplenet.store import ResultStore
from simplenet.usage import JsonlUsageSink, summarize_usage

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="simplenet",
    help="Category digests from YouTube, news, and newsletters.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    try:
        settings = Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc

    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
    )
    return settings


def _fail(message: str, code: int = 1) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(code=code)


def _open_store(settings: Settings) -> ResultStore:
    try:
        return ResultStore(settings.store.database_path, timeout=settings.store.timeout)
    except PersistenceUnavailableError as exc:
        raise _fail(str(exc)) from exc


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]simplenet[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Simplenet global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def categories() -> None:
    """List the categories that can be searched."""
    for category in Category:
        console.print(category.value)


@app.command()
def search(
    category: Annotated[str, typer.Argument(help="Category to search, e.g. 'tech'.")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the stored result as JSON."),
    ] = False,
) -> None:
    """Aggregate, summarize, and store a digest for CATEGORY."""
    try:
        parsed = Category.parse(category)
    except InvalidCategoryError as exc:
        choices = ", ".join(c.value for c in Category)
        raise _fail(f"{exc}. Choose one of: {choices}", code=2) from exc

    overrides: dict[str, Any] = {}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    settings = _load_settings(config, **overrides)

    async def _run() -> Any:
        runtime = build_runtime(settings)
        try:
            return await runtime.search.search(parsed)
        finally:
            await runtime.aclose()

    try:
        with console.status(f"Searching [bold]{parsed.value}[/bold]..."):
            result = asyncio.run(_run())
    except (PersistenceUnavailableError, SummarizationFailedError) as exc:
        raise _fail(str(exc)) from exc

    if as_json:
        console.print_json(result.model_dump_json())
        return
    console.print(render_result(result))


@app.command()
def show(
    result_id: Annotated[str, typer.Argument(help="Id of a stored result.")],
    config: ConfigOption = None,
) -> None:
    """Show a stored result."""
    settings = _load_settings(config)
    store = _open_store(settings)
    try:
        result = store.get(result_id)
    except PersistenceUnavailableError as exc:
        raise _fail(str(exc)) from exc
    if result is None:
        raise _fail(f"No result with id {result_id}")
    console.print(render_result(result))


@app.command()
def recent(
    config: ConfigOption = None,
    category: Annotated[
        str | None,
        typer.Option("--category", help="Only show results for this category."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Maximum results to list."),
    ] = 20,
) -> None:
    """List recently stored results."""
    try:
        parsed = Category.parse(category) if category is not None else None
    except InvalidCategoryError as exc:
        raise _fail(str(exc), code=2) from exc

    settings = _load_settings(config)
    store = _open_store(settings)
    try:
        results = store.list_recent(limit=limit, category=parsed)
    except PersistenceUnavailableError as exc:
        raise _fail(str(exc)) from exc
    if not results:
        console.print("[dim]No stored results.[/dim]")
        return

    table = Table(title="Recent results")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Category", style="bold")
    table.add_column("Created")
    table.add_column("Relay")
    for result in results:
        if result.relay_posted:
            relay = "[green]posted[/green]"
        elif result.relay_failed:
            relay = "[red]failed[/red]"
        elif result.relay_scheduled:
            relay = "[yellow]scheduled[/yellow]"
        else:
            relay = "[dim]-[/dim]"
        table.add_row(
            result.id,
            result.category.value,
            result.created_at.strftime("%Y-%m-%d %H:%M"),
            relay,
        )
    console.print(table)


@app.command()
def relay(
    result_id: Annotated[str, typer.Argument(help="Id of a stored result.")],
    config: ConfigOption = None,
    delay: Annotated[
        float | None,
        typer.Option("--delay", min=0.0, help="Override the relay delay (seconds)."),
    ] = None,
) -> None:
    """Schedule a webhook relay for RESULT_ID and wait for it to be sent."""
    overrides: dict[str, Any] = {}
    if delay is not None:
        overrides["relay"] = {"delay_seconds": delay}
    settings = _load_settings(config, **overrides)

    async def _run() -> tuple[ScheduleOutcome, bool]:
        runtime = build_runtime(settings)
        try:
            outcome = await runtime.relay.schedule(result_id)
            if outcome is not ScheduleOutcome.ACCEPTED:
                return outcome, False
            console.print(
                f"Relay armed; sending in {settings.relay.delay_seconds:g}s..."
            )
            await runtime.relay.wait(result_id)
            stored = runtime.store.get(result_id)
            return outcome, bool(stored and stored.relay_posted)
        finally:
            await runtime.aclose()

    try:
        outcome, posted = asyncio.run(_run())
    except PersistenceUnavailableError as exc:
        raise _fail(str(exc)) from exc

    if outcome is ScheduleOutcome.NOT_FOUND:
        raise _fail(f"No result with id {result_id}")
    if outcome is ScheduleOutcome.ALREADY_SCHEDULED:
        err_console.print(f"[yellow]Relay already scheduled for {result_id}.[/yellow]")
        raise typer.Exit(code=1)
    if not posted:
        raise _fail("Relay delivery failed; see logs for details.")
    console.print(f"[green]Relayed[/green] {result_id}")


@app.command()
def usage(
    config: ConfigOption = None,
    day: Annotated[
        str | None,
        typer.Option("--day", "-d", help="UTC day as YYYY-MM-DD (default: today)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the summary as JSON."),
    ] = False,
) -> None:
    """Show per-service call counts, failures, cost, and latency."""
    try:
        selected = date.fromisoformat(day) if day else datetime.now(tz=UTC).date()
    except ValueError as exc:
        raise _fail(f"Invalid --day value: {day!r}", code=2) from exc

    settings = _load_settings(config)
    sink = JsonlUsageSink(settings.usage.directory)
    summary = summarize_usage(sink.read_day(selected), day=selected)

    if as_json:
        console.print_json(summary.model_dump_json())
        return
    console.print(render_usage(summary))
    if summary.total_calls == 0 and (days := sink.available_days()):
        console.print(f"[dim]Days with data: {', '.join(d.isoformat() for d in days[-7:])}[/dim]")


@app.command()
def serve(
    port: Annotated[
        int | None,
        typer.Option("--port", help="Port to bind the API server."),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Host/interface to bind the API server."),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Run the simplenet HTTP API."""
    api_overrides: dict[str, Any] = {}
    if port is not None:
        api_overrides["port"] = port
    if host is not None:
        api_overrides["host"] = host
    settings = _load_settings(config, **({"api": api_overrides} if api_overrides else {}))
    run_server(settings)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
