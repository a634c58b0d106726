"""CLI entry point"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from .common.config import Config, RunSettings
from .common.exceptions import BrowserUnavailableError, ConfigError, EstateSpiderError
from .common.logger import console, get_logger, setup_file_logging
from .common.types import RunMode, RunReport
from .crawler.extractor import DEFAULT_LISTING_SPEC, ExtractionSpec
from .pipeline.runner import run_harvest
from .storage.checkpoint import RunCheckpoint, format_timestamp

logger = get_logger(__name__)

app = typer.Typer(
    name="estatespider",
    help="EstateSpider CLI - incremental listing harvester",
    add_completion=False,
)
checkpoint_app = typer.Typer(help="Inspect or reset the run checkpoint")
app.add_typer(checkpoint_app, name="checkpoint")


def run_async_safely(coro):
    """Run a coroutine from the synchronous CLI, even inside a running loop."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # a loop is already running (notebooks, embedding): use a private one in a thread
    result_holder: dict[str, object] = {"result": None, "error": None}

    def _runner():
        try:
            result_holder["result"] = asyncio.run(coro)
        except BaseException as exc:  # noqa: BLE001
            result_holder["error"] = exc

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    thread.join()

    if result_holder["error"] is not None:
        raise result_holder["error"]  # type: ignore[misc]
    return result_holder["result"]


def _report_table(report: RunReport) -> Table:
    table = Table(title="Run summary")
    table.add_column("item", style="cyan")
    table.add_column("value", style="green")

    table.add_row("mode", report.mode.value)
    table.add_row("threshold", format_timestamp(report.threshold) if report.threshold else "-")
    table.add_row("pages visited", str(report.pages_visited))
    table.add_row("candidates seen", str(report.candidates_seen))
    table.add_row("candidates admitted", str(report.candidates_admitted))
    table.add_row("records emitted", str(report.records_emitted))
    table.add_row("stop reason", report.stop_reason.value if report.stop_reason else "-")
    table.add_row("checkpoint updated", "yes" if report.checkpoint_updated else "no")
    if report.error:
        table.add_row("last error", report.error)
    return table


@app.command("run")
def run_command(
    mode: RunMode = typer.Option(
        RunMode.UPDATE,
        "--mode",
        "-m",
        help="initial (fixed lookback backfill), update or daily (since last run)",
    ),
    url: str | None = typer.Option(
        None,
        "--url",
        "-u",
        help="Listing start URL (overrides START_URL)",
    ),
    output_dir: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (overrides OUTPUT_DIR)",
    ),
    max_pages: int | None = typer.Option(
        None,
        "--max-pages",
        help="Page ceiling (defaults depend on mode)",
    ),
    min_area: float | None = typer.Option(
        None,
        "--min-area",
        help="Minimum area in square feet",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--no-headless",
        help="Run the browser headless",
    ),
    spec_file: str | None = typer.Option(
        None,
        "--spec-file",
        help="JSON extraction spec for listing pages",
    ),
    deadline: float | None = typer.Option(
        None,
        "--deadline",
        help="Stop paginating after this many seconds",
    ),
    env_file: str | None = typer.Option(
        None,
        "--env-file",
        help=".env file to load",
    ),
    log_file: str | None = typer.Option(
        None,
        "--log-file",
        help="Also write logs to this file",
    ),
):
    """
    Harvest listings and append new ones to the results file

    Examples:
        estatespider run --mode initial --url "https://example.com/search?type=land"
        estatespider run --mode daily
    """
    config = Config.load(env_file)
    if output_dir:
        config.storage.output_dir = output_dir
    if headless is not None:
        config.browser.headless = headless
    if log_file:
        setup_file_logging(logger, log_file)

    try:
        settings = RunSettings.for_mode(
            mode,
            config,
            start_url=url,
            max_pages=max_pages,
            min_area_sqft=min_area,
            deadline_s=deadline,
        )
        listing_spec = ExtractionSpec.from_file(spec_file) if spec_file else DEFAULT_LISTING_SPEC
    except ConfigError as e:
        console.print(Panel(str(e), title="Configuration error", style="red"))
        raise typer.Exit(2)

    console.print(
        Panel(
            f"[bold]mode:[/bold] {settings.mode.value}\n"
            f"[bold]start url:[/bold] {settings.start_url}\n"
            f"[bold]max pages:[/bold] {settings.max_pages}\n"
            f"[bold]min area:[/bold] {settings.min_area_sqft:g} sq ft\n"
            f"[bold]output:[/bold] {config.storage.output_dir}",
            title="EstateSpider",
            style="cyan",
        )
    )

    try:
        report = run_async_safely(run_harvest(settings, config, listing_spec=listing_spec))
    except KeyboardInterrupt:
        console.print("[yellow]interrupted[/yellow]")
        raise typer.Exit(130)
    except BrowserUnavailableError as e:
        console.print(Panel(str(e), title="Browser unavailable", style="red"))
        raise typer.Exit(1)
    except EstateSpiderError as e:
        console.print(Panel(str(e), title="Run failed", style="red"))
        raise typer.Exit(1)

    console.print(_report_table(report))


def _checkpoint_for(output_dir: str | None, env_file: str | None) -> RunCheckpoint:
    config = Config.load(env_file)
    directory = Path(output_dir or config.storage.output_dir)
    return RunCheckpoint(directory / config.storage.checkpoint_file)


@checkpoint_app.command("show")
def checkpoint_show(
    output_dir: str | None = typer.Option(None, "--output", "-o", help="Output directory"),
    env_file: str | None = typer.Option(None, "--env-file", help=".env file to load"),
):
    """Print the last successful run time"""
    checkpoint = _checkpoint_for(output_dir, env_file)
    last_run = checkpoint.load()
    if last_run is None:
        console.print(f"no checkpoint at {checkpoint.path}")
        return
    console.print(f"last run: [green]{format_timestamp(last_run)}[/green] ({checkpoint.path})")


@checkpoint_app.command("reset")
def checkpoint_reset(
    output_dir: str | None = typer.Option(None, "--output", "-o", help="Output directory"),
    env_file: str | None = typer.Option(None, "--env-file", help=".env file to load"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete the checkpoint so the next incremental run falls back to the lookback window"""
    checkpoint = _checkpoint_for(output_dir, env_file)
    if not checkpoint.exists():
        console.print(f"no checkpoint at {checkpoint.path}")
        return
    if not yes and not typer.confirm(f"delete {checkpoint.path}?"):
        raise typer.Exit(1)
    checkpoint.reset()
    console.print(f"removed {checkpoint.path}")


def main():
    """Console script entry point"""
    app()


if __name__ == "__main__":
    main()
