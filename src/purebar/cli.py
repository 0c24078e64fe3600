"""CLI interface for purebar."""

import logging
import time
from concurrent.futures import as_completed
from pathlib import Path
from typing import Optional

import typer

from purebar import __version__
from purebar.categories import category_ids, get_category, list_categories
from purebar.cleaner import reclaim_category
from purebar.display import (
    confirm_action,
    console,
    show_categories,
    show_cleanup_result,
    show_cleanup_summary,
    show_command_outcome,
    show_scan_results,
    show_scanning_progress,
    show_snapshot,
)
from purebar.engine import Engine
from purebar.models import format_size
from purebar.settings import EngineSettings

# Create Typer app
app = typer.Typer(
    name="purebar",
    help="Reclaim disk space and watch machine health on macOS",
    add_completion=False,
)


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"purebar version {__version__}")
        raise typer.Exit()


def _engine(ctx: typer.Context, settings: EngineSettings | None = None) -> Engine:
    home = ctx.obj.get("home") if ctx.obj else None
    return Engine(home=home, settings=settings)


def _unknown_category(category: str) -> None:
    console.print(f"[red]Unknown category: {category}[/red]")
    console.print("\nAvailable categories:")
    for cat_id in category_ids():
        console.print(f"  • {cat_id}")
    raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More logging (-vv for debug)."),
    home: Optional[Path] = typer.Option(
        None, "--home", help="Home directory to work on (defaults to yours).", hidden=True
    ),
) -> None:
    """purebar - reclaim disk space and watch machine health."""
    _setup_logging(verbose)
    ctx.obj = {"home": home}
    if ctx.invoked_subcommand is None:
        ctx.invoke(status, ctx=ctx, interval=1.0)


@app.command(name="list")
def list_command(ctx: typer.Context) -> None:
    """List all cleanable categories."""
    home = (ctx.obj or {}).get("home") or Path.home()
    show_categories(list_categories(), home)
    console.print("[dim]Run [bold]purebar scan[/bold] to measure them[/dim]")


@app.command()
def scan(ctx: typer.Context) -> None:
    """Measure how much space each category occupies."""
    with _engine(ctx) as engine:
        futures = engine.scan_all()
        with show_scanning_progress() as progress:
            task = progress.add_task("Scanning categories...", total=len(futures))
            for _ in as_completed(futures):
                progress.advance(task)

        console.print()
        show_scan_results(engine.state())


@app.command()
def clean(
    ctx: typer.Context,
    category: Optional[str] = typer.Option(
        None, "--category", "-c", help="Clean specific category"
    ),
    all_: bool = typer.Option(False, "--all", help="Clean every category"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be moved to the Trash"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation prompts"),
) -> None:
    """Move matched files to the Trash."""
    if not all_ and not category:
        console.print("[red]Error: Specify --all or --category[/red]")
        console.print("  purebar clean --all                 # Clean every category")
        console.print("  purebar clean --category downloads  # Clean one category")
        raise typer.Exit(1)

    if category and not get_category(category):
        _unknown_category(category)

    with _engine(ctx) as engine:
        targets = [get_category(category)] if category else list(engine.categories)

        if dry_run:
            console.print("[yellow]DRY RUN - Nothing will be moved to the Trash[/yellow]\n")
            for target in targets:
                show_cleanup_result(
                    reclaim_category(target, engine.home, dry_run=True), target.name
                )
            return

        for future in as_completed([engine.scan(t.kind) for t in targets]):
            future.result()
        state = engine.state()
        total = sum(
            state.results[t.kind].size_bytes for t in targets if t.kind in state.results
        )
        console.print(f"[bold]About to move {format_size(total)} to the Trash[/bold]")

        if not yes:
            if not confirm_action("Proceed with cleanup?"):
                console.print("[yellow]Cancelled[/yellow]")
                raise typer.Exit(0)

        disk_before = engine.sampler.probe_disk()
        if category:
            results = [engine.clean_one(targets[0].kind).result()]
        else:
            results = engine.clean_all().result()

        names = {t.kind: t.name for t in targets}
        for result in results:
            show_cleanup_result(result, names.get(result.category))

        show_cleanup_summary(results, disk_before, engine.sampler.probe_disk())
        console.print()
        show_scan_results(engine.state())


@app.command()
def status(
    ctx: typer.Context,
    interval: float = typer.Option(
        1.0, "--interval", "-i", min=0.1, help="Seconds between the two samples"
    ),
) -> None:
    """Show a telemetry snapshot (disk, memory, CPU, network, battery)."""
    with _engine(ctx) as engine:
        # CPU and network rates need two readings
        engine.refresh_fast()
        time.sleep(interval)
        engine.refresh_fast()
        engine.refresh_slow(rescan=False)
        show_snapshot(engine.state().snapshot)


@app.command()
def boost(ctx: typer.Context) -> None:
    """Free inactive memory (runs purge)."""
    with _engine(ctx) as engine:
        engine.refresh_fast()
        before = engine.state().snapshot.memory
        outcome = engine.boost_memory().result()
        show_command_outcome("Memory boost", outcome)
        after = engine.state().snapshot.memory
        if before and after:
            console.print(
                f"  Memory used: {before.used_bytes / 1024**3:.1f} GB → "
                f"{after.used_bytes / 1024**3:.1f} GB"
            )


@app.command(name="flush-dns")
def flush_dns(ctx: typer.Context) -> None:
    """Flush the DNS cache."""
    with _engine(ctx) as engine:
        show_command_outcome("DNS flush", engine.flush_network_cache().result())


@app.command()
def maintenance(ctx: typer.Context) -> None:
    """Run the periodic maintenance scripts."""
    with _engine(ctx) as engine:
        show_command_outcome("Maintenance", engine.run_maintenance().result())


@app.command()
def tui(
    ctx: typer.Context,
    fast: float = typer.Option(3.0, "--fast", help="Seconds between fast telemetry samples"),
    slow: float = typer.Option(30.0, "--slow", help="Seconds between disk samples and rescans"),
) -> None:
    """Launch the live dashboard."""
    try:
        from purebar.tui import run_tui
    except ImportError:
        console.print("[red]TUI not available.[/red]")
        console.print("Install with: [bold]pip install purebar[tui][/bold]")
        raise typer.Exit(1)

    settings = EngineSettings(fast_interval=fast, slow_interval=slow)
    run_tui(_engine(ctx, settings))


if __name__ == "__main__":
    app()
