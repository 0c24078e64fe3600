"""Rich terminal display for purebar."""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from purebar.commands import CommandOutcome
from purebar.models import (
    Category,
    CleanupResult,
    DiskStats,
    EngineState,
    MatchKind,
    SystemSnapshot,
    format_size,
)
from purebar.telemetry import TelemetrySampler

console = Console()

UNKNOWN = "[dim]…[/dim]"


def usage_color(fraction: float) -> str:
    """Color for a used fraction."""
    if fraction >= 0.9:
        return "red"
    elif fraction >= 0.75:
        return "yellow"
    return "green"


def describe_rule(category: Category) -> str:
    """One-line description of a category's matching rule."""
    rule = category.rule
    if rule.kind == MatchKind.WHOLE_DIRECTORY:
        return "everything inside"
    elif rule.kind == MatchKind.EXTENSIONS:
        return "files ending in " + ", ".join(f".{ext}" for ext in rule.extensions)
    elif rule.kind == MatchKind.PREFIXES:
        return "files starting with " + ", ".join(f'"{p}"' for p in rule.prefixes)
    return f"files larger than {format_size(rule.min_size_bytes)}"


def show_categories(categories: list[Category], home: Path) -> None:
    """Display the category registry."""
    table = Table(title="Categories", show_header=True, header_style="bold")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Rule")
    table.add_column("Paths")

    for category in categories:
        table.add_row(
            category.id,
            f"[{category.color}]{category.name}[/{category.color}]" if category.color else category.name,
            describe_rule(category),
            "\n".join(str(p) for p in category.resolve_paths(home)),
        )

    console.print(table)


def show_scan_results(state: EngineState) -> None:
    """Display per-category sizes and the reclaimable total."""
    table = Table(title="Reclaimable Space", show_header=True, header_style="bold")
    table.add_column("Category")
    table.add_column("Size", justify="right")
    table.add_column("Files", justify="right")

    for category in state.categories:
        result = state.result_for(category.kind)
        if category.kind in state.scanning:
            size, files = "[dim]scanning…[/dim]", ""
        elif result is None:
            size, files = UNKNOWN, ""
        else:
            size, files = result.size_human, str(result.file_count)
        table.add_row(category.name, size, files)

    console.print(table)
    console.print(
        Panel(
            f"[bold]Total reclaimable:[/bold] {state.total_reclaimable_human}",
            border_style="blue",
        )
    )


def show_cleanup_result(result: CleanupResult, category_name: str | None = None) -> None:
    """Display result of a single reclaim."""
    name = category_name or result.category.value
    verb = "would move" if result.dry_run else "moved"
    if result.success:
        console.print(
            f"  [green]✓[/green] {name}: {verb} {result.items_trashed} items "
            f"({format_size(result.bytes_matched)}) to the Trash"
        )
    else:
        console.print(
            f"  [yellow]![/yellow] {name}: {verb} {result.items_trashed} items "
            f"({format_size(result.bytes_matched)}), {result.items_failed} failed"
        )
        for error in result.errors[:3]:
            console.print(f"      [dim]{escape(error)}[/dim]")


def show_cleanup_summary(
    results: list[CleanupResult],
    disk_before: DiskStats | None,
    disk_after: DiskStats | None,
) -> None:
    """Display cleanup summary."""
    console.print()
    console.print("[bold green]Cleanup Complete![/bold green]")
    console.print()

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Moved to Trash", format_size(sum(r.bytes_matched for r in results)))
    table.add_row("Items", str(sum(r.items_trashed for r in results)))
    failed = sum(r.items_failed for r in results)
    if failed > 0:
        table.add_row("[red]Failed[/red]", str(failed))
    if disk_before and disk_after:
        table.add_row("Available before", format_size(disk_before.available_bytes))
        table.add_row(
            "Available after",
            f"[bold green]{format_size(disk_after.available_bytes)}[/bold green]",
        )

    console.print(table)
    console.print("[dim]Empty the Trash to release the space.[/dim]")


def show_snapshot(snapshot: SystemSnapshot) -> None:
    """Display the telemetry snapshot."""
    table = Table(title="System", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    disk = snapshot.disk
    if disk:
        color = usage_color(disk.used_fraction)
        table.add_row(
            "Disk",
            f"{format_size(disk.available_bytes)} available of {format_size(disk.total_bytes)} "
            f"[{color}]({disk.used_fraction:.0%} used)[/{color}]",
        )
    else:
        table.add_row("Disk", UNKNOWN)

    memory = snapshot.memory
    if memory:
        color = usage_color(memory.used_fraction)
        table.add_row(
            "Memory",
            f"{memory.used_bytes / 1024**3:.1f} GB / {memory.total_bytes / 1024**3:.0f} GB "
            f"[{color}]({memory.used_fraction:.0%})[/{color}]",
        )
    else:
        table.add_row("Memory", UNKNOWN)

    if snapshot.cpu:
        color = usage_color(snapshot.cpu.utilization)
        table.add_row("CPU", f"[{color}]{snapshot.cpu.utilization:.0%}[/{color}]")
    else:
        table.add_row("CPU", UNKNOWN)

    top = escape(snapshot.top_process) if snapshot.top_process else UNKNOWN
    table.add_row("Top process", top)

    network = snapshot.network
    if network:
        table.add_row(
            "Network",
            f"↓ {TelemetrySampler.format_bytes_rate(network.download_rate)}  "
            f"↑ {TelemetrySampler.format_bytes_rate(network.upload_rate)} "
            f"[dim]({network.interface})[/dim]",
        )
    else:
        table.add_row("Network", UNKNOWN)

    battery = snapshot.battery
    if battery is None:
        table.add_row("Battery", UNKNOWN)
    elif not battery.present:
        table.add_row("Battery", "[dim]n/a[/dim]")
    else:
        parts = [f"{battery.percent:.0f}%" if battery.percent is not None else "?"]
        if battery.health:
            parts.append(battery.health)
        if battery.temperature_c is not None:
            parts.append(f"{battery.temperature_c:.0f}°C")
        table.add_row("Battery", " · ".join(parts))

    console.print(table)


def show_command_outcome(label: str, outcome: CommandOutcome) -> None:
    """Display what is known about a maintenance command."""
    if not outcome.launched:
        console.print(f"[red]✗ {label}: could not launch ({escape(outcome.error or '')})[/red]")
    elif outcome.completed and outcome.returncode == 0:
        console.print(f"[green]✓ {label} done[/green]")
    elif outcome.completed:
        console.print(f"[yellow]! {label} exited with {outcome.returncode}[/yellow]")
    else:
        console.print(f"[green]✓ {label} started[/green] [dim](still running)[/dim]")


def show_scanning_progress() -> Progress:
    """Create progress bar for scanning."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
    )


def confirm_action(message: str) -> bool:
    """Ask for confirmation."""
    from rich.prompt import Confirm

    return Confirm.ask(message)
