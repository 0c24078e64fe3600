"""Custom widgets for the purebar dashboard."""

from textual.widgets import Static

from purebar.models import SystemSnapshot, format_size
from purebar.telemetry import TelemetrySampler


def _bar(fraction: float, width: int = 24) -> str:
    filled = int(width * max(0.0, min(1.0, fraction)))
    if fraction >= 0.9:
        color = "red"
    elif fraction >= 0.75:
        color = "yellow"
    else:
        color = "green"
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim]"


class TelemetryPanel(Static):
    """Disk, memory, CPU, network and battery readings."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.snapshot = SystemSnapshot()

    def update_snapshot(self, snapshot: SystemSnapshot) -> None:
        """Redraw if anything changed."""
        if snapshot == self.snapshot:
            return
        self.snapshot = snapshot
        self.refresh()

    def render(self) -> str:
        snap = self.snapshot
        lines = []

        if snap.disk:
            lines.append(
                f"[bold]Disk[/bold]    {_bar(snap.disk.used_fraction)} "
                f"{format_size(snap.disk.available_bytes)} free of {format_size(snap.disk.total_bytes)}"
            )
        else:
            lines.append("[bold]Disk[/bold]    [dim]loading…[/dim]")

        if snap.memory:
            lines.append(
                f"[bold]Memory[/bold]  {_bar(snap.memory.used_fraction)} "
                f"{snap.memory.used_bytes / 1024**3:.1f} / {snap.memory.total_bytes / 1024**3:.0f} GB"
            )
        else:
            lines.append("[bold]Memory[/bold]  [dim]loading…[/dim]")

        if snap.cpu:
            top = f" [dim]{snap.top_process}[/dim]" if snap.top_process else ""
            lines.append(
                f"[bold]CPU[/bold]     {_bar(snap.cpu.utilization)} {snap.cpu.utilization:.0%}{top}"
            )
        else:
            lines.append("[bold]CPU[/bold]     [dim]measuring…[/dim]")

        if snap.network:
            rate = TelemetrySampler.format_bytes_rate
            lines.append(
                f"[bold]Network[/bold] ↓ {rate(snap.network.download_rate)}  "
                f"↑ {rate(snap.network.upload_rate)}"
            )
        else:
            lines.append("[bold]Network[/bold] [dim]measuring…[/dim]")

        battery = snap.battery
        if battery and battery.present and battery.percent is not None:
            extra = f" [dim]{battery.health}[/dim]" if battery.health else ""
            lines.append(f"[bold]Battery[/bold] {battery.percent:.0f}%{extra}")

        return "\n".join(lines)
