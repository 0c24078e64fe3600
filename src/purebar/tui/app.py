"""Live dashboard for purebar."""

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import DataTable, Footer, Header, Static

from purebar.engine import Engine
from purebar.models import CategoryKind, EngineState
from purebar.tui.widgets import TelemetryPanel


class PurebarApp(App):
    """Always-on view of reclaimable space and system health."""

    TITLE = "purebar"
    SUB_TITLE = "Storage & System Health"

    CSS = """
    #telemetry {
        height: auto;
        padding: 1 2;
        border: round $primary;
    }
    #category-table {
        height: 1fr;
    }
    #total {
        height: auto;
        padding: 0 2;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("s", "scan", "Scan"),
        Binding("c", "clean_selected", "Clean"),
        Binding("a", "clean_all", "Clean All"),
        Binding("b", "boost", "Boost RAM"),
        Binding("f", "flush", "Flush DNS"),
        Binding("m", "maintenance", "Maintenance"),
    ]

    def __init__(self, engine: Engine):
        super().__init__()
        self.engine = engine
        self._size_column = None
        self._status_column = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="main-container"):
            yield TelemetryPanel(id="telemetry")
            yield DataTable(id="category-table")
            yield Static("", id="total")
        yield Footer()

    def on_mount(self) -> None:
        """Build the table, start the engine timers and poll its state."""
        table = self.query_one("#category-table", DataTable)
        table.cursor_type = "row"
        _, self._size_column, self._status_column = table.add_columns("Category", "Size", "")
        for category in self.engine.categories:
            table.add_row(category.name, "…", "", key=category.kind.value)

        self.engine.start()
        self.set_interval(0.5, self.refresh_view)

    def on_unmount(self) -> None:
        self.engine.shutdown()

    def refresh_view(self) -> None:
        """Copy the latest engine state into the widgets."""
        state = self.engine.state()
        self.query_one("#telemetry", TelemetryPanel).update_snapshot(state.snapshot)

        table = self.query_one("#category-table", DataTable)
        for category in state.categories:
            result = state.result_for(category.kind)
            table.update_cell(
                category.kind.value, self._size_column, result.size_human if result else "…"
            )
            table.update_cell(
                category.kind.value, self._status_column, self._status_label(state, category.kind)
            )

        busy = [
            label
            for label, flag in (
                ("boosting", state.is_boosting),
                ("flushing DNS", state.is_flushing),
                ("maintenance", state.is_maintaining),
            )
            if flag
        ]
        suffix = f"  [yellow]{', '.join(busy)}…[/yellow]" if busy else ""
        self.query_one("#total", Static).update(
            f"[bold]Reclaimable:[/bold] [cyan]{state.total_reclaimable_human}[/cyan]{suffix}"
        )

    @staticmethod
    def _status_label(state: EngineState, kind: CategoryKind) -> str:
        if kind in state.cleaning:
            return "[yellow]cleaning[/yellow]"
        if kind in state.scanning:
            return "[dim]scanning[/dim]"
        return ""

    def action_scan(self) -> None:
        self.engine.scan_all()
        self.notify("Scanning…", timeout=2)

    def action_clean_selected(self) -> None:
        table = self.query_one("#category-table", DataTable)
        if table.row_count == 0:
            return
        row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        self.engine.clean_one(str(row_key.value))
        self.notify("Moving to Trash…", timeout=2)

    def action_clean_all(self) -> None:
        self.engine.clean_all()
        self.notify("Cleaning every category…", timeout=2)

    def action_boost(self) -> None:
        self.engine.boost_memory()

    def action_flush(self) -> None:
        self.engine.flush_network_cache()

    def action_maintenance(self) -> None:
        self.engine.run_maintenance()


def run_tui(engine: Engine | None = None) -> None:
    """Run the dashboard.

    Args:
        engine: Engine to display (a default one is created if omitted)
    """
    app = PurebarApp(engine or Engine())
    app.run()
