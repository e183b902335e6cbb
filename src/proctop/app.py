"""proctop - Main Textual application."""

from collections.abc import Callable, Sequence
from functools import partial

from rich.markup import escape
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container, Vertical
from textual.css.query import NoMatches
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Input, Label, Static

from proctop.config import Settings
from proctop.log import logger
from proctop.models import ProcessMetric
from proctop.session import Command, Frame, SessionController, SessionState, Summary
from proctop.source import PsutilSnapshotSource, SnapshotSource, TerminateResult, terminate_process

ELLIPSIS = "..."
BAR_WIDTH = 20


def truncate_name(name: str, pid: int, max_len: int = 20) -> str:
    """Display name of a process, ``[pid]`` when empty, cut to ``max_len``."""
    if not name:
        name = f"[{pid}]"
    if len(name) > max_len:
        return name[: max_len - len(ELLIPSIS)] + ELLIPSIS
    return name


def format_uptime(uptime: float) -> str:
    """Format seconds as ``D days, HH:MM:SS``."""
    days = int(uptime // 86400)
    hours = int((uptime % 86400) // 3600)
    minutes = int((uptime % 3600) // 60)
    seconds = int(uptime % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_mb(size: int) -> str:
    """Format bytes as megabytes."""
    return f"{size / (1024 * 1024):.1f}MB"


def _bar(fraction: float, color: str) -> str:
    filled = int(fraction * BAR_WIDTH + 0.5)
    filled = min(max(filled, 0), BAR_WIDTH)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (BAR_WIDTH - filled)


class HeaderStats(Static):
    """Header widget showing uptime, CPU and memory figures."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._summary: Summary | None = None

    @property
    def summary(self) -> Summary | None:
        """Get the summary currently displayed."""
        return self._summary

    def update_summary(self, summary: Summary) -> None:
        """Update the statistics from a cycle summary."""
        self._summary = summary
        self.update(self.render_summary())

    def render_summary(self) -> str:
        """Get the header text for the current summary."""
        summary = self._summary
        if summary is None:
            return "Loading..."

        # The sum over processes has no upper bound, the bar saturates at 100%
        cpu_bar = _bar(min(1.0, summary.cpu_percent / 100.0), "green")
        mem_bar = _bar(summary.memory_used_fraction, "cyan")
        used = summary.memory_total - summary.memory_available

        lines = [
            f"Uptime: {format_uptime(summary.uptime_seconds)}  "
            f"Tasks: {summary.process_count}  Sort: {summary.sort_label}",
            f"CPU\\[{cpu_bar}] {summary.cpu_percent:6.2f}% (sum of processes)",
            f"Mem\\[{mem_bar}] {format_mb(used)}/{format_mb(summary.memory_total)} "
            f"({summary.memory_used_fraction * 100.0:.1f}%)  Avail: {format_mb(summary.memory_available)}",
        ]
        if summary.status:
            lines.append(f"[bold]{escape(summary.status)}[/bold]")
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, max_name_length: int = 20, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._max_name_length = max_name_length
        self._current_pids: list[int] = []

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("NAME", key="name", width=self._max_name_length + 1)
        table.add_column("CPU %", key="cpu", width=8)
        table.add_column("MEM %", key="mem", width=8)

    @property
    def visible_rows(self) -> int | None:
        """Rows that fit inside the border below the header, None before layout."""
        rows = self.size.height - 3
        return rows if rows > 0 else None

    def update_rows(self, rows: Sequence[ProcessMetric]) -> None:
        """
        Update the process table with already ranked rows.

        Uses update_cell for pids already shown, removes pids no longer
        present, then reorders the rows to the ranked order.
        """
        table = self.query_one("#process-table", DataTable)
        shown = set(self._current_pids)
        new_pids = [metric.pid for metric in rows]

        for pid in shown - set(new_pids):
            table.remove_row(str(pid))

        for metric in rows:
            row_key = str(metric.pid)
            if metric.pid in shown:
                self._update_row(table, row_key, metric)
            else:
                self._add_row(table, row_key, metric)

        position = {str(pid): index for index, pid in enumerate(new_pids)}
        table.sort("pid", key=lambda pid: position[pid])
        self._current_pids = new_pids

    def _cells(self, metric: ProcessMetric) -> tuple[str, Text, str, str]:
        # Process names are chosen by the process, never parse them as markup
        name = Text(truncate_name(metric.name, metric.pid, self._max_name_length))
        return (
            str(metric.pid),
            name,
            f"{metric.cpu_percent:8.2f}",
            f"{metric.memory_percent:8.2f}",
        )

    def _update_row(self, table: DataTable, row_key: str, metric: ProcessMetric) -> None:
        """Update an existing row in place."""
        _, name, cpu, mem = self._cells(metric)
        table.update_cell(row_key, "name", name)
        table.update_cell(row_key, "cpu", cpu)
        table.update_cell(row_key, "mem", mem)

    def _add_row(self, table: DataTable, row_key: str, metric: ProcessMetric) -> None:
        """Add a new row to the table."""
        table.add_row(*self._cells(metric), key=row_key)


class KillScreen(ModalScreen[None]):
    """Prompt for the pid to terminate, then show the outcome until a key is pressed."""

    DEFAULT_CSS = """
    KillScreen {
        align: center middle;
    }

    #kill-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $error;
        background: $surface;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, submit: Callable[[str], TerminateResult | None]) -> None:
        """
        Initialize KillScreen.

        Args:
            submit: Receives the typed line, returns the terminate outcome or
                None when the input was ignored.
        """
        super().__init__()
        self._submit = submit
        self._result: TerminateResult | None = None

    def compose(self) -> ComposeResult:
        """Compose the prompt."""
        yield Vertical(
            Label("Enter PID to kill:", id="kill-prompt"),
            Input(placeholder="pid", id="kill-input"),
            id="kill-dialog",
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Send the typed pid to the session and show the outcome."""
        event.stop()
        result = self._submit(event.value)
        if result is None:
            self.dismiss()
            return

        self._result = result
        event.input.disabled = True
        self.set_focus(None)
        self.query_one("#kill-prompt", Label).update(f"{escape(result.detail)}. Press any key to continue...")

    def on_key(self, event: events.Key) -> None:
        """Close on any key once the outcome is shown."""
        if self._result is not None:
            event.stop()
            self.dismiss()

    def action_cancel(self) -> None:
        """Abandon the prompt without terminating anything."""
        if self._result is None:
            self._submit("")
        self.dismiss()


class ProctopApp(App):
    """Main proctop application."""

    TITLE = "proctop"
    SUB_TITLE = "Process Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 4;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort (CPU/MEM/PID)"),
        ("k", "kill", "Kill <pid>"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        source: SnapshotSource | None = None,
        terminate: Callable[[int, int], TerminateResult] = terminate_process,
    ) -> None:
        """Initialize the ProctopApp."""
        super().__init__()
        self._settings = settings or Settings()
        self._controller = SessionController(
            source or PsutilSnapshotSource(),
            terminate=terminate,
            settings=self._settings,
        )
        self._timer: Timer | None = None
        self._generation = 0
        self._last_frame: Frame | None = None

    @property
    def controller(self) -> SessionController:
        """Get the session controller."""
        return self._controller

    @property
    def last_frame(self) -> Frame | None:
        """Get the frame rendered most recently."""
        return self._last_frame

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable(max_name_length=self._settings.max_name_length)
        yield Footer()

    def on_mount(self) -> None:
        """Run the first cycle as soon as the app is mounted."""
        self._schedule(0.0)

    def _cancel(self) -> None:
        """Drop the pending cycle, whether timed or immediate."""
        self._generation += 1
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    def _schedule(self, delay: float) -> None:
        self._cancel()
        generation = self._generation
        if delay <= 0:
            # Overran the cadence: start the next cycle right away
            self.call_later(self._tick, generation)
        else:
            self._timer = self.set_timer(delay, partial(self._tick, generation))

    def _tick(self, generation: int) -> None:
        """Run one cycle and schedule the next one."""
        if generation != self._generation:
            return
        self._timer = None
        if self._controller.state is not SessionState.POLLING:
            return

        try:
            table = self.query_one(ProcessTable)
        except NoMatches:
            # Not mounted yet
            self._schedule(self._settings.fast_path_delay)
            return

        frame = self._controller.cycle(max_rows=table.visible_rows)
        self._render_frame(frame, table)
        self._schedule(self._controller.next_delay())

    def _render_frame(self, frame: Frame, table: ProcessTable) -> None:
        self._last_frame = frame
        self.query_one("#header-stats", HeaderStats).update_summary(frame.summary)
        table.update_rows(frame.rows)

    def action_sort(self) -> None:
        """Cycle the sort mode and refresh quickly."""
        if self._controller.handle(Command.CYCLE_SORT):
            self.notify(f"Sort: {self._controller.sort_mode.label}")
            self._schedule(self._controller.next_delay(handled_input=True))

    def action_kill(self) -> None:
        """Pause refreshing and prompt for a pid to terminate."""
        if not self._controller.handle(Command.KILL):
            return
        self._cancel()
        self.push_screen(KillScreen(self._controller.submit_kill_target), self._kill_closed)

    def _kill_closed(self, _result: None = None) -> None:
        self._controller.acknowledge()
        self._schedule(self._controller.next_delay(handled_input=True))

    def action_quit(self) -> None:
        """Handle quit action."""
        self._cancel()
        self._controller.handle(Command.QUIT)
        logger.info("Exiting")
        self.exit()
