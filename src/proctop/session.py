"""Session controller: the sample, account, rank and render cycle."""

import signal
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import psutil

from proctop.accounting import AccountingEngine, aggregate_cpu, used_memory_fraction
from proctop.config import Settings
from proctop.log import logger
from proctop.models import ProcessMetric, ProcessSample, SystemSample
from proctop.ranking import SortMode, next_mode, rank
from proctop.source import SnapshotSource, TerminateResult, terminate_process


class SessionState(Enum):
    """States of the refresh/command loop."""

    POLLING = "polling"
    AWAITING_KILL_TARGET = "awaiting_kill_target"
    TERMINATED = "terminated"


class Command(Enum):
    """User commands recognized while polling."""

    QUIT = "quit"
    CYCLE_SORT = "cycle_sort"
    KILL = "kill"


class _Event(Enum):
    QUIT = "quit"
    CYCLE_SORT = "cycle_sort"
    KILL = "kill"
    TARGET_IGNORED = "target_ignored"
    ACKNOWLEDGE = "acknowledge"


TRANSITIONS: dict[tuple[SessionState, _Event], SessionState] = {
    (SessionState.POLLING, _Event.QUIT): SessionState.TERMINATED,
    (SessionState.POLLING, _Event.CYCLE_SORT): SessionState.POLLING,
    (SessionState.POLLING, _Event.KILL): SessionState.AWAITING_KILL_TARGET,
    (SessionState.AWAITING_KILL_TARGET, _Event.TARGET_IGNORED): SessionState.POLLING,
    (SessionState.AWAITING_KILL_TARGET, _Event.ACKNOWLEDGE): SessionState.POLLING,
}

_COMMAND_EVENTS = {
    Command.QUIT: _Event.QUIT,
    Command.CYCLE_SORT: _Event.CYCLE_SORT,
    Command.KILL: _Event.KILL,
}

_EMPTY_SYSTEM = SystemSample(cpu_ticks=0, memory_total=0, memory_available=0)


def parse_kill_target(text: str) -> int | None:
    """Return the pid typed at the kill prompt, or None if it is not a positive integer."""
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    pid = int(text)
    return pid if pid > 0 else None


@dataclass(slots=True, frozen=True)
class Summary:
    """Scalar figures shown above the process table."""

    uptime_seconds: float
    cpu_percent: float  # Sum over processes, may exceed 100.0
    memory_total: int
    memory_available: int
    memory_used_fraction: float
    process_count: int
    sort_label: str
    status: str


@dataclass(slots=True, frozen=True)
class Frame:
    """Everything the presentation layer needs for one refresh."""

    rows: tuple[ProcessMetric, ...]
    summary: Summary


class SessionController:
    """
    Drives one monitoring session.

    The controller is single-threaded: the caller runs ``cycle`` on its own
    loop, feeds user commands through ``handle`` and sleeps for
    ``next_delay`` between cycles. While a kill target is awaited no cycle
    should be run; the prompt ends with ``submit_kill_target`` and, when a
    terminate call was made, ``acknowledge``.
    """

    def __init__(
        self,
        source: SnapshotSource,
        terminate: Callable[[int, int], TerminateResult] = terminate_process,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the SessionController.

        Args:
            source: Where process and system snapshots come from.
            terminate: Sends a signal to a pid and reports the outcome.
            settings: Loop pacing options. Defaults to ``Settings()``.
            clock: Monotonic clock used to measure sampling intervals.
        """
        self._source = source
        self._terminate = terminate
        self._settings = settings or Settings()
        self._clock = clock
        self._engine = AccountingEngine(source.ticks_per_second, started_at=clock())
        self._state = SessionState.POLLING
        self._sort_mode = SortMode.CPU
        self._status = ""
        self._last_system = _EMPTY_SYSTEM
        self._cycle_started: float | None = None

    @property
    def state(self) -> SessionState:
        """Get the current session state."""
        return self._state

    @property
    def running(self) -> bool:
        """Check if the session has not been quit."""
        return self._state is not SessionState.TERMINATED

    @property
    def sort_mode(self) -> SortMode:
        """Get the current sort mode."""
        return self._sort_mode

    @property
    def settings(self) -> Settings:
        """Get the pacing and display settings of the session."""
        return self._settings

    def _fire(self, event: _Event) -> bool:
        target = TRANSITIONS.get((self._state, event))
        if target is None:
            logger.debug("Ignoring %s in state %s", event.value, self._state.value)
            return False
        self._state = target
        return True

    def _read_processes(self) -> list[ProcessSample]:
        try:
            return self._source.list_processes()
        except (psutil.Error, OSError):
            logger.warning("Process scan failed, showing an empty table", exc_info=True)
            return []

    def _read_system(self) -> SystemSample:
        try:
            self._last_system = self._source.system_snapshot()
        except (psutil.Error, OSError):
            logger.warning("System snapshot failed, reusing the previous one", exc_info=True)
        return self._last_system

    def cycle(self, max_rows: int | None = None) -> Frame:
        """
        Sample, account and rank once.

        Args:
            max_rows: How many rows the presentation layer can display.

        Returns:
            The ranked rows and summary figures of this cycle.
        """
        now = self._cycle_started = self._clock()
        processes = self._read_processes()
        system = self._read_system()

        metrics = self._engine.sample(processes, system, now)
        ranked = rank(metrics, self._sort_mode)
        if max_rows is not None:
            ranked = ranked[: max(1, max_rows)]

        summary = Summary(
            uptime_seconds=system.uptime_seconds,
            cpu_percent=aggregate_cpu(metrics),
            memory_total=system.memory_total,
            memory_available=system.memory_available,
            memory_used_fraction=used_memory_fraction(system),
            process_count=len(metrics),
            sort_label=self._sort_mode.label,
            status=self._status,
        )
        # Status text is shown once
        self._status = ""
        return Frame(rows=tuple(ranked), summary=summary)

    def handle(self, command: Command | None) -> bool:
        """
        Apply a command read while polling.

        Returns:
            True if the command was acted on, False if it was ignored.
        """
        if command is None:
            return False
        if not self._fire(_COMMAND_EVENTS[command]):
            return False

        if command is Command.CYCLE_SORT:
            self._sort_mode = next_mode(self._sort_mode)
            logger.debug("Sort mode is now %s", self._sort_mode.value)
        elif command is Command.QUIT:
            logger.info("Session quit")
        return True

    def submit_kill_target(self, text: str) -> TerminateResult | None:
        """
        Handle the line typed at the kill prompt.

        Malformed or non-positive input is ignored and the session returns
        to polling at once. Otherwise exactly one terminate call is made
        with SIGTERM, its outcome becomes the status text, and the session
        waits for ``acknowledge``.
        """
        if self._state is not SessionState.AWAITING_KILL_TARGET:
            return None

        pid = parse_kill_target(text)
        if pid is None:
            logger.debug("Ignoring kill target %r", text)
            self._fire(_Event.TARGET_IGNORED)
            return None

        result = self._terminate(pid, signal.SIGTERM)
        self._status = result.detail
        return result

    def acknowledge(self) -> None:
        """Return to polling after the kill result has been seen."""
        self._fire(_Event.ACKNOWLEDGE)

    def next_delay(self, handled_input: bool = False) -> float:
        """
        Return how long to wait before the next cycle.

        After a handled command the fast-path delay applies. Otherwise the
        remainder of the cadence measured from the start of the last cycle
        is returned, zero if that cycle overran it.
        """
        if handled_input:
            return self._settings.fast_path_delay
        if self._cycle_started is None:
            return 0.0
        spent = self._clock() - self._cycle_started
        return max(0.0, self._settings.cadence_seconds - spent)
