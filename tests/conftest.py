"""Shared fixtures: a scripted snapshot source, terminate recorder and clock."""

from collections.abc import Callable

import pytest

from proctop.models import ProcessSample, SystemSample
from proctop.source import TerminateResult


class FakeSource:
    """Snapshot source that replays scripted cycles."""

    ticks_per_second = 100
    page_size_bytes = 4096

    def __init__(self) -> None:
        self.processes: list[ProcessSample] = []
        self.system = SystemSample(
            cpu_ticks=0,
            memory_total=1_000_000,
            memory_available=500_000,
            uptime_seconds=3600.0,
        )
        self.process_error: Exception | None = None
        self.system_error: Exception | None = None

    def list_processes(self) -> list[ProcessSample]:
        if self.process_error is not None:
            raise self.process_error
        return list(self.processes)

    def system_snapshot(self) -> SystemSample:
        if self.system_error is not None:
            raise self.system_error
        return self.system


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TerminateRecorder:
    """Records terminate calls and answers with a fixed outcome."""

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[tuple[int, int]] = []

    def __call__(self, pid: int, sig: int) -> TerminateResult:
        self.calls.append((pid, sig))
        if self.ok:
            return TerminateResult(pid, True, f"Sent SIGTERM to {pid}")
        return TerminateResult(pid, False, f"Failed to kill {pid} (check permissions)")


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def terminate() -> TerminateRecorder:
    return TerminateRecorder()


@pytest.fixture
def make_samples() -> Callable[..., list[ProcessSample]]:
    def _make(*rows: tuple[int, int, int]) -> list[ProcessSample]:
        return [ProcessSample(pid, f"proc{pid}", ticks, rss) for pid, ticks, rss in rows]

    return _make


@pytest.fixture
def failing_terminate() -> TerminateRecorder:
    return TerminateRecorder(ok=False)
