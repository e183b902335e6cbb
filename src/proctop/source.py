"""Snapshot source and terminate primitive backed by psutil."""

import mmap
import os
import signal
import time
from dataclasses import dataclass
from typing import Protocol

import psutil

from proctop.log import logger
from proctop.models import ProcessSample, SystemSample

# Used where the platform does not expose SC_CLK_TCK
DEFAULT_TICKS_PER_SECOND = 100

# Already included in user time on Linux
_GUEST_FIELDS = ("guest", "guest_nice")


class SnapshotSource(Protocol):
    """Where the session controller reads process and system state from."""

    ticks_per_second: int
    page_size_bytes: int

    def list_processes(self) -> list[ProcessSample]: ...

    def system_snapshot(self) -> SystemSample: ...


def clock_ticks_per_second() -> int:
    """Return the platform's clock ticks per second."""
    try:
        ticks = os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return DEFAULT_TICKS_PER_SECOND
    return ticks if ticks > 0 else DEFAULT_TICKS_PER_SECOND


class PsutilSnapshotSource:
    """
    Snapshot source reading the local machine through psutil.

    CPU times reported by psutil in seconds are converted back to clock
    ticks so the accounting engine deals in integer counters only.
    Handles NoSuchProcess, AccessDenied and ZombieProcess errors by
    leaving the affected process out of the scan.
    """

    def __init__(self) -> None:
        """Initialize the source, fetching the platform constants once."""
        self.ticks_per_second = clock_ticks_per_second()
        self.page_size_bytes = mmap.PAGESIZE

    def _to_ticks(self, seconds: float) -> int:
        return int(round(seconds * self.ticks_per_second))

    def list_processes(self) -> list[ProcessSample]:
        """
        Collect samples of all running processes.

        A process that disappears or cannot be read mid-scan is omitted,
        it never fails the whole scan.
        """
        samples: list[ProcessSample] = []

        for proc in psutil.process_iter(attrs=["pid", "name", "cpu_times", "memory_info"]):
            try:
                info = proc.info
                cpu_times = info.get("cpu_times")
                mem_info = info.get("memory_info")
                if cpu_times is None or mem_info is None:
                    # Unreadable counters, treated like a vanished process
                    continue

                samples.append(
                    ProcessSample(
                        pid=info["pid"],
                        name=info.get("name") or "",
                        cpu_ticks=self._to_ticks(cpu_times.user + cpu_times.system),
                        rss_bytes=mem_info.rss,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return samples

    def system_snapshot(self) -> SystemSample:
        """Collect the system-wide CPU counter, memory totals and uptime."""
        cpu_times = psutil.cpu_times()
        busy_and_idle = sum(
            value for name, value in cpu_times._asdict().items() if name not in _GUEST_FIELDS
        )
        mem = psutil.virtual_memory()
        uptime = max(0.0, time.time() - psutil.boot_time())

        return SystemSample(
            cpu_ticks=self._to_ticks(busy_and_idle),
            memory_total=mem.total,
            memory_available=mem.available,
            uptime_seconds=uptime,
        )


@dataclass(slots=True, frozen=True)
class TerminateResult:
    """Outcome of a terminate request."""

    pid: int
    ok: bool
    detail: str


def terminate_process(pid: int, sig: int = signal.SIGTERM) -> TerminateResult:
    """
    Send ``sig`` to ``pid``.

    Failure is an expected outcome (process gone, insufficient privilege)
    and is returned, never raised.
    """
    name = signal.Signals(sig).name
    try:
        psutil.Process(pid).send_signal(sig)
    except psutil.NoSuchProcess:
        result = TerminateResult(pid, False, f"Failed to kill {pid} (no such process)")
    except psutil.AccessDenied:
        result = TerminateResult(pid, False, f"Failed to kill {pid} (check permissions)")
    except (psutil.Error, OSError) as exc:
        result = TerminateResult(pid, False, f"Failed to kill {pid} ({exc})")
    else:
        result = TerminateResult(pid, True, f"Sent {name} to {pid}")

    logger.info("Terminate %s -> %s: %s", pid, name, result.detail)
    return result
