"""Data models for proctop."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Raw reading of one process at one sampling instant."""

    pid: int
    name: str
    cpu_ticks: int  # Cumulative user + system time, in clock ticks
    rss_bytes: int


@dataclass(slots=True, frozen=True)
class SystemSample:
    """Raw system-wide reading taken alongside a process scan."""

    cpu_ticks: int  # Sum of all CPU state counters
    memory_total: int
    memory_available: int
    uptime_seconds: float = 0.0


@dataclass(slots=True, frozen=True)
class ProcessMetric:
    """Derived per-process utilization for one cycle."""

    pid: int
    name: str
    cpu_percent: float  # Not normalized by core count, may exceed 100.0
    memory_percent: float


@dataclass(slots=True, frozen=True)
class EngineState:
    """
    Counters retained between two accounting cycles.

    Replaced wholesale every cycle; ``proc_ticks`` holds exactly the pids
    seen in the most recent process snapshot.
    """

    proc_ticks: Mapping[int, int] = field(default_factory=lambda: MappingProxyType({}))
    system_ticks: int | None = None
    timestamp: float | None = None

    @classmethod
    def empty(cls, timestamp: float | None = None) -> "EngineState":
        """Return the state of an engine that has not sampled anything yet."""
        return cls(timestamp=timestamp)
