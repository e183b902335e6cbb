"""Ordering of the process table."""

from collections.abc import Iterable
from enum import Enum

from proctop.models import ProcessMetric


class SortMode(Enum):
    """Sort modes for the process table, in cycling order."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"

    @property
    def label(self) -> str:
        """Header label of the mode."""
        return _LABELS[self]


_LABELS = {
    SortMode.CPU: "CPU %",
    SortMode.MEM: "MEM %",
    SortMode.PID: "PID",
}

# Descending keys are negated so a single ascending sort gives pid tie-breaks
_SORT_KEYS = {
    SortMode.CPU: lambda m: (-m.cpu_percent, m.pid),
    SortMode.MEM: lambda m: (-m.memory_percent, m.pid),
    SortMode.PID: lambda m: (m.pid,),
}


def rank(metrics: Iterable[ProcessMetric], mode: SortMode) -> list[ProcessMetric]:
    """Return the metrics ordered by ``mode``, ties broken by ascending pid."""
    return sorted(metrics, key=_SORT_KEYS[mode])


def next_mode(mode: SortMode) -> SortMode:
    """Return the sort mode following ``mode``, wrapping around."""
    modes = list(SortMode)
    return modes[(modes.index(mode) + 1) % len(modes)]
