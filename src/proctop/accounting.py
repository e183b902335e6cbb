"""Accounting engine: turns cumulative counters into per-cycle percentages."""

from collections.abc import Iterable
from types import MappingProxyType

from proctop.log import logger
from proctop.models import EngineState, ProcessMetric, ProcessSample, SystemSample

# Interval substituted when the measured one is not positive
FALLBACK_INTERVAL = 1.0


def accumulate(
    state: EngineState,
    processes: Iterable[ProcessSample],
    system: SystemSample,
    elapsed_seconds: float,
    ticks_per_second: int,
    timestamp: float | None = None,
) -> tuple[list[ProcessMetric], EngineState]:
    """
    Compute CPU% and MEM% for every process of a new snapshot.

    CPU% is the share of one core used over the interval, so a process
    keeping one core busy reports 100.0 and the sum over all processes can
    exceed 100.0 on multi-core machines. A pid seen for the first time, or
    whose counter went backwards (pid reuse), reports 0.0.

    Args:
        state: State returned by the previous call.
        processes: Samples of the current cycle.
        system: System sample of the current cycle.
        elapsed_seconds: Wall-clock time since the previous cycle.
        ticks_per_second: Platform clock ticks per second.
        timestamp: Clock value of this cycle, stored in the new state.

    Returns:
        The metrics, in snapshot order, and the state for the next call.
    """
    if elapsed_seconds <= 0:
        logger.debug("Non-positive sampling interval %r, using %.1fs", elapsed_seconds, FALLBACK_INTERVAL)
        elapsed_seconds = FALLBACK_INTERVAL

    previous = state.proc_ticks
    memory_total = system.memory_total
    metrics: list[ProcessMetric] = []
    ticks: dict[int, int] = {}

    for sample in processes:
        prior = previous.get(sample.pid, sample.cpu_ticks)
        delta = max(0, sample.cpu_ticks - prior)
        cpu_seconds = delta / ticks_per_second
        memory_percent = sample.rss_bytes / memory_total * 100.0 if memory_total > 0 else 0.0
        metrics.append(
            ProcessMetric(
                pid=sample.pid,
                name=sample.name,
                cpu_percent=cpu_seconds / elapsed_seconds * 100.0,
                memory_percent=memory_percent,
            )
        )
        ticks[sample.pid] = sample.cpu_ticks

    new_state = EngineState(
        proc_ticks=MappingProxyType(ticks),
        system_ticks=system.cpu_ticks,
        timestamp=timestamp,
    )
    return metrics, new_state


def aggregate_cpu(metrics: Iterable[ProcessMetric]) -> float:
    """Sum of per-process CPU%, a rough load indicator without upper bound."""
    return sum(metric.cpu_percent for metric in metrics)


def used_memory_fraction(system: SystemSample) -> float:
    """Fraction of physical memory not available, 0.0 when total is unknown."""
    if system.memory_total <= 0:
        return 0.0
    return (system.memory_total - system.memory_available) / system.memory_total


class AccountingEngine:
    """
    Owner of the EngineState threaded through ``accumulate``.

    The elapsed interval is always measured from the timestamp of the
    previous cycle, never assumed from the target cadence.
    """

    def __init__(self, ticks_per_second: int, started_at: float) -> None:
        """
        Initialize the AccountingEngine.

        Args:
            ticks_per_second: Platform clock ticks per second.
            started_at: Clock value the first interval is measured from.
        """
        if ticks_per_second <= 0:
            raise ValueError(f"ticks_per_second must be positive, got {ticks_per_second}")
        self._ticks_per_second = ticks_per_second
        self._state = EngineState.empty(timestamp=started_at)

    @property
    def state(self) -> EngineState:
        """Get the state left by the last cycle."""
        return self._state

    def sample(
        self,
        processes: Iterable[ProcessSample],
        system: SystemSample,
        now: float,
    ) -> list[ProcessMetric]:
        """Account one cycle measured at clock value ``now``."""
        last = self._state.timestamp
        elapsed = now - last if last is not None else FALLBACK_INTERVAL
        metrics, self._state = accumulate(
            self._state,
            processes,
            system,
            elapsed,
            self._ticks_per_second,
            timestamp=now,
        )
        return metrics
