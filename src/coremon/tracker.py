"""Per-core utilization tracking for coremon."""

import logging
import threading
from collections.abc import Mapping

from coremon.models import CoreState, CounterSnapshot, RawCounters, UtilizationSample

logger = logging.getLogger(__name__)

# Kernel clock ticks per second (USER_HZ) used by /proc/stat counters.
TICKS_PER_SECOND = 100


class UtilizationTracker:
    """
    Owns the core registry and turns cumulative counters into fractions.

    update() is called from the sampling thread and sample() from the
    presentation thread; a lock keeps them from interleaving.
    """

    def __init__(self, core_count: int) -> None:
        if core_count < 1:
            raise ValueError(f"core_count must be positive, got {core_count}")
        self._cores = [CoreState() for _ in range(core_count)]
        self._lock = threading.Lock()

    @property
    def core_count(self) -> int:
        """Number of cores in the registry."""
        return len(self._cores)

    def states(self) -> list[CoreState]:
        """Return a copy of the registry."""
        with self._lock:
            return [CoreState(last=core.last, now=core.now) for core in self._cores]

    def update(self, raw: Mapping[int, RawCounters]) -> None:
        """Shift ``now`` into ``last`` and store fresh totals for each core present."""
        with self._lock:
            for index, counters in raw.items():
                if not 0 <= index < len(self._cores):
                    continue
                core = self._cores[index]
                core.last = core.now
                core.now = CounterSnapshot.from_raw(counters)

    def sample(self, intervals_per_second: int) -> list[UtilizationSample | None]:
        """
        Compute busy fractions for the most recent interval.

        Args:
            intervals_per_second: Sampling rate the counters were read at.

        Returns:
            One entry per core, in core order. ``None`` marks a core without
            a previous reading.
        """
        with self._lock:
            cores = [CoreState(last=core.last, now=core.now) for core in self._cores]

        samples: list[UtilizationSample | None] = []
        for index, core in enumerate(cores):
            if not core.has_data:
                samples.append(None)
                continue

            cpu_delta = core.now.cpu_busy_ticks - core.last.cpu_busy_ticks
            sys_delta = core.now.system_busy_ticks - core.last.system_busy_ticks
            if cpu_delta < 0 or sys_delta < 0:
                logger.debug(f"Counter went backwards on core {index}, clamping to zero")
                cpu_delta = max(cpu_delta, 0)
                sys_delta = max(sys_delta, 0)

            samples.append(
                UtilizationSample(
                    cpu_fraction=(cpu_delta * intervals_per_second) / float(TICKS_PER_SECOND),
                    system_fraction=(sys_delta * intervals_per_second) / float(TICKS_PER_SECOND),
                )
            )
        return samples
