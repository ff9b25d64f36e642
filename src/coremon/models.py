"""Data models for coremon."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class RawCounters:
    """Raw cumulative tick counters for one core, as read from /proc/stat."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int
    softirq: int


@dataclass(slots=True, frozen=True)
class CounterSnapshot:
    """Immutable busy-tick totals for one core at one point in time."""

    cpu_busy_ticks: int = 0  # user + nice
    system_busy_ticks: int = 0  # system + iowait + irq + softirq

    @classmethod
    def from_raw(cls, raw: RawCounters) -> "CounterSnapshot":
        """Fold raw counters into busy-tick totals."""
        return cls(
            cpu_busy_ticks=raw.user + raw.nice,
            system_busy_ticks=raw.system + raw.iowait + raw.irq + raw.softirq,
        )


@dataclass(slots=True)
class CoreState:
    """
    Previous and current counter snapshots for one core.

    A zero ``last.cpu_busy_ticks`` means no earlier sample exists yet.
    """

    last: CounterSnapshot = field(default_factory=CounterSnapshot)
    now: CounterSnapshot = field(default_factory=CounterSnapshot)

    @property
    def has_data(self) -> bool:
        """Check if an earlier reading exists to diff against."""
        return self.last.cpu_busy_ticks > 0


@dataclass(slots=True, frozen=True)
class UtilizationSample:
    """Busy fractions of one core over the latest sampling interval."""

    cpu_fraction: float  # nominally 0.0 - 1.0
    system_fraction: float
