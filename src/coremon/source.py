"""Per-core counter source backed by /proc."""

import logging
from pathlib import Path

from coremon.models import RawCounters

logger = logging.getLogger(__name__)

PROCESSOR_PREFIX = "processor\t"
CPU_PREFIX = "cpu"
FIELD_COUNT = 7
MAX_COUNTER = 2**64 - 1


class CoremonError(Exception):
    """Base class for coremon errors."""


class DiscoveryError(CoremonError):
    """The processor listing is unreadable or reports no cores."""


class SampleReadError(CoremonError):
    """The counter table could not be read on a given tick."""


class ParseSkew(CoremonError):
    """A per-core counter line is malformed."""


def _is_decimal(text: str) -> bool:
    return text.isascii() and text.isdigit()


def _parse_counter(text: str) -> int:
    if not _is_decimal(text):
        raise ParseSkew(f"non-numeric counter {text!r}")
    value = int(text)
    if value > MAX_COUNTER:
        raise ParseSkew(f"counter out of range: {text!r}")
    return value


def parse_counter_line(line: str) -> tuple[int, RawCounters] | None:
    """
    Parse one line of /proc/stat.

    Returns:
        ``(core_index, counters)`` for a per-core line, ``None`` for any other
        line (including the ``cpu`` aggregate line).

    Raises:
        ParseSkew: The line is a per-core line but its fields are malformed.
    """
    # "cpu " (with a space) is the whole-system line
    if not line.startswith(CPU_PREFIX) or not line[len(CPU_PREFIX) :][:1].isdigit():
        return None

    label, *fields = line.split()
    index_text = label[len(CPU_PREFIX) :]
    if not _is_decimal(index_text):
        raise ParseSkew(f"bad core label {label!r}")
    if len(fields) < FIELD_COUNT:
        raise ParseSkew(f"{label}: expected {FIELD_COUNT} fields, got {len(fields)}")

    values = [_parse_counter(text) for text in fields[:FIELD_COUNT]]
    return int(index_text), RawCounters(*values)


class CoreCounterSource:
    """
    Reads core count and raw tick counters from the kernel's text tables.

    The source never keeps history or computes deltas; every call is a fresh
    read of the underlying file.
    """

    def __init__(
        self,
        cpuinfo_path: str | Path = "/proc/cpuinfo",
        stat_path: str | Path = "/proc/stat",
    ) -> None:
        """
        Initialize the CoreCounterSource.

        Args:
            cpuinfo_path: Per-processor listing, read once by discover_core_count().
            stat_path: Aggregate counter table, read on every tick.
        """
        self._cpuinfo_path = Path(cpuinfo_path)
        self._stat_path = Path(stat_path)
        self._core_count = 0

    @property
    def core_count(self) -> int:
        """Number of cores found by the last discover_core_count() call."""
        return self._core_count

    def discover_core_count(self) -> int:
        """Count the logical processors listed in the processor listing."""
        try:
            text = self._cpuinfo_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DiscoveryError(f"cannot read {self._cpuinfo_path}: {exc}") from exc

        count = sum(1 for line in text.splitlines() if line.startswith(PROCESSOR_PREFIX))
        if count == 0:
            raise DiscoveryError(f"no processors listed in {self._cpuinfo_path}")

        logger.info(f"Discovered {count} cores in {self._cpuinfo_path}")
        self._core_count = count
        return count

    def read_counters(self) -> dict[int, RawCounters]:
        """
        Read raw counters for every known core.

        Lines for core indices outside ``[0, core_count)`` are ignored and
        malformed lines are skipped, so the result may be partial.
        """
        try:
            text = self._stat_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SampleReadError(f"cannot read {self._stat_path}: {exc}") from exc
        if not text.strip():
            raise SampleReadError(f"{self._stat_path} is empty")

        counters: dict[int, RawCounters] = {}
        for line in text.splitlines():
            try:
                parsed = parse_counter_line(line)
            except ParseSkew as exc:
                logger.debug(f"Skipping counter line: {exc}")
                continue
            if parsed is None:
                continue

            index, raw = parsed
            if 0 <= index < self._core_count:
                counters[index] = raw
        return counters
