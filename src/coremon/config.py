"""Runtime configuration for coremon."""

import argparse
from collections.abc import Sequence
from dataclasses import dataclass

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True, frozen=True)
class CoremonConfig:
    """Settings for one coremon run."""

    polls_per_second: int = 4
    bar_height: int = 10  # Rows
    bar_width: int = 3  # Columns per core
    cpuinfo_path: str = "/proc/cpuinfo"
    stat_path: str = "/proc/stat"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.polls_per_second < 1:
            raise ValueError(f"polls_per_second must be at least 1, got {self.polls_per_second}")
        if self.bar_height < 1 or self.bar_width < 1:
            raise ValueError("bar_height and bar_width must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"unknown log level {self.log_level!r}")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    defaults = CoremonConfig()
    parser = argparse.ArgumentParser(
        prog="coremon",
        description="Live per-core CPU utilization bars.",
    )
    parser.add_argument(
        "--rate",
        type=int,
        default=defaults.polls_per_second,
        help="samples per second (default: %(default)s)",
    )
    parser.add_argument(
        "--bar-height",
        type=int,
        default=defaults.bar_height,
        help="bar height in rows (default: %(default)s)",
    )
    parser.add_argument(
        "--bar-width",
        type=int,
        default=defaults.bar_width,
        help="bar width in columns (default: %(default)s)",
    )
    parser.add_argument("--cpuinfo", default=defaults.cpuinfo_path, help="processor listing path")
    parser.add_argument("--stat", default=defaults.stat_path, help="counter table path")
    parser.add_argument(
        "--log-level",
        default=defaults.log_level,
        type=str.upper,
        choices=LOG_LEVELS,
        help="logging level (default: %(default)s)",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> CoremonConfig:
    """Parse command line arguments into a CoremonConfig."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return CoremonConfig(
            polls_per_second=args.rate,
            bar_height=args.bar_height,
            bar_width=args.bar_width,
            cpuinfo_path=args.cpuinfo,
            stat_path=args.stat,
            log_level=args.log_level,
        )
    except ValueError as exc:
        parser.error(str(exc))
