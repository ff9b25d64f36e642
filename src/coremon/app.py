"""coremon - Main Textual application."""

import logging
import sys
from collections.abc import Sequence
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.css.query import NoMatches
from textual.logging import TextualHandler
from textual.widgets import Footer, Static

from coremon.config import CoremonConfig, parse_args
from coremon.models import UtilizationSample
from coremon.monitor import SamplingScheduler
from coremon.source import CoreCounterSource, DiscoveryError
from coremon.tracker import UtilizationTracker

logger = logging.getLogger(__name__)

CPU_COLOR = "#1E90FF"  # dodger blue
SYSTEM_COLOR = "#003366"  # midnight blue
BAR_CHAR = "█"


def _clip(fraction: float) -> float:
    return min(max(fraction, 0.0), 1.0)


def render_bars(
    samples: Sequence[UtilizationSample | None],
    bar_height: int,
    bar_width: int,
) -> str:
    """
    Render one vertical bar per core as Rich markup.

    The user+nice share grows from the bottom and the system share is stacked
    on top of it. Fractions are clipped so a bar never exceeds ``bar_height``.
    Cores without data render as an empty column.
    """
    heights: list[tuple[int, int]] = []
    for sample in samples:
        if sample is None:
            heights.append((0, 0))
            continue
        cpu_rows = int(_clip(sample.cpu_fraction) * bar_height)
        sys_rows = min(bar_height - cpu_rows, int(_clip(sample.system_fraction) * bar_height))
        heights.append((cpu_rows, sys_rows))

    blank = " " * bar_width
    cpu_cell = f"[{CPU_COLOR}]{BAR_CHAR * bar_width}[/]"
    sys_cell = f"[{SYSTEM_COLOR}]{BAR_CHAR * bar_width}[/]"

    lines = []
    for level in range(bar_height, 0, -1):
        cells = []
        for cpu_rows, sys_rows in heights:
            if level <= cpu_rows:
                cells.append(cpu_cell)
            elif level <= cpu_rows + sys_rows:
                cells.append(sys_cell)
            else:
                cells.append(blank)
        lines.append(" ".join(cells))

    lines.append(" ".join(str(i)[:bar_width].center(bar_width) for i in range(len(heights))))
    return "\n".join(lines)


class CoreBars(Static):
    """Bar chart widget with one bar per core."""

    DEFAULT_CSS = """
    CoreBars {
        height: auto;
        padding: 1;
        background: black;
    }
    """

    def __init__(self, core_count: int, bar_height: int, bar_width: int, *args, **kwargs) -> None:
        """Initialize CoreBars with every core showing no data."""
        self._bar_height = bar_height
        self._bar_width = bar_width
        self._samples: list[UtilizationSample | None] = [None] * core_count
        super().__init__(render_bars(self._samples, bar_height, bar_width), *args, **kwargs)

    @property
    def samples(self) -> list[UtilizationSample | None]:
        """The samples currently drawn."""
        return list(self._samples)

    def update_samples(self, samples: Sequence[UtilizationSample | None]) -> None:
        """Redraw the bars from fresh samples."""
        self._samples = list(samples)
        self.update(render_bars(self._samples, self._bar_height, self._bar_width))


class CoremonApp(App):
    """Main coremon application."""

    TITLE = "coremon"
    SUB_TITLE = "Per-core CPU monitor"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, config: CoremonConfig | None = None) -> None:
        """
        Initialize the CoremonApp.

        Raises:
            DiscoveryError: The core count could not be determined.
        """
        super().__init__()
        self._config = config or CoremonConfig()
        self._source = CoreCounterSource(self._config.cpuinfo_path, self._config.stat_path)
        core_count = self._source.discover_core_count()
        self._tracker = UtilizationTracker(core_count)
        self._update_queue: Queue[int] = Queue()
        self._scheduler = SamplingScheduler(
            self._source,
            self._tracker,
            self._update_queue,
            polls_per_second=self._config.polls_per_second,
        )

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield CoreBars(
            self._tracker.core_count,
            self._config.bar_height,
            self._config.bar_width,
            id="core-bars",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Start sampling when the app is mounted."""
        logger.info(f"Monitoring {self._tracker.core_count} cores")
        self._scheduler.start()
        # Poll the queue faster than the sampling period so no tick waits long
        self.set_interval(self._scheduler.period / 2, self._check_for_updates)

    def on_unmount(self) -> None:
        """Make sure sampling has stopped when the app is torn down."""
        self._scheduler.stop()

    def _check_for_updates(self) -> None:
        """Drain "data ready" tokens and redraw if any arrived."""
        ready = False
        while True:
            try:
                self._update_queue.get_nowait()
            except Empty:
                break
            ready = True

        if not ready:
            return

        samples = self._tracker.sample(self._scheduler.polls_per_second)
        try:
            bars = self.query_one("#core-bars", CoreBars)
        except NoMatches:
            return  # Not mounted yet
        bars.update_samples(samples)

    def action_quit(self) -> None:
        """Stop sampling, then exit."""
        self._scheduler.stop()
        self.exit()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the coremon application."""
    config = parse_args(argv)
    logging.basicConfig(level=config.log_level, handlers=[TextualHandler()])

    try:
        app = CoremonApp(config)
    except DiscoveryError as exc:
        print(f"coremon: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    app.run()


if __name__ == "__main__":
    main()
