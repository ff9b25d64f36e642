"""Background sampling engine for coremon."""

import logging
import threading
from enum import Enum
from queue import Queue

from coremon.source import CoreCounterSource, SampleReadError
from coremon.tracker import UtilizationTracker

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle states of the SamplingScheduler."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class SamplingScheduler:
    """
    Samples core counters at a fixed rate on a background thread.

    Each tick reads the counter source, feeds the tracker and puts the tick
    number on ``notify_queue`` as a "data ready" token. Only tokens cross
    the thread boundary; the data stays in the tracker.
    """

    def __init__(
        self,
        source: CoreCounterSource,
        tracker: UtilizationTracker,
        notify_queue: Queue[int],
        polls_per_second: int = 4,
    ) -> None:
        """
        Initialize the SamplingScheduler.

        Args:
            source: Where raw counters are read from.
            tracker: Registry that receives each reading.
            notify_queue: Thread-safe queue that receives one token per tick.
            polls_per_second: Sampling rate. Default 4.
        """
        if polls_per_second < 1:
            raise ValueError(f"polls_per_second must be at least 1, got {polls_per_second}")
        self._source = source
        self._tracker = tracker
        self._queue = notify_queue
        self._polls_per_second = polls_per_second
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._thread: threading.Thread | None = None
        self._ticks_completed = 0

    @property
    def polls_per_second(self) -> int:
        """Get the sampling rate."""
        return self._polls_per_second

    @property
    def period(self) -> float:
        """Seconds between ticks."""
        return 1.0 / self._polls_per_second

    @property
    def state(self) -> SchedulerState:
        """Get the current lifecycle state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the sampling thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks_completed(self) -> int:
        """Number of ticks that updated the tracker and sent a token."""
        return self._ticks_completed

    def start(self) -> None:
        """Start the sampling thread. Returns immediately."""
        with self._state_lock:
            if self._state is SchedulerState.RUNNING:
                return
            if self._state is not SchedulerState.IDLE:
                raise RuntimeError(f"cannot start a scheduler in state {self._state.value}")

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._poll_loop,
                daemon=True,
                name="SamplingScheduler",
            )
            self._state = SchedulerState.RUNNING
            self._thread.start()
        logger.info(f"Sampling started at {self._polls_per_second} polls per second")

    def stop(self) -> None:
        """
        Stop the sampling thread.

        Blocks until the background loop has exited, so no tick runs after
        this returns. A tick already in flight is allowed to finish but will
        not touch the tracker or send a token.
        """
        with self._state_lock:
            if self._state is SchedulerState.STOPPED:
                return
            self._state = SchedulerState.STOPPING
            self._stop_event.set()
            thread = self._thread

        if thread is not None:
            thread.join()

        with self._state_lock:
            self._thread = None
            self._state = SchedulerState.STOPPED
        logger.info(f"Sampling stopped after {self._ticks_completed} ticks")

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            # Wait one period or until stop is requested
            if self._stop_event.wait(timeout=self.period):
                break
            try:
                self._tick()
            except SampleReadError as exc:
                logger.warning(f"Skipping tick: {exc}")
            except Exception:
                logger.exception("Unexpected error during sampling tick")

    def _tick(self) -> None:
        """Read counters, update the tracker and signal that new data is ready."""
        if self._stop_event.is_set():
            return
        raw = self._source.read_counters()

        if self._stop_event.is_set():
            return
        self._tracker.update(raw)

        if self._stop_event.is_set():
            return
        self._ticks_completed += 1
        self._queue.put(self._ticks_completed)
