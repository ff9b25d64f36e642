"""Tests for the SamplingScheduler class."""

import threading
import time
from queue import Empty, Queue

import pytest

from coremon.models import RawCounters
from coremon.monitor import SamplingScheduler, SchedulerState
from coremon.source import SampleReadError
from coremon.tracker import UtilizationTracker


class FakeSource:
    """Counter source that returns steadily increasing counters."""

    def __init__(self, core_count: int = 2, failures: int = 0) -> None:
        self.core_count = core_count
        self.failures = failures
        self.reads = 0

    def read_counters(self) -> dict[int, RawCounters]:
        self.reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise SampleReadError("counter table unavailable")
        ticks = self.reads * 10
        return {i: RawCounters(ticks, 0, ticks // 2, 0, 0, 0, 0) for i in range(self.core_count)}


def make_scheduler(source=None, polls_per_second=50):
    source = source or FakeSource()
    tracker = UtilizationTracker(source.core_count)
    queue: Queue[int] = Queue()
    scheduler = SamplingScheduler(source, tracker, queue, polls_per_second=polls_per_second)
    return scheduler, tracker, queue


class TestSamplingScheduler:
    """Tests for SamplingScheduler lifecycle and ticking."""

    def test_scheduler_creation(self):
        """Test SamplingScheduler defaults."""
        scheduler, _, _ = make_scheduler(polls_per_second=4)

        assert scheduler.polls_per_second == 4
        assert scheduler.period == 0.25
        assert scheduler.state is SchedulerState.IDLE
        assert not scheduler.is_running
        assert scheduler.ticks_completed == 0

    def test_invalid_rate(self):
        """Test a non-positive rate is rejected."""
        with pytest.raises(ValueError):
            make_scheduler(polls_per_second=0)

    def test_start_stop(self):
        """Test the scheduler walks through its states."""
        scheduler, _, _ = make_scheduler()

        scheduler.start()
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.is_running

        scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED
        assert not scheduler.is_running

    def test_start_idempotent(self):
        """Test starting a running scheduler keeps the same thread."""
        scheduler, _, _ = make_scheduler()

        scheduler.start()
        thread1 = scheduler._thread
        scheduler.start()
        thread2 = scheduler._thread

        assert thread1 is thread2
        scheduler.stop()

    def test_stop_is_terminal(self):
        """Test a stopped scheduler cannot be restarted."""
        scheduler, _, _ = make_scheduler()
        scheduler.start()
        scheduler.stop()
        scheduler.stop()

        with pytest.raises(RuntimeError):
            scheduler.start()

    def test_stop_before_start(self):
        """Test stopping an idle scheduler moves it straight to stopped."""
        scheduler, _, _ = make_scheduler()

        scheduler.stop()

        assert scheduler.state is SchedulerState.STOPPED

    def test_daemon_thread(self):
        """Test the sampling thread is a named daemon thread."""
        scheduler, _, _ = make_scheduler()
        scheduler.start()

        try:
            assert scheduler._thread is not None
            assert scheduler._thread.daemon is True
            assert scheduler._thread.name == "SamplingScheduler"
        finally:
            scheduler.stop()

    def test_ticks_send_tokens_and_update_tracker(self):
        """Test each tick updates the tracker and queues a token."""
        scheduler, tracker, queue = make_scheduler()
        scheduler.start()

        try:
            first = queue.get(timeout=2.0)
            second = queue.get(timeout=2.0)
        finally:
            scheduler.stop()

        assert (first, second) == (1, 2)
        samples = tracker.sample(scheduler.polls_per_second)
        assert all(sample is not None for sample in samples)

    def test_failed_reads_are_skipped(self):
        """Test a failing read skips the tick and the loop keeps running."""
        source = FakeSource(failures=3)
        scheduler, _, queue = make_scheduler(source)
        scheduler.start()

        try:
            token = queue.get(timeout=2.0)
        finally:
            scheduler.stop()

        assert token == 1
        assert source.reads >= 4

    def test_failed_reads_are_logged(self, caplog):
        """Test skipped ticks leave a warning."""
        source = FakeSource(failures=1)
        scheduler, _, queue = make_scheduler(source)

        with caplog.at_level("WARNING", logger="coremon.monitor"):
            scheduler.start()
            try:
                queue.get(timeout=2.0)
            finally:
                scheduler.stop()

        assert "counter table unavailable" in caplog.text

    def test_unexpected_errors_keep_loop_alive(self):
        """Test an unexpected exception does not end sampling."""

        class BrokenOnce(FakeSource):
            def read_counters(self):
                if self.reads == 0:
                    self.reads += 1
                    raise KeyError("boom")
                return super().read_counters()

        scheduler, _, queue = make_scheduler(BrokenOnce())
        scheduler.start()

        try:
            assert queue.get(timeout=2.0) == 1
        finally:
            scheduler.stop()

    def test_no_tokens_after_stop(self):
        """Test nothing is queued once stop has returned."""
        scheduler, _, queue = make_scheduler()
        scheduler.start()
        queue.get(timeout=2.0)

        scheduler.stop()
        while True:
            try:
                queue.get_nowait()
            except Empty:
                break
        time.sleep(0.2)

        with pytest.raises(Empty):
            queue.get_nowait()


class BlockingSource(FakeSource):
    """Counter source whose second read blocks until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def read_counters(self):
        counters = super().read_counters()
        if self.reads == 2:
            self.entered.set()
            self.release.wait(timeout=5.0)
        return counters


class TestStopDuringTick:
    """Tests for stopping while a tick is in flight."""

    def test_stop_waits_for_in_flight_tick(self):
        """Test stop blocks until the running tick finishes."""
        source = BlockingSource()
        scheduler, _, _ = make_scheduler(source)
        scheduler.start()
        assert source.entered.wait(timeout=2.0)

        stopper = threading.Thread(target=scheduler.stop)
        stopper.start()
        time.sleep(0.2)

        assert stopper.is_alive(), "stop() returned while a tick was still running"
        assert scheduler.state is SchedulerState.STOPPING

        source.release.set()
        stopper.join(timeout=2.0)

        assert not stopper.is_alive()
        assert scheduler.state is SchedulerState.STOPPED

    def test_in_flight_tick_does_not_update_or_notify(self):
        """Test a tick that resumes after stop leaves state and queue alone."""
        source = BlockingSource()
        scheduler, tracker, queue = make_scheduler(source)
        scheduler.start()
        assert source.entered.wait(timeout=2.0)
        before = tracker.states()

        stopper = threading.Thread(target=scheduler.stop)
        stopper.start()
        deadline = time.monotonic() + 2.0
        while scheduler.state is not SchedulerState.STOPPING and time.monotonic() < deadline:
            time.sleep(0.01)
        source.release.set()
        stopper.join(timeout=2.0)

        assert scheduler.ticks_completed == 1
        assert tracker.states() == before
        assert queue.get_nowait() == 1
        with pytest.raises(Empty):
            queue.get_nowait()

    def test_completed_ticks_freeze_after_stop(self):
        """Test the tick counter never moves after stop returns."""
        scheduler, _, queue = make_scheduler(polls_per_second=100)
        scheduler.start()
        for _ in range(3):
            queue.get(timeout=2.0)

        scheduler.stop()
        completed = scheduler.ticks_completed
        time.sleep(0.3)

        assert scheduler.ticks_completed == completed
