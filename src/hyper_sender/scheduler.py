"""Background thread that flushes stale batches."""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_PERIOD = 3.0  # seconds
DEFAULT_INITIAL_DELAY = 1.0  # seconds


class FlushScheduler:
    """
    Runs a flush callable at a fixed rate on a dedicated daemon thread.

    Exceptions raised by the callable are logged and never stop the thread;
    the next tick runs as scheduled.
    """

    def __init__(
        self,
        flush_fn: Callable[[], None],
        period: float = DEFAULT_FLUSH_PERIOD,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        name: str = "cache-flush-thread",
    ):
        """
        Initialize scheduler.

        Args:
            flush_fn: Callable invoked on every tick
            period: Seconds between tick starts
            initial_delay: Seconds before the first tick
            name: Name of the background thread
        """
        if period <= 0:
            raise ValueError(f"Flush period must be positive, got: {period}")
        self.flush_fn = flush_fn
        self.period = period
        self.initial_delay = max(initial_delay, 0.0)
        self.name = name
        self.ticks = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. Calling start twice is a no-op."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug("Started %s: period=%.3fs", self.name, self.period)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the thread to stop and wait for it to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Stopped %s after %d ticks", self.name, self.ticks)

    def _run(self) -> None:
        next_run = time.monotonic() + self.initial_delay
        while not self._stop_event.wait(max(next_run - time.monotonic(), 0.0)):
            self._tick()
            next_run += self.period
            # Skip missed ticks instead of firing them back to back
            now = time.monotonic()
            if next_run < now:
                next_run = now

    def _tick(self) -> None:
        self.ticks += 1
        try:
            self.flush_fn()
        except Exception as e:
            logger.error("Cache flush thread tick failed: %s", e, exc_info=True)
