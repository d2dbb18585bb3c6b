"""
Metric Batcher
Queues attention metrics and ships them to the backend in periodic batches.

At most one batch save is in flight at a time. A timer tick that finds a
save still running is skipped, and a failed save leaves its metrics queued
for the next tick. On stop, the queue is drained with one final save once
any in-flight save has finished (or a bounded wait has run out).
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from config import config
from .api_client import ApiError

logger = logging.getLogger(__name__)

Metric = Dict[str, Any]


class MetricFlushError(Exception):
    """The final save on stop failed; the metrics are still queued."""

    def __init__(self, pending_count: int):
        super().__init__(f"Failed to save {pending_count} metrics")
        self.pending_count = pending_count


class MetricBatcher:
    """
    Periodic metric uploader with an in-flight guard and drain-on-stop.

    Args:
        sender: Callable that persists a list of metrics, raising ApiError on failure
        interval: Seconds between batch saves
        poll_interval: Seconds between checks while waiting for an in-flight save on stop
        max_wait_iterations: Number of checks before giving up on the in-flight save
    """

    def __init__(self, sender: Callable[[List[Metric]], Any], interval: Optional[float] = None,
                 poll_interval: Optional[float] = None, max_wait_iterations: Optional[int] = None):
        self.sender = sender
        self.interval = interval if interval is not None else config.METRICS_BATCH_INTERVAL
        self.poll_interval = poll_interval if poll_interval is not None else config.STOP_WAIT_POLL_INTERVAL
        self.max_wait_iterations = (
            max_wait_iterations if max_wait_iterations is not None else config.STOP_WAIT_MAX_ITERATIONS
        )

        self._pending: List[Metric] = []
        self._lock = threading.Lock()
        self._saving = False
        self._stopping = False

        self._timer_thread: Optional[threading.Thread] = None
        # Each timer thread owns its stop event
        self._stop_timer: Optional[threading.Event] = None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def is_saving(self) -> bool:
        with self._lock:
            return self._saving

    @property
    def is_running(self) -> bool:
        return self._timer_thread is not None and self._timer_thread.is_alive()

    def enqueue(self, metric: Metric) -> bool:
        """Queue a metric. Returns False while the batcher is draining."""
        with self._lock:
            if self._stopping:
                return False
            self._pending.append(metric)
            return True

    def start(self):
        """Start the periodic save timer."""
        with self._lock:
            self._stopping = False
        if self.is_running:
            return
        self._stop_timer = threading.Event()
        self._timer_thread = threading.Thread(
            target=self._run, args=(self._stop_timer,), name="metric-batcher", daemon=True
        )
        self._timer_thread.start()
        logger.debug(f"Metric batcher started (interval {self.interval}s)")

    def stop(self):
        """Stop the timer without waiting for a save that is already running."""
        if self._stop_timer is not None:
            self._stop_timer.set()
        thread = self._timer_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval)
        self._timer_thread = None
        self._stop_timer = None

    def reset(self):
        """Stop the timer and discard everything queued."""
        self.stop()
        with self._lock:
            self._pending.clear()
            self._stopping = False

    def _run(self, stop_timer: threading.Event):
        while not stop_timer.wait(self.interval):
            try:
                self.flush_once()
            except Exception as e:
                logger.error(f"Unexpected error in metric batch timer: {e}", exc_info=True)

    def flush_once(self) -> bool:
        """
        Save the current queue as one batch (one timer tick).

        Returns True if a batch was saved.
        """
        with self._lock:
            if self._saving:
                logger.info("Skipping batch save - previous save still in progress")
                return False
            if not self._pending:
                return False
            batch = list(self._pending)
            self._saving = True

        try:
            self.sender(batch)
        except ApiError as e:
            logger.error(f"Error saving metrics batch: {e}")
            return False
        else:
            with self._lock:
                # Only drop what was sent; metrics queued during the save stay
                if len(self._pending) >= len(batch):
                    del self._pending[:len(batch)]
            logger.debug(f"Saved batch of {len(batch)} metrics")
            return True
        finally:
            with self._lock:
                self._saving = False

    def wait_for_in_flight(self) -> bool:
        """Poll until no save is running. Returns False if the wait ran out."""
        iterations = 0
        while self.is_saving and iterations < self.max_wait_iterations:
            time.sleep(self.poll_interval)
            iterations += 1
        return not self.is_saving

    def drain(self) -> int:
        """
        Freeze the queue, stop the timer and save everything left in one attempt.

        Returns the number of metrics saved. Raises MetricFlushError if the
        final save fails; the queue is then unfrozen so the caller can retry.
        """
        with self._lock:
            self._stopping = True
        self.stop()

        if not self.wait_for_in_flight():
            logger.warning("Timed out waiting for in-flight batch save - attempting final save anyway")

        with self._lock:
            final_batch = list(self._pending)

        if not final_batch:
            return 0

        try:
            self.sender(final_batch)
        except Exception as e:
            logger.error(f"Error saving final metrics: {e}", exc_info=not isinstance(e, ApiError))
            with self._lock:
                self._stopping = False
            raise MetricFlushError(len(final_batch)) from e

        with self._lock:
            del self._pending[:len(final_batch)]

        logger.info(f"Saved final batch of {len(final_batch)} metrics")
        return len(final_batch)
