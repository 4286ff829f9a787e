"""Repeating timer with skip-if-busy overlap control.

The timer thread only waits and triggers; each cycle runs on its own worker
thread, so a slow cycle never delays the next fire time. A trigger that lands
while a cycle is still running is skipped, never queued.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTimer:
    def __init__(self, job: Callable[[], object], interval: float, align: bool = True,
                 run_immediately: bool = False, clock: Callable[[], float] = time.time):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._job = job
        self._interval = interval
        self._align = align
        self._run_immediately = run_immediately
        self._clock = clock
        self._busy = threading.Lock()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._next_fire: float | None = None

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def next_fire_after(self, now: float) -> float:
        """With alignment, the next multiple of interval since the epoch."""
        if self._align:
            return (now // self._interval + 1) * self._interval
        return now + self._interval

    def trigger(self) -> bool:
        """Start one cycle unless one is running. Returns True if started."""
        if not self._busy.acquire(blocking=False):
            logger.warning("Previous sync still running, skipping this trigger")
            return False
        self._worker = threading.Thread(target=self._run_job, name="sync-cycle", daemon=True)
        self._worker.start()
        return True

    def _run_job(self) -> None:
        try:
            self._job()
        except Exception:
            logger.exception("Sync cycle crashed")
        finally:
            self._busy.release()

    def run_forever(self) -> None:
        """Block until stop(); the in-flight cycle is allowed to finish."""
        logger.info(f"Scheduler started (interval {self._interval:g}s)")
        if self._run_immediately and not self._stop.is_set():
            self.trigger()

        self._next_fire = self.next_fire_after(self._clock())
        while not self._stop.is_set():
            delay = max(0.0, self._next_fire - self._clock())
            logger.debug(f"Next sync in {delay:.0f}s")
            if self._stop.wait(delay):
                break
            self.trigger()
            # wait() can return a hair early; never fire twice for one slot
            self._next_fire = self.next_fire_after(max(self._clock(), self._next_fire))

        self.join()
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        worker = self._worker
        if worker is not None and worker.is_alive():
            logger.info("Waiting for the running sync to finish...")
            worker.join(timeout)
