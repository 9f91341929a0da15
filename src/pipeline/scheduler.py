"""
src/pipeline/scheduler.py

Debounced pipeline runs as an explicit single-slot register.

Every schedule() replaces whatever is pending and restarts the window; poll()
fires the pending work once the window has elapsed and clears the slot. The
clock is injectable so callers (and tests) decide what "now" means.

schedule() and poll() may be called from different threads, so the slot is
guarded by a lock. The work itself runs outside it.
"""


import logging
import threading
import time
from typing import Any, Callable, Optional

from config import DEBOUNCE_SECONDS


logger = logging.getLogger(__name__)


class DebouncedScheduler:

    def __init__(self, delay: float = DEBOUNCE_SECONDS, clock: Callable[[], float] = time.monotonic):

        self.delay = delay
        self._clock = clock
        self._pending: Optional[Callable[[], Any]] = None
        self._due_at: float = 0.0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:

        return self._pending is not None

    def schedule(self, work: Callable[[], Any]) -> None:
        """Put `work` in the slot, dropping any unfired item."""

        with self._lock:
            if self._pending is not None:
                logger.debug("Replacing pending pipeline run")
            self._pending = work
            self._due_at = self._clock() + self.delay

    def cancel(self) -> None:

        with self._lock:
            self._pending = None

    def poll(self) -> Optional[Any]:
        """Fire the pending work if its window has elapsed. Returns its result, else None."""

        with self._lock:
            if self._pending is None or self._clock() < self._due_at:
                return None
            work, self._pending = self._pending, None

        return work()

    def flush(self) -> Optional[Any]:
        """Fire the pending work now, regardless of the window."""

        with self._lock:
            work, self._pending = self._pending, None
        if work is None:
            return None

        return work()
