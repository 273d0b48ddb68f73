"""One-shot shutdown broadcast shared by every station activity."""

import threading
from typing import Optional


class ShutdownSignal:
    """Process-wide one-shot shutdown broadcast.

    fire() delivers the signal at most once; every activity observes it
    through is_set() or wait().
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._fired = False

    def fire(self) -> bool:
        """Deliver the signal. Returns True only for the first call."""
        with self._lock:
            if self._fired:
                return False
            self._fired = True
        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)
