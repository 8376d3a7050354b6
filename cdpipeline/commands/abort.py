"""Cross-thread abort signal for a pipeline run."""

import threading
from typing import Optional


class AbortSignal:
    """Thread-safe flag that requests an immediate halt of the run.

    Set from a signal handler or another thread; observed by the command
    runner's wait loop and by the executor between stages.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def set(self, reason: str = "aborted") -> None:
        """Request an abort. The first reason given is kept."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the signal is set or ``timeout`` elapses."""
        return self._event.wait(timeout)
