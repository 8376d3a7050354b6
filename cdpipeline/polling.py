"""Bounded polling with exponential backoff."""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class PollTimeoutError(Exception):
    """Raised when a polled condition is not met within its bound.

    Attributes:
        timeout: The bound in seconds that was exceeded.
        attempts: How many times the probe was evaluated.
        last_error: Message of the last probe exception, if any.
    """

    def __init__(self, timeout: float, attempts: int, last_error: str | None = None):
        self.timeout = timeout
        self.attempts = attempts
        self.last_error = last_error
        msg = f"Condition not met after {attempts} attempts within {timeout:g}s"
        if last_error:
            msg += f" (last error: {last_error})"
        super().__init__(msg)


def poll_until(
    probe: Callable[[], bool],
    timeout: float,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Evaluate ``probe`` until it returns True or ``timeout`` elapses.

    The delay between attempts starts at ``initial_delay`` and is multiplied
    by ``backoff`` after each miss, capped at ``max_delay``. The last sleep is
    shortened so the total wait never exceeds ``timeout``.

    An ``OSError`` raised by the probe counts as a miss. Any other exception
    propagates, so a probe can abort the wait on a terminal condition.

    Args:
        probe: Zero-argument callable returning True once the condition holds.
        timeout: Hard upper bound in seconds.
        initial_delay: First delay between attempts.
        max_delay: Maximum delay between attempts.
        backoff: Delay multiplier.
        clock: Monotonic clock (injectable for tests).
        sleep: Sleep function (injectable for tests).

    Returns:
        Number of attempts it took.

    Raises:
        PollTimeoutError: If the condition was not met within ``timeout``.
    """
    start = clock()
    delay = initial_delay
    attempts = 0
    last_error: str | None = None

    while True:
        attempts += 1
        try:
            if probe():
                return attempts
        except OSError as e:
            last_error = str(e)
            logger.debug("Probe attempt %d raised: %s", attempts, e)

        remaining = timeout - (clock() - start)
        if remaining <= 0:
            raise PollTimeoutError(timeout, attempts, last_error)
        sleep(min(delay, remaining))
        delay = min(delay * backoff, max_delay)
