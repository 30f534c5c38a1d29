"""
Clock and cancellation primitives used by the waiter.
"""
import threading
import time
from typing import Optional


class CancelToken:
    """Cooperative cancellation flag shared by the waits of one rollout."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


class Clock:
    """Time source with an interruptible sleep."""

    def monotonic(self) -> float:
        raise NotImplementedError

    def sleep(self, seconds: float, token: Optional[CancelToken] = None) -> bool:
        """
        Sleep for ``seconds`` or until ``token`` is cancelled.

        Returns:
            True if the sleep was cut short by cancellation
        """
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time backed by ``time.monotonic``."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, token: Optional[CancelToken] = None) -> bool:
        if seconds <= 0:
            return token.cancelled if token else False
        if token is None:
            time.sleep(seconds)
            return False
        return token.wait(seconds)
