import threading
import time
from typing import Callable

from arm_client.exceptions.operations import DeadlineExceeded, OperationCancelled


class CancellationToken:
    """
    Cooperative cancellation signal with an optional deadline.

    A token may be cancelled from any thread. Waiters register callbacks, which
    run exactly once, on the cancelling thread, or immediately if the token was
    already cancelled when they registered.

    Usage:
        token = CancellationToken(timeout=300)
        threading.Timer(10, token.cancel).start()
        poller.wait_until_complete(cancel_token=token)
    """

    def __init__(
        self, timeout: float | None = None, deadline: float | None = None
    ) -> None:
        if timeout is not None and deadline is not None:
            raise ValueError("Pass either timeout or deadline, not both")
        self.deadline: float | None = (
            time.monotonic() + timeout if timeout is not None else deadline
        )
        self.reason: str | None = None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def is_expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register `callback` for cancellation and return a function removing it."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                registered = True
            else:
                registered = False
        if not registered:
            callback()

        def remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return remove

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to `timeout` seconds; True if the token was cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason)
        if self.is_expired:
            raise DeadlineExceeded()
