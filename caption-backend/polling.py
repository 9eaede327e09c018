"""
Bounded status polling with cooperative cancellation.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Type, TypeVar

from errors import JobCancelled, PollTimeoutError

T = TypeVar("T")


class CancellationToken:
    """Thread-safe flag a caller sets to abort a waiting job."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self, what: str = "Job") -> None:
        if self.cancelled:
            raise JobCancelled(f"{what} was cancelled")


class JobRegistry:
    """In-memory map of job id -> cancellation token for in-flight jobs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: Dict[str, CancellationToken] = {}

    def register(self, job_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            self._tokens[job_id] = token
        return token

    def release(self, job_id: str) -> None:
        with self._lock:
            self._tokens.pop(job_id, None)

    def cancel_all(self) -> int:
        with self._lock:
            tokens = list(self._tokens.values())
        for token in tokens:
            token.cancel()
        return len(tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


def poll_until(
    fetch: Callable[[], T],
    is_finished: Callable[[T], bool],
    interval: float = 1.0,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
    token: Optional[CancellationToken] = None,
    on_pending: Optional[Callable[[T], None]] = None,
    what: str = "Operation",
    timeout_error: Type[PollTimeoutError] = PollTimeoutError,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call `fetch` every `interval` seconds until `is_finished` accepts a result,
    which is returned. `is_finished` may raise to abort polling.

    Raises `timeout_error` when `timeout` or `max_attempts` is exceeded and
    JobCancelled when `token` fires. No call to `fetch` happens after the
    first finished result.
    """
    token = token or CancellationToken()
    deadline = clock() + timeout if timeout is not None else None
    attempts = 0

    while True:
        token.raise_if_cancelled(what)
        result = fetch()
        attempts += 1

        if is_finished(result):
            return result

        if on_pending is not None:
            on_pending(result)

        if max_attempts is not None and attempts >= max_attempts:
            raise timeout_error(f"{what} did not finish after {attempts} status checks")

        wait_for = interval
        if deadline is not None:
            remaining = deadline - clock()
            if remaining <= 0:
                raise timeout_error(f"{what} timed out after {timeout:g} seconds")
            wait_for = min(interval, remaining)

        if token.wait(wait_for):
            logging.warning(f"⏹️ {what} cancelled while polling.")
            token.raise_if_cancelled(what)
