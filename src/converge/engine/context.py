"""Cancellation and deadline context threaded through every remote call."""

import threading
import time
from typing import Optional

from converge.utils.errors import CancelledError, WaitTimeoutError


class ReconcileContext:
    """Deadline, cancellation flag and ownership marker for one call chain.

    Handlers pass the context into every wait and sleep so that an aborted
    reconciliation stops waiting promptly. A remote mutation already in
    flight may still complete on the backend.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        owner: str = "converge",
        wait_timeout: float = 600.0,
        poll_interval: float = 5.0,
        cancel_event: Optional[threading.Event] = None
    ):
        """Initialize context.

        Args:
            timeout: Seconds until the whole call chain expires (None = no deadline)
            owner: Marker stamped on created objects and checked before adoption
            wait_timeout: Default budget for a single wait loop
            poll_interval: Default delay between readiness polls
            cancel_event: Shared event; setting it cancels the call chain
        """
        self.owner = owner
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancel_event = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancel_event.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the call chain was cancelled or its deadline passed.

        Raises:
            CancelledError: After cancel()
            WaitTimeoutError: After the deadline
        """
        if self.cancelled:
            raise CancelledError("Reconciliation cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise WaitTimeoutError("Reconciliation deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep, waking early on cancellation; never sleeps past the deadline."""
        self.check()
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._cancel_event.wait(seconds)
        self.check()
