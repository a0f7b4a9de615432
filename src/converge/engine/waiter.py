"""Bounded wait/poll loop for backends that converge asynchronously."""

import time
from typing import Callable, Optional, TypeVar

from converge.engine.context import ReconcileContext
from converge.utils.errors import WaitTimeoutError
from converge.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def wait_until(
    ctx: ReconcileContext,
    probe: Callable[[], Optional[T]],
    description: str,
    timeout: Optional[float] = None,
    interval: Optional[float] = None
) -> T:
    """Poll ``probe`` until it returns a truthy value.

    Args:
        ctx: Reconcile context; its deadline caps the wait
        probe: Callable returning a truthy value once the target is reached
        description: What is being waited for, used in logs and errors
        timeout: Budget in seconds (defaults to ctx.wait_timeout)
        interval: Delay between polls (defaults to ctx.poll_interval)

    Returns:
        The first truthy value returned by probe

    Raises:
        WaitTimeoutError: If the budget or the context deadline runs out
        CancelledError: If the context is cancelled while waiting
    """
    budget = ctx.wait_timeout if timeout is None else timeout
    remaining = ctx.remaining()
    if remaining is not None:
        budget = min(budget, remaining)
    interval = ctx.poll_interval if interval is None else interval

    started = time.monotonic()
    attempts = 0

    while True:
        ctx.check()
        attempts += 1
        result = probe()
        if result:
            elapsed = time.monotonic() - started
            logger.debug(f"{description} reached after {attempts} polls ({elapsed:.1f}s)")
            return result

        elapsed = time.monotonic() - started
        if elapsed >= budget:
            raise WaitTimeoutError(
                f"Timed out after {elapsed:.1f}s waiting for {description}"
            )

        ctx.sleep(min(interval, budget - elapsed))
