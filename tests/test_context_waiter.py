from __future__ import annotations

import threading
import time

import pytest

from converge.engine import ReconcileContext, wait_until
from converge.utils.errors import CancelledError, WaitTimeoutError


def test_context_without_deadline_never_expires():
    ctx = ReconcileContext()

    assert ctx.remaining() is None
    ctx.check()


def test_expired_deadline_raises_timeout():
    ctx = ReconcileContext(timeout=0)

    with pytest.raises(WaitTimeoutError):
        ctx.check()


def test_cancel_raises_cancelled():
    ctx = ReconcileContext()
    ctx.cancel()

    assert ctx.cancelled
    with pytest.raises(CancelledError):
        ctx.check()


def test_sleep_wakes_on_cancellation():
    ctx = ReconcileContext()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    started = time.monotonic()

    with pytest.raises(CancelledError):
        ctx.sleep(10)

    assert time.monotonic() - started < 5
    timer.join()


def test_sleep_never_passes_the_deadline():
    ctx = ReconcileContext(timeout=0.05)
    started = time.monotonic()

    try:
        ctx.sleep(10)
    except WaitTimeoutError:
        pass

    assert time.monotonic() - started < 5


def test_wait_until_returns_first_truthy_value(ctx):
    answers = iter([None, False, "ready"])

    assert wait_until(ctx, lambda: next(answers), "answer") == "ready"


def test_wait_until_times_out(ctx):
    polls = []

    def probe():
        polls.append(1)
        return None

    with pytest.raises(WaitTimeoutError, match="waiting for nothing"):
        wait_until(ctx, probe, "nothing", timeout=0.05, interval=0.01)

    assert len(polls) >= 2


def test_wait_until_is_capped_by_context_deadline():
    ctx = ReconcileContext(timeout=0.05, wait_timeout=60, poll_interval=0.01)
    started = time.monotonic()

    with pytest.raises(WaitTimeoutError):
        wait_until(ctx, lambda: None, "nothing")

    assert time.monotonic() - started < 5


def test_wait_until_stops_when_cancelled(ctx):
    ctx.cancel()

    with pytest.raises(CancelledError):
        wait_until(ctx, lambda: "never polled", "anything")
