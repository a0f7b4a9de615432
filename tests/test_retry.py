from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from converge.utils.retry import RetryStrategy, is_transient_error


def client_error(code: str, status: int = 400, message: str = "failed") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "CreateQueue",
    )


@pytest.mark.parametrize(
    "error",
    [
        client_error("ThrottlingException"),
        client_error("SomethingOdd", status=503),
        ConnectionError("reset by peer"),
        TimeoutError(),
        RuntimeError("Service Unavailable, try later"),
    ],
)
def test_transient_errors(error):
    assert is_transient_error(error)


@pytest.mark.parametrize(
    "error",
    [
        client_error("AccessDenied", status=403),
        client_error("ResourceNotFoundException"),
        ValueError("bad input"),
    ],
)
def test_permanent_errors(error):
    assert not is_transient_error(error)


def test_delay_grows_exponentially_and_is_capped():
    strategy = RetryStrategy(base_delay=1.0, max_delay=5.0, jitter=False)

    assert [strategy.get_delay(attempt) for attempt in range(4)] == [1.0, 2.0, 4.0, 5.0]


def test_jittered_delay_stays_within_bounds():
    strategy = RetryStrategy(base_delay=1.0, max_delay=5.0)

    assert all(0 <= strategy.get_delay(3) <= 5.0 for _ in range(50))


def test_execute_retries_transient_failures():
    sleeps = []
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise client_error("Throttling")
        return "done"

    strategy = RetryStrategy(max_retries=3, base_delay=0.5, jitter=False, sleep=sleeps.append)

    assert strategy.execute_with_retry(flaky) == "done"
    assert sleeps == [0.5, 1.0]


def test_execute_raises_permanent_failure_immediately():
    sleeps = []
    strategy = RetryStrategy(sleep=sleeps.append)

    def fail():
        raise client_error("AccessDenied", status=403)

    with pytest.raises(ClientError):
        strategy.execute_with_retry(fail)
    assert sleeps == []


def test_execute_gives_up_after_max_retries():
    sleeps = []
    strategy = RetryStrategy(max_retries=2, base_delay=0.0, sleep=sleeps.append)

    def fail():
        raise ConnectionError("connection refused")

    with pytest.raises(ConnectionError):
        strategy.execute_with_retry(fail)
    assert len(sleeps) == 2


def test_execute_passes_arguments_through():
    strategy = RetryStrategy()

    assert strategy.execute_with_retry(lambda a, b=0: a + b, 1, b=2) == 3
