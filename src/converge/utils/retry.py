"""Retry strategy with exponential backoff for transient remote API errors."""

import time
import random
from typing import Callable, TypeVar
from botocore.exceptions import ClientError
from converge.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


# Substrings (lower case) that mark an error message as transient
TRANSIENT_PATTERNS = (
    'throttl',
    'rate exceed',
    'too many requests',
    'request limit',
    'service unavailable',
    'internal server error',
    'connection reset',
    'connection refused',
    'timed out',
    'tls handshake',
    'temporary failure',
)


def is_transient_error(error: BaseException) -> bool:
    """Check if an error is likely transient and safe to retry.

    Args:
        error: The exception to inspect

    Returns:
        True for throttling, 5xx and connection level failures
    """
    if isinstance(error, RetryStrategy.RETRYABLE_EXCEPTIONS):
        return True

    if isinstance(error, ClientError):
        error_code = error.response.get('Error', {}).get('Code', '')
        if error_code in RetryStrategy.RETRYABLE_ERROR_CODES:
            return True
        status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        if status is not None and status >= 500:
            return True

    message = str(error).lower()
    return any(pattern in message for pattern in TRANSIENT_PATTERNS)


class RetryStrategy:
    """Implements exponential backoff retry strategy for transient errors.

    Only transient failures are retried. Not-found, already-exists and
    validation failures propagate on the first attempt.
    """

    # AWS error codes that should trigger a retry
    RETRYABLE_ERROR_CODES = {
        'RequestTimeout',
        'ServiceUnavailable',
        'ThrottlingException',
        'TooManyRequestsException',
        'RequestLimitExceeded',
        'Throttling',
        'RequestThrottled',
        'SlowDown',
        'ProvisionedThroughputExceededException',
        'InternalError',
        'InternalFailure',
        'ServiceException',
    }

    # Network-related exceptions that should trigger a retry
    RETRYABLE_EXCEPTIONS = (
        ConnectionError,
        TimeoutError,
    )

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds for first retry
            max_delay: Maximum delay in seconds between retries
            exponential_base: Base for exponential backoff calculation
            jitter: Whether to randomise the delay
            sleep: Sleep function; a ReconcileContext.sleep stops on cancellation
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.sleep = sleep

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Determine if an error should trigger a retry.

        Args:
            error: The exception that occurred
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the error is transient and max retries not exceeded
        """
        if attempt >= self.max_retries:
            return False
        return is_transient_error(error)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )

        # Full jitter: random value between 0 and the computed backoff
        if self.jitter:
            delay = random.uniform(0, delay)

        return delay

    def execute_with_retry(
        self,
        func: Callable[..., T],
        *args,
        **kwargs
    ) -> T:
        """Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function call

        Raises:
            The last exception if it is not transient or retries are exhausted
        """
        attempt = 0
        while True:
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(f"Operation succeeded after {attempt} retries")
                return result

            except Exception as e:
                if not self.should_retry(e, attempt):
                    if attempt >= self.max_retries and is_transient_error(e):
                        logger.error(f"All {self.max_retries} retry attempts exhausted")
                    raise

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed: "
                    f"{self._get_error_info(e)}. Retrying in {delay:.2f}s..."
                )
                self.sleep(delay)
                attempt += 1

    def _get_error_info(self, error: BaseException) -> str:
        """Extract useful error information for logging.

        Args:
            error: The exception

        Returns:
            Human-readable error description
        """
        if isinstance(error, ClientError):
            error_code = error.response.get('Error', {}).get('Code', 'Unknown')
            error_message = error.response.get('Error', {}).get('Message', str(error))
            return f"{error_code}: {error_message}"

        return f"{type(error).__name__}: {error}"
