"""Utility modules for logging, errors, retries and AWS client management."""

from converge.utils.aws_client import AWSClientManager
from converge.utils.retry import RetryStrategy, is_transient_error
from converge.utils.errors import (
    ErrorCategory,
    ErrorContext,
    ReconcileError,
    DecodeError,
    InvalidRequestError,
    NotFoundError,
    AlreadyExistsError,
    WaitTimeoutError,
    CancelledError,
    RemoteError,
    LifecycleError,
    ConfigurationError,
    ReplaceError,
    ErrorHandler,
    error_handler
)
from converge.utils.logging import LogContext, get_logger, setup_logging

__all__ = [
    # AWS Client
    'AWSClientManager',

    # Retry
    'RetryStrategy',
    'is_transient_error',

    # Errors
    'ErrorCategory',
    'ErrorContext',
    'ReconcileError',
    'DecodeError',
    'InvalidRequestError',
    'NotFoundError',
    'AlreadyExistsError',
    'WaitTimeoutError',
    'CancelledError',
    'RemoteError',
    'LifecycleError',
    'ConfigurationError',
    'ReplaceError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'LogContext',
    'get_logger',
    'setup_logging',
]
