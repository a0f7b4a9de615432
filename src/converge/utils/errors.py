"""Error taxonomy for reconciliation and classification of remote errors."""

from typing import Optional, Dict, Any, List, Iterable
from enum import Enum
from dataclasses import dataclass
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during reconciliation."""
    DECODE = "decode"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    REMOTE = "remote"
    LIFECYCLE = "lifecycle"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    resource_type: Optional[str] = None
    action: Optional[str] = None
    operation: Optional[str] = None
    service: Optional[str] = None
    remote_code: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class ReconcileError(Exception):
    """Base exception for reconciliation errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        suggestions: Optional[List[str]] = None,
        retryable: bool = False
    ):
        """Initialize reconciliation error.

        Args:
            message: Human-readable error message
            category: Error category
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
            retryable: Whether the caller may retry after re-planning
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []
        self.retryable = retryable

    def annotate(
        self,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        operation: Optional[str] = None
    ) -> 'ReconcileError':
        """Fill in context fields that are not already set.

        Returns:
            self, so that ``raise error.annotate(...)`` reads naturally
        """
        if resource_type and not self.context.resource_type:
            self.context.resource_type = resource_type
        if action and not self.context.action:
            self.context.action = action
        if operation and not self.context.operation:
            self.context.operation = operation
        return self

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = [f"{self.category.value.upper()}: {self.message}"]

        if self.context.resource_type:
            lines.append(f"   Resource type: {self.context.resource_type}")
        if self.context.action:
            lines.append(f"   Action: {self.context.action}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        if self.context.remote_code:
            lines.append(f"   Remote code: {self.context.remote_code}")

        if self.cause:
            lines.append(f"   Cause: {self.cause}")

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            'message': self.message,
            'category': self.category.value,
            'retryable': self.retryable,
            'context': {
                'resource_type': self.context.resource_type,
                'action': self.context.action,
                'operation': self.context.operation,
                'service': self.context.service,
                'remote_code': self.context.remote_code,
                'request_id': self.context.request_id,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class DecodeError(ReconcileError):
    """Malformed desired configuration or state blob."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.DECODE, **kwargs)
        self.path = path


class InvalidRequestError(ReconcileError):
    """The call itself is malformed (e.g. both inputs absent, unknown type)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.INVALID_REQUEST, **kwargs)


class NotFoundError(ReconcileError):
    """Remote object is absent when the operation expected it to exist."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('suggestions', ['Run plan again; the tracked object no longer exists'])
        super().__init__(message, category=ErrorCategory.NOT_FOUND, **kwargs)


class AlreadyExistsError(ReconcileError):
    """Remote object already exists and could not be adopted."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('suggestions', [
            'Use a different name for the resource',
            'Delete the existing object if it is no longer needed',
            'Tag the existing object with the configured owner to adopt it',
        ])
        super().__init__(message, category=ErrorCategory.ALREADY_EXISTS, **kwargs)


class WaitTimeoutError(ReconcileError):
    """A bounded wait exceeded its budget."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('retryable', True)
        super().__init__(message, category=ErrorCategory.TIMEOUT, **kwargs)


class CancelledError(ReconcileError):
    """The reconciliation was cancelled or its deadline passed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('retryable', True)
        super().__init__(message, category=ErrorCategory.CANCELLED, **kwargs)


class RemoteError(ReconcileError):
    """Any other backend failure; the backend message is preserved."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.REMOTE, **kwargs)


class LifecycleError(ReconcileError):
    """A lifecycle rule forbids the planned action."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.LIFECYCLE, **kwargs)


class ConfigurationError(ReconcileError):
    """Error in engine settings."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)


class ReplaceError(ReconcileError):
    """A replace failed part way through.

    ``prior_deleted`` is True when the old object was destroyed before the
    create failed; the resource is then untracked.
    """

    def __init__(self, message: str, prior_deleted: bool, **kwargs):
        category = kwargs.pop('category', None)
        if category is None:
            cause = kwargs.get('cause')
            category = cause.category if isinstance(cause, ReconcileError) else ErrorCategory.REMOTE
        super().__init__(message, category=category, **kwargs)
        self.prior_deleted = prior_deleted


class ErrorHandler:
    """Classifies errors raised by remote API clients."""

    # Suggestions for well-known AWS error codes
    AWS_ERROR_SUGGESTIONS = {
        'AccessDenied': [
            'Check IAM policies attached to your user/role',
            'Verify you have the required permissions for this operation',
        ],
        'AccessDeniedException': [
            'Check IAM policies attached to your user/role',
            'Verify you have the required permissions for this operation',
        ],
        'UnauthorizedOperation': [
            'Add the required IAM permission for this operation',
            'Verify you are operating in the correct AWS region',
        ],
        'ExpiredToken': [
            'Refresh your AWS session credentials',
        ],
        'InvalidClientTokenId': [
            'Check that your AWS credentials are correctly configured',
            'Verify credentials using: aws sts get-caller-identity',
        ],
        'LimitExceeded': [
            'Request a service limit increase through AWS Support',
            'Review and clean up unused resources',
        ],
        'LimitExceededException': [
            'Request a service limit increase through AWS Support',
            'Review and clean up unused resources',
        ],
        'ValidationException': [
            'Review the error message for specific validation failures',
            'Verify all required parameters are provided',
        ],
        'InvalidParameterException': [
            'Check parameter format and constraints',
        ],
        'InvalidParameterValue': [
            'Check parameter format and constraints',
        ],
    }

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def classify(
        self,
        error: BaseException,
        not_found_codes: Iterable[str] = (),
        already_exists_codes: Iterable[str] = (),
        context: Optional[ErrorContext] = None
    ) -> ReconcileError:
        """Convert an exception into the reconciliation error taxonomy.

        Args:
            error: The exception to classify
            not_found_codes: Remote error codes meaning "object is absent"
            already_exists_codes: Remote error codes meaning "object already exists"
            context: Additional context about where the error occurred

        Returns:
            ReconcileError subclass matching the error class
        """
        context = context or ErrorContext()

        if isinstance(error, ReconcileError):
            return error

        if isinstance(error, ClientError):
            return self._classify_client_error(
                error, set(not_found_codes), set(already_exists_codes), context
            )

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return RemoteError(
                f"AWS credentials unavailable: {error}",
                context=context,
                cause=error,
                suggestions=[
                    'Configure AWS credentials using: aws configure',
                    'Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables',
                    'Specify a profile in converge.yaml',
                ]
            )

        if isinstance(error, (EndpointConnectionError, ConnectionError, TimeoutError)):
            return RemoteError(
                f"Network error: {error}",
                context=context,
                cause=error,
                retryable=True,
                suggestions=['Check network connectivity to the backend endpoint']
            )

        if isinstance(error, BotoCoreError):
            return RemoteError(str(error), context=context, cause=error)

        return ReconcileError(
            message=str(error) or type(error).__name__,
            category=ErrorCategory.UNKNOWN,
            context=context,
            cause=error
        )

    def _classify_client_error(
        self,
        error: ClientError,
        not_found_codes: set,
        already_exists_codes: set,
        context: ErrorContext
    ) -> ReconcileError:
        """Classify a botocore ClientError by its error code.

        Args:
            error: The ClientError
            not_found_codes: Codes meaning "absent"
            already_exists_codes: Codes meaning "already exists"
            context: Error context

        Returns:
            Categorized ReconcileError
        """
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))

        context.remote_code = error_code
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        if context.operation is None:
            context.operation = getattr(error, 'operation_name', None)

        if error_code in not_found_codes:
            return NotFoundError(error_message, context=context, cause=error)

        if error_code in already_exists_codes:
            return AlreadyExistsError(error_message, context=context, cause=error)

        # Backend message is kept verbatim
        return RemoteError(
            error_message,
            context=context,
            cause=error,
            suggestions=self.AWS_ERROR_SUGGESTIONS.get(error_code, [])
        )

    def log_error(self, error: ReconcileError) -> None:
        """Log an error with its user message and full details at debug level.

        Args:
            error: The error to log
        """
        self.logger.error(error.to_user_message())
        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
