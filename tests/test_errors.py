from __future__ import annotations

from botocore.exceptions import ClientError, NoCredentialsError

from converge.utils.errors import (
    AlreadyExistsError,
    ErrorCategory,
    ErrorContext,
    NotFoundError,
    ReconcileError,
    RemoteError,
    ReplaceError,
    error_handler,
)


def client_error(code: str, message: str = "backend says no") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"RequestId": "req-123", "HTTPStatusCode": 400},
        },
        "DeleteQueue",
    )


def test_classify_maps_not_found_codes():
    error = error_handler.classify(client_error("NoSuchEntity"), not_found_codes={"NoSuchEntity"})

    assert isinstance(error, NotFoundError)
    assert error.context.remote_code == "NoSuchEntity"
    assert error.context.request_id == "req-123"
    assert error.context.operation == "DeleteQueue"


def test_classify_maps_already_exists_codes():
    error = error_handler.classify(
        client_error("EntityAlreadyExists"), already_exists_codes={"EntityAlreadyExists"}
    )

    assert isinstance(error, AlreadyExistsError)


def test_classify_keeps_backend_message_verbatim():
    error = error_handler.classify(client_error("AccessDenied", "User is not authorized"))

    assert isinstance(error, RemoteError)
    assert error.message == "User is not authorized"
    assert error.suggestions


def test_classify_respects_explicit_operation():
    context = ErrorContext(operation="delete_queue")

    error = error_handler.classify(client_error("Boom"), context=context)

    assert error.context.operation == "delete_queue"


def test_classify_network_errors_as_retryable():
    error = error_handler.classify(ConnectionError("connection reset"))

    assert isinstance(error, RemoteError)
    assert error.retryable


def test_classify_missing_credentials():
    error = error_handler.classify(NoCredentialsError())

    assert isinstance(error, RemoteError)
    assert any("aws configure" in s for s in error.suggestions)


def test_classify_passes_reconcile_errors_through():
    original = NotFoundError("gone")

    assert error_handler.classify(original) is original


def test_classify_unknown_exception():
    error = error_handler.classify(ValueError("odd"))

    assert error.category == ErrorCategory.UNKNOWN
    assert error.message == "odd"


def test_annotate_fills_only_missing_fields():
    error = ReconcileError("x", context=ErrorContext(operation="create"))

    error.annotate(resource_type="memory:Object", action="apply", operation="update")

    assert error.context.resource_type == "memory:Object"
    assert error.context.action == "apply"
    assert error.context.operation == "create"


def test_replace_error_inherits_category_of_cause():
    cause = AlreadyExistsError("taken")

    error = ReplaceError("replace failed", prior_deleted=True, cause=cause)

    assert error.category == ErrorCategory.ALREADY_EXISTS
    assert error.prior_deleted


def test_user_message_lists_context_and_suggestions():
    error = NotFoundError(
        "queue vanished",
        context=ErrorContext(resource_type="aws:SQS.Queue", operation="update", remote_code="QueueDoesNotExist"),
    )

    message = error.to_user_message()

    assert message.startswith("NOT_FOUND: queue vanished")
    assert "Resource type: aws:SQS.Queue" in message
    assert "Remote code: QueueDoesNotExist" in message
    assert "Suggested fixes:" in message


def test_to_dict_is_serializable_shape():
    data = RemoteError("boom", cause=ValueError("inner")).to_dict()

    assert data["category"] == "remote"
    assert data["cause"] == "inner"
    assert data["context"]["resource_type"] is None
