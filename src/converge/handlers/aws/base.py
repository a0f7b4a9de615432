"""Shared plumbing for AWS resource handlers."""

from typing import Any, Dict, FrozenSet, List, Optional

from converge.config.settings import RetrySettings
from converge.handlers.base import ResourceHandler
from converge.utils.aws_client import AWSClientManager
from converge.utils.errors import ErrorContext, ReconcileError, error_handler
from converge.utils.retry import RetryStrategy


# Tag stamped on every object a handler creates; adoption requires a match
OWNER_TAG = "converge:owner"


def tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a tag mapping to the AWS ``[{'Key': k, 'Value': v}]`` form."""
    return [{'Key': k, 'Value': v} for k, v in sorted(tags.items())]


def tag_dict(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """Convert AWS ``[{'Key': k, 'Value': v}]`` tags to a mapping."""
    return {tag['Key']: tag['Value'] for tag in tags or []}


def strip_owner(tags: Dict[str, str]) -> Dict[str, str]:
    """Remove the ownership tag so only user tags are compared."""
    return {k: v for k, v in tags.items() if k != OWNER_TAG}


class AWSResourceHandler(ResourceHandler):
    """Base class for handlers backed by a boto3 client.

    Every SDK call goes through ``_call``, which checks the context, retries
    transient failures with backoff and classifies errors using the
    handler's not-found and already-exists codes.
    """

    service_name: str
    not_found_codes: FrozenSet[str] = frozenset()
    already_exists_codes: FrozenSet[str] = frozenset()

    def __init__(self, clients: AWSClientManager, retry: Optional[RetrySettings] = None):
        """Initialize handler.

        Args:
            clients: Shared AWS client manager
            retry: Backoff for transient API errors
        """
        self.clients = clients
        self.retry = retry or RetrySettings()
        self._client = None

    @property
    def client(self):
        """boto3 client for this handler's service, created on first use."""
        if self._client is None:
            self._client = self.clients.get_client(self.service_name)
        return self._client

    def _call(self, ctx, operation: str, **kwargs) -> Dict[str, Any]:
        """Invoke one client operation.

        Args:
            ctx: Reconcile context
            operation: boto3 client method name (e.g. 'create_queue')
            **kwargs: API parameters

        Returns:
            API response

        Raises:
            ReconcileError: Classified failure
        """
        ctx.check()
        strategy = RetryStrategy(
            max_retries=self.retry.max_retries,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
            sleep=ctx.sleep,
        )
        try:
            return strategy.execute_with_retry(getattr(self.client, operation), **kwargs)
        except ReconcileError:
            raise
        except Exception as e:
            raise error_handler.classify(
                e,
                not_found_codes=self.not_found_codes,
                already_exists_codes=self.already_exists_codes,
                context=ErrorContext(
                    resource_type=self.type_name,
                    operation=operation,
                    service=self.service_name,
                ),
            ) from e

    def _with_owner(self, ctx, tags: Dict[str, str]) -> Dict[str, str]:
        """User tags plus the ownership tag."""
        merged = dict(tags)
        merged[OWNER_TAG] = ctx.owner
        return merged

    @staticmethod
    def _owned_by(ctx, tags: Dict[str, str]) -> bool:
        return tags.get(OWNER_TAG) == ctx.owner
