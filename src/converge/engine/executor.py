"""Apply executor: carries out one planned action against a handler."""

import time
from typing import Callable, Optional, TypeVar

from converge.engine import codec
from converge.engine.context import ReconcileContext
from converge.engine.models import (
    EMPTY_STATE,
    Action,
    ApplyCallback,
    ApplyEvent,
    ApplyResult,
    ApplyStatus,
    PlanResult,
)
from converge.handlers.base import ResourceConfig, ResourceHandler, ResourceState
from converge.utils.errors import (
    AlreadyExistsError,
    ErrorContext,
    NotFoundError,
    ReconcileError,
    ReplaceError,
    error_handler,
)
from converge.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class ApplyExecutor:
    """Executes a plan's action and produces the next state to persist.

    The executor never retries. Transient retries live inside the handlers;
    anything that reaches this layer is reported to the caller.
    """

    def __init__(self, callback: Optional[ApplyCallback] = None):
        """Initialize apply executor.

        Args:
            callback: Default progress callback
        """
        self.callback = callback
        self.logger = get_logger(__name__)

    def execute(
        self,
        ctx: ReconcileContext,
        handler: ResourceHandler,
        plan: PlanResult,
        desired: Optional[ResourceConfig],
        prior: Optional[ResourceState],
        prior_blob: Optional[bytes],
        callback: Optional[ApplyCallback] = None
    ) -> ApplyResult:
        """Execute the planned action.

        Args:
            ctx: Reconcile context
            handler: Handler for the resource type
            plan: Plan to carry out
            desired: Decoded desired config (None for delete)
            prior: Decoded prior state (None when absent or untracked)
            prior_blob: Prior state exactly as supplied by the caller
            callback: Progress callback overriding the default

        Returns:
            ApplyResult; on failure ``new_state`` still tells the caller what
            to persist
        """
        callback = callback or self.callback
        action = plan.action
        start_time = time.time()

        self._emit(callback, ApplyEvent(handler.type_name, action, 'started'))

        try:
            if action == Action.NOOP:
                new_state = prior_blob
            elif action == Action.CREATE:
                new_state = codec.encode(self._create(ctx, handler, desired))
            elif action == Action.UPDATE:
                new_state = codec.encode(self._update(ctx, handler, desired, prior))
            elif action == Action.REPLACE:
                new_state = codec.encode(self._replace(ctx, handler, desired, prior))
            else:
                self._delete(ctx, handler, prior)
                new_state = EMPTY_STATE

        except ReconcileError as e:
            duration = time.time() - start_time
            e.annotate(resource_type=handler.type_name, action=action.value)
            prior_deleted = isinstance(e, ReplaceError) and e.prior_deleted
            error_handler.log_error(e)
            self._emit(callback, ApplyEvent(handler.type_name, action, 'failed', duration, e))
            return ApplyResult(
                resource_type=handler.type_name,
                action=action,
                status=ApplyStatus.FAILED,
                new_state=EMPTY_STATE if prior_deleted else prior_blob,
                error=e,
                prior_deleted=prior_deleted,
                duration=duration,
            )

        duration = time.time() - start_time
        self.logger.info(f"Applied {action.value} in {duration:.2f}s")
        self._emit(callback, ApplyEvent(handler.type_name, action, 'completed', duration))

        return ApplyResult(
            resource_type=handler.type_name,
            action=action,
            status=ApplyStatus.SUCCESS,
            new_state=new_state,
            prior_deleted=action in (Action.DELETE, Action.REPLACE) and prior is not None,
            duration=duration,
        )

    def _create(
        self, ctx: ReconcileContext, handler: ResourceHandler, config: ResourceConfig
    ) -> ResourceState:
        """Create, adopting an existing object only when ownership is confirmed."""
        try:
            return self._call(handler, 'create', handler.create, ctx, config)
        except AlreadyExistsError as e:
            adopted = self._call(handler, 'adopt', handler.adopt, ctx, config)
            if adopted is None:
                e.suggestions.append(
                    'The object exists but is not owned by this caller; '
                    'import it or choose a different identity'
                )
                raise
            self.logger.info("Object already existed with a matching owner; adopted it")
            return adopted

    def _update(
        self,
        ctx: ReconcileContext,
        handler: ResourceHandler,
        config: ResourceConfig,
        prior: ResourceState
    ) -> ResourceState:
        """Update in place and merge the returned values over the prior state."""
        updated = self._call(handler, 'update', handler.update, ctx, config, prior)

        merged = prior.model_dump()
        merged.update(updated.model_dump(exclude_none=True))
        return handler.state_model.model_validate(merged)

    def _replace(
        self,
        ctx: ReconcileContext,
        handler: ResourceHandler,
        config: ResourceConfig,
        prior: ResourceState
    ) -> ResourceState:
        """Delete the prior object, then create the new one.

        Raises:
            ReplaceError: ``prior_deleted`` tells whether the old object is gone
        """
        try:
            self._delete(ctx, handler, prior)
        except ReconcileError as e:
            raise ReplaceError(
                f"Replace aborted: delete of the prior object failed: {e.message}",
                prior_deleted=False,
                cause=e,
                context=e.context,
                suggestions=['The prior object is untouched; fix the cause and re-plan'],
            ) from e

        try:
            return self._create(ctx, handler, config)
        except ReconcileError as e:
            raise ReplaceError(
                f"Replace incomplete: prior object deleted but create failed: {e.message}",
                prior_deleted=True,
                cause=e,
                context=e.context,
                suggestions=['The resource is now untracked; the next plan will create it'],
            ) from e

    def _delete(
        self, ctx: ReconcileContext, handler: ResourceHandler, prior: Optional[ResourceState]
    ) -> None:
        """Delete the prior object; absence is success."""
        if prior is None:
            self.logger.debug("Nothing tracked; delete is a no-op")
            return

        try:
            self._call(handler, 'delete', handler.delete, ctx, prior)
        except NotFoundError:
            self.logger.info("Object was already gone")

    def _call(self, handler: ResourceHandler, operation: str, func: Callable[..., T], *args) -> T:
        """Invoke a handler method, classifying anything outside the error taxonomy."""
        try:
            return func(*args)
        except ReconcileError as e:
            raise e.annotate(operation=operation)
        except Exception as e:
            raise error_handler.classify(
                e,
                context=ErrorContext(resource_type=handler.type_name, operation=operation),
            ) from e

    def _emit(self, callback: Optional[ApplyCallback], event: ApplyEvent) -> None:
        """Deliver a progress event; a failing callback never fails the apply."""
        if callback is None:
            return
        try:
            callback(event)
        except Exception as e:
            self.logger.warning(f"Apply callback failed: {e}")
