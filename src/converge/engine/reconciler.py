"""Reconciler facade: the Plan and Apply entry points."""

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from converge.config.settings import EngineSettings
from converge.engine import codec
from converge.engine.context import ReconcileContext
from converge.engine.executor import ApplyExecutor
from converge.engine.models import (
    ApplyCallback,
    ApplyResult,
    ApplyStatus,
    Lifecycle,
    PlanResult,
)
from converge.engine.planner import PlanEvaluator
from converge.handlers.base import ResourceConfig, ResourceHandler, ResourceState
from converge.utils.errors import InvalidRequestError, ReconcileError, error_handler
from converge.utils.logging import LogContext, get_logger

if TYPE_CHECKING:
    from converge.handlers.registry import HandlerRegistry

logger = get_logger(__name__)


@dataclass
class _Request:
    """Decoded inputs of one reconcile call."""

    handler: ResourceHandler
    desired: Optional[ResourceConfig]
    prior: Optional[ResourceState]
    prior_present: bool
    config_hash: Optional[str]
    prior_state_hash: Optional[str]


class Reconciler:
    """Stateless Plan/Apply contract over a registry of resource handlers.

    Every call is self-contained given its inputs. Callers must serialize
    calls for the same tracked resource; nothing here locks across calls.

    Example:
        reconciler = Reconciler(build_registry(settings), settings)
        plan = reconciler.plan("memory:Object", b'{"name": "a", "size": 10}', None)
        result = reconciler.apply("memory:Object", b'{"name": "a", "size": 10}', None, plan=plan)
        new_state = result.raise_for_error()
    """

    def __init__(
        self,
        registry: "HandlerRegistry",
        settings: Optional[EngineSettings] = None,
        planner: Optional[PlanEvaluator] = None,
        executor: Optional[ApplyExecutor] = None
    ):
        """Initialize reconciler.

        Args:
            registry: Handlers by resource type name
            settings: Engine settings (defaults apply when omitted)
            planner: Plan evaluator override
            executor: Apply executor override
        """
        self.registry = registry
        self.settings = settings or EngineSettings()
        self.planner = planner or PlanEvaluator()
        self.executor = executor or ApplyExecutor()

    def context(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ReconcileContext:
        """Create a context carrying the configured owner and time budgets.

        Args:
            timeout: Deadline in seconds (defaults to the operation timeout)
            cancel_event: Event shared with the caller for cancellation
        """
        timeouts = self.settings.timeouts
        return ReconcileContext(
            timeout=timeouts.operation if timeout is None else timeout,
            owner=self.settings.owner,
            wait_timeout=timeouts.wait,
            poll_interval=timeouts.poll_interval,
            cancel_event=cancel_event,
        )

    def plan(
        self,
        resource_type: str,
        desired_config: Optional[bytes],
        prior_state: Optional[bytes],
        lifecycle: Optional[Lifecycle] = None,
        ctx: Optional[ReconcileContext] = None
    ) -> PlanResult:
        """Classify the work needed to converge one resource.

        Args:
            resource_type: Registered handler type name
            desired_config: Desired config blob; None means "should not exist"
            prior_state: Prior state blob; None or empty means "not tracked"
            lifecycle: Optional lifecycle rules
            ctx: Context to use instead of a fresh one

        Returns:
            PlanResult

        Raises:
            InvalidRequestError: Both inputs absent, or unknown resource type
            DecodeError: An input does not match the handler's shape
            LifecycleError: prevent_destroy forbids the planned action
            ReconcileError: Describe failed
        """
        ctx = ctx or self.context()

        with LogContext(resource_type=resource_type, action='plan'):
            try:
                request = self._prepare(resource_type, desired_config, prior_state)
                plan = self.planner.evaluate(
                    ctx,
                    request.handler,
                    request.desired,
                    request.prior,
                    request.prior_present,
                    lifecycle,
                )
            except ReconcileError as e:
                raise e.annotate(resource_type=resource_type, action='plan')

        plan.config_hash = request.config_hash
        plan.prior_state_hash = request.prior_state_hash
        return plan

    def apply(
        self,
        resource_type: str,
        desired_config: Optional[bytes],
        prior_state: Optional[bytes],
        plan: Optional[PlanResult] = None,
        lifecycle: Optional[Lifecycle] = None,
        callback: Optional[ApplyCallback] = None,
        timeout: Optional[float] = None,
        ctx: Optional[ReconcileContext] = None
    ) -> ApplyResult:
        """Converge one resource and return the state to persist.

        Without ``plan`` the resource is planned first. A supplied plan is
        reused without re-describing, provided it was computed from these
        exact inputs.

        Args:
            resource_type: Registered handler type name
            desired_config: Desired config blob; None means "should not exist"
            prior_state: Prior state blob; None or empty means "not tracked"
            plan: Previously computed plan
            lifecycle: Optional lifecycle rules
            callback: Progress callback
            timeout: Deadline for the whole call (defaults to the operation timeout)
            ctx: Context to use instead of a fresh one

        Returns:
            ApplyResult; failures are reported in ``error`` rather than raised
        """
        ctx = ctx or self.context(timeout=timeout)
        start_time = time.time()

        with LogContext(resource_type=resource_type, action='apply'):
            try:
                request = self._prepare(resource_type, desired_config, prior_state)
                if plan is None:
                    plan = self.planner.evaluate(
                        ctx,
                        request.handler,
                        request.desired,
                        request.prior,
                        request.prior_present,
                        lifecycle,
                    )
                    plan.config_hash = request.config_hash
                    plan.prior_state_hash = request.prior_state_hash
                else:
                    self._check_plan(plan, resource_type, request)
            except ReconcileError as e:
                e.annotate(resource_type=resource_type, action='apply')
                error_handler.log_error(e)
                return ApplyResult(
                    resource_type=resource_type,
                    action=plan.action if plan is not None else None,
                    status=ApplyStatus.FAILED,
                    new_state=prior_state,
                    error=e,
                    duration=time.time() - start_time,
                )

        with LogContext(resource_type=resource_type, action=plan.action.value):
            return self.executor.execute(
                ctx,
                request.handler,
                plan,
                request.desired,
                request.prior,
                prior_state,
                callback=callback,
            )

    def _prepare(
        self,
        resource_type: str,
        desired_config: Optional[bytes],
        prior_state: Optional[bytes]
    ) -> _Request:
        """Resolve the handler and decode both inputs."""
        if desired_config is None and prior_state is None:
            raise InvalidRequestError(
                "Both desired config and prior state are absent; nothing to reconcile",
                suggestions=['Check that the resource identity is spelled correctly'],
            )

        handler = self.registry.get(resource_type)

        desired = codec.decode_optional(desired_config, handler.config_model, 'desired config')
        prior = None
        if prior_state is not None and not codec.is_untracked(prior_state):
            prior = codec.decode(prior_state, handler.state_model, 'prior state')

        return _Request(
            handler=handler,
            desired=desired,
            prior=prior,
            prior_present=prior_state is not None,
            config_hash=codec.blob_hash(desired_config),
            prior_state_hash=codec.blob_hash(prior_state),
        )

    def _check_plan(self, plan: PlanResult, resource_type: str, request: _Request) -> None:
        """Reject a plan that was computed from different inputs."""
        if plan.resource_type != resource_type:
            raise InvalidRequestError(
                f"Plan is for {plan.resource_type}, not {resource_type}"
            )
        if (plan.config_hash != request.config_hash
                or plan.prior_state_hash != request.prior_state_hash):
            raise InvalidRequestError(
                "Plan is stale: desired config or prior state changed since planning",
                suggestions=['Run plan again with the current inputs'],
            )
