"""Plan evaluator: classifies the work needed to converge one resource."""

from typing import Any, Dict, List, Optional, Tuple

from converge.engine.context import ReconcileContext
from converge.engine.models import Action, Lifecycle, PlanResult, PropertyDiff
from converge.handlers.base import ResourceConfig, ResourceHandler, ResourceState
from converge.utils.errors import LifecycleError, NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class PlanEvaluator:
    """Computes a single Action from desired config, prior state and a live read."""

    def __init__(self):
        """Initialize plan evaluator."""
        self.logger = get_logger(__name__)

    def evaluate(
        self,
        ctx: ReconcileContext,
        handler: ResourceHandler,
        desired: Optional[ResourceConfig],
        prior: Optional[ResourceState],
        prior_present: bool,
        lifecycle: Optional[Lifecycle] = None
    ) -> PlanResult:
        """Plan one resource.

        Args:
            ctx: Reconcile context passed to describe
            handler: Handler for the resource type
            desired: Decoded desired config, None when absent
            prior: Decoded prior state, None when absent or untracked
            prior_present: True when a prior state blob was supplied, even
                an empty "untracked" one
            lifecycle: Optional lifecycle rules

        Returns:
            PlanResult with exactly one action

        Raises:
            LifecycleError: If prevent_destroy forbids the planned action
            ReconcileError: If describe fails for a reason other than not-found
        """
        lifecycle = lifecycle or Lifecycle()
        plan = self._classify(ctx, handler, desired, prior, prior_present)

        if plan.action == Action.UPDATE and lifecycle.ignore_changes and plan.changed_attributes:
            ignored = set(lifecycle.ignore_changes)
            if all(name in ignored for name in plan.changed_attributes):
                self.logger.info(
                    f"All changed attributes ignored by lifecycle: {plan.changed_attributes}"
                )
                plan.action = Action.NOOP
                plan.reason = "Changes limited to ignored attributes"

        if lifecycle.prevent_destroy and plan.action in (Action.DELETE, Action.REPLACE):
            raise LifecycleError(
                f"{handler.type_name} has prevent_destroy set but plan requires "
                f"{plan.action.value}"
            )

        self.logger.info(
            f"Planned {plan.action.value}"
            + (f" ({', '.join(plan.changed_attributes)})" if plan.changed_attributes else "")
        )
        return plan

    def _classify(
        self,
        ctx: ReconcileContext,
        handler: ResourceHandler,
        desired: Optional[ResourceConfig],
        prior: Optional[ResourceState],
        prior_present: bool
    ) -> PlanResult:
        """Apply the decision rules in priority order."""
        resource_type = handler.type_name

        # 1. Absence sentinel: no desired config but a prior state blob
        if desired is None and prior_present:
            recorded = handler.recorded_config(prior) if prior is not None else {}
            return PlanResult(
                resource_type=resource_type,
                action=Action.DELETE,
                diff={
                    name: PropertyDiff(before=value, action="delete")
                    for name, value in recorded.items()
                },
                reason="Resource no longer in configuration",
            )

        desired_data = desired.model_dump(mode="json")

        # 2. Nothing tracked
        if prior is None:
            return self._create_plan(resource_type, desired_data, "Resource is not tracked")

        # 3. Drift detection
        try:
            described = handler.describe(ctx, prior)
        except NotFoundError:
            described = None

        if described is None or not described.exists:
            self.logger.info("Tracked object no longer exists; planning recreation")
            return self._create_plan(resource_type, desired_data, "Tracked object no longer exists")

        recorded = handler.recorded_config(prior)
        reference = dict(recorded)
        if described.live_config is not None:
            reference.update(described.live_config.model_dump(mode="json"))
        else:
            self.logger.debug("Describe returned no live config; comparing against recorded state")

        field_order = list(handler.config_model.model_fields)

        # 3b. Immutable fields win over everything else
        immutable_changes = [
            name for name in field_order
            if name in handler.immutable_fields
            and desired_data.get(name) != reference.get(name)
        ]

        # 3c. Mutable fields, precise or whole-blob fallback
        if handler.mutable_fields is None:
            mutable_changes = self._whole_blob_changes(desired_data, recorded, field_order)
            mutable_changes = [n for n in mutable_changes if n not in handler.immutable_fields]
        else:
            mutable_changes = [
                name for name in field_order
                if name in handler.mutable_fields
                and desired_data.get(name) != reference.get(name)
            ]

        diff = self._build_diff(
            reference, desired_data, immutable_changes + mutable_changes, handler.immutable_fields
        )

        if immutable_changes:
            changed = [n for n in field_order if n in immutable_changes or n in mutable_changes]
            return PlanResult(
                resource_type=resource_type,
                action=Action.REPLACE,
                changed_attributes=changed,
                diff=diff,
                reason=f"Immutable attributes changed: {', '.join(immutable_changes)}",
            )

        if mutable_changes or (
            handler.mutable_fields is None and not self._blobs_equal(desired_data, recorded)
        ):
            return PlanResult(
                resource_type=resource_type,
                action=Action.UPDATE,
                changed_attributes=mutable_changes,
                diff=diff,
                reason="Mutable attributes changed",
            )

        return PlanResult(
            resource_type=resource_type,
            action=Action.NOOP,
            reason="No changes detected",
        )

    def _create_plan(self, resource_type: str, desired_data: Dict[str, Any], reason: str) -> PlanResult:
        """Build a CREATE plan with a create diff for every desired attribute."""
        return PlanResult(
            resource_type=resource_type,
            action=Action.CREATE,
            diff={
                name: PropertyDiff(after=value, action="create")
                for name, value in desired_data.items()
            },
            reason=reason,
        )

    @staticmethod
    def _blobs_equal(desired_data: Dict[str, Any], recorded: Dict[str, Any]) -> bool:
        """Whole-blob equality of desired config and the config recorded in state."""
        return desired_data == recorded

    @staticmethod
    def _whole_blob_changes(
        desired_data: Dict[str, Any], recorded: Dict[str, Any], field_order: List[str]
    ) -> List[str]:
        """Best-effort names of differing top-level keys."""
        names = field_order + [k for k in recorded if k not in field_order]
        return [
            name for name in names
            if (name in desired_data or name in recorded)
            and desired_data.get(name) != recorded.get(name)
        ]

    @staticmethod
    def _build_diff(
        before: Dict[str, Any],
        after: Dict[str, Any],
        names: List[str],
        immutable_fields: Tuple[str, ...]
    ) -> Dict[str, PropertyDiff]:
        """Describe each changed attribute as create, update or delete."""
        diff = {}
        for name in names:
            if name not in before:
                action = "create"
            elif name not in after:
                action = "delete"
            else:
                action = "update"
            diff[name] = PropertyDiff(
                before=before.get(name),
                after=after.get(name),
                action=action,
                forces_replacement=name in immutable_fields,
            )
        return diff
