"""Data model shared by the planner, executor and reconciler."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from converge.utils.errors import ReconcileError


# Marker for "no resource is tracked": produced by a successful delete and by a
# replace whose create failed after the delete went through.
EMPTY_STATE = b""


class Action(Enum):
    """Classification of the work needed to converge one resource."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "noop"


@dataclass
class PropertyDiff:
    """Before/after view of one top-level attribute."""

    before: Any = None
    after: Any = None
    action: str = "update"  # create, update, delete
    forces_replacement: bool = False


@dataclass
class Lifecycle:
    """Per-resource rules applied on top of the handler's plan."""

    prevent_destroy: bool = False
    ignore_changes: List[str] = field(default_factory=list)


@dataclass
class PlanResult:
    """Outcome of planning a single resource."""

    resource_type: str
    action: Action
    changed_attributes: List[str] = field(default_factory=list)
    diff: Dict[str, PropertyDiff] = field(default_factory=dict)
    config_hash: Optional[str] = None
    prior_state_hash: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def has_changes(self) -> bool:
        """Check if the plan requires any remote call."""
        return self.action != Action.NOOP

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            'resource_type': self.resource_type,
            'action': self.action.value,
            'changed_attributes': list(self.changed_attributes),
            'diff': {
                name: {
                    'before': d.before,
                    'after': d.after,
                    'action': d.action,
                    'forces_replacement': d.forces_replacement,
                }
                for name, d in self.diff.items()
            },
            'config_hash': self.config_hash,
            'prior_state_hash': self.prior_state_hash,
            'reason': self.reason,
            'created_at': self.created_at.isoformat(),
        }


class ApplyStatus(Enum):
    """Status of an apply call."""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ApplyResult:
    """Outcome of applying a single resource.

    ``new_state`` is what the caller must persist as the next prior state:
    the encoded handler state, EMPTY_STATE for "untracked", or None when no
    resource was tracked before and none was created. ``action`` is None when
    the request was rejected before a plan existed.
    """

    resource_type: str
    action: Optional[Action]
    status: ApplyStatus
    new_state: Optional[bytes] = None
    error: Optional[ReconcileError] = None
    prior_deleted: bool = False
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        """Check if apply was successful."""
        return self.status == ApplyStatus.SUCCESS

    def is_failed(self) -> bool:
        """Check if apply failed."""
        return self.status == ApplyStatus.FAILED

    def is_untracked(self) -> bool:
        """Check if the new state records that no resource is tracked."""
        return self.new_state is not None and len(self.new_state) == 0

    def raise_for_error(self) -> Optional[bytes]:
        """Raise the recorded error, or return the new state."""
        if self.error is not None:
            raise self.error
        return self.new_state


@dataclass
class ApplyEvent:
    """Progress event emitted during apply."""

    resource_type: str
    action: Action
    status: str  # started, completed, failed
    duration: float = 0.0
    error: Optional[ReconcileError] = None


# Type alias for apply progress callback
ApplyCallback = Callable[[ApplyEvent], None]
