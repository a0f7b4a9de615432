"""Resource handler interface and base models."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from converge.engine.context import ReconcileContext


class ResourceConfig(BaseModel):
    """Desired configuration of one resource instance."""

    model_config = ConfigDict(extra="forbid")


class ResourceState(BaseModel):
    """Recorded state of one resource instance.

    Must hold every identifier needed to describe, update and delete the
    remote object without consulting the desired configuration.
    """

    model_config = ConfigDict(extra="ignore")


@dataclass
class DescribeResult:
    """Live read of a remote object."""

    exists: bool
    live_config: Optional[ResourceConfig] = None

    @classmethod
    def gone(cls) -> "DescribeResult":
        """The remote object no longer exists."""
        return cls(exists=False)


class ResourceHandler(ABC):
    """Base class for all resource handlers.

    Subclasses declare their config and state models and which config fields
    are immutable (a change forces replacement). ``mutable_fields`` set to
    None means the handler cannot diff mutable fields precisely; the planner
    then compares the desired config with the config recorded in state.
    """

    type_name: ClassVar[str]
    config_model: ClassVar[Type[ResourceConfig]]
    state_model: ClassVar[Type[ResourceState]]
    immutable_fields: ClassVar[Tuple[str, ...]] = ()
    mutable_fields: ClassVar[Optional[Tuple[str, ...]]] = None

    @abstractmethod
    def describe(self, ctx: "ReconcileContext", state: ResourceState) -> DescribeResult:
        """Read the live object identified by ``state``.

        Args:
            ctx: Reconcile context
            state: Prior recorded state

        Returns:
            DescribeResult; ``exists=False`` when the object is gone
        """
        pass

    @abstractmethod
    def create(self, ctx: "ReconcileContext", config: ResourceConfig) -> ResourceState:
        """Create the remote object and wait until it is usable.

        Raises:
            AlreadyExistsError: If an object with the same identity exists
        """
        pass

    @abstractmethod
    def update(
        self, ctx: "ReconcileContext", config: ResourceConfig, state: ResourceState
    ) -> ResourceState:
        """Apply the mutable subset of ``config`` in place.

        Must be safe to call when nothing actually changed.

        Raises:
            NotFoundError: If the object disappeared
        """
        pass

    @abstractmethod
    def delete(self, ctx: "ReconcileContext", state: ResourceState) -> None:
        """Delete the remote object; an already-absent object is success."""
        pass

    def adopt(self, ctx: "ReconcileContext", config: ResourceConfig) -> Optional[ResourceState]:
        """Return the state of an existing object if this caller owns it.

        Called after ``create`` raised AlreadyExistsError. The default cannot
        confirm ownership and returns None, so the error is surfaced.
        """
        return None

    def recorded_config(self, state: ResourceState) -> Dict[str, Any]:
        """Project a state onto the config field names."""
        data = state.model_dump(mode="json")
        return {name: data[name] for name in self.config_model.model_fields if name in data}
