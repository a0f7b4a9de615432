"""Null resource: tracks a set of triggers and nothing else."""

import uuid
from typing import Dict

from pydantic import Field

from converge.handlers.base import DescribeResult, ResourceConfig, ResourceHandler, ResourceState


class NullConfig(ResourceConfig):
    """Triggers whose change forces the resource to be replaced."""

    triggers: Dict[str, str] = Field(default_factory=dict)


class NullState(ResourceState):
    """Generated id plus the triggers it was created with."""

    id: str
    triggers: Dict[str, str] = Field(default_factory=dict)


class NullResourceHandler(ResourceHandler):
    """Handler with no remote side effects.

    Useful for sequencing and for exercising the reconcile protocol: a
    change to any trigger plans a replace.
    """

    type_name = "null_resource"
    config_model = NullConfig
    state_model = NullState
    immutable_fields = ("triggers",)
    mutable_fields = ()

    def describe(self, ctx, state: NullState) -> DescribeResult:
        return DescribeResult(exists=True, live_config=NullConfig(triggers=state.triggers))

    def create(self, ctx, config: NullConfig) -> NullState:
        return NullState(id=f"null-{uuid.uuid4().hex[:12]}", triggers=config.triggers)

    def update(self, ctx, config: NullConfig, state: NullState) -> NullState:
        # Nothing is mutable; keep the recorded state
        return state

    def delete(self, ctx, state: NullState) -> None:
        pass
