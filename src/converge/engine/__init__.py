"""Reconciliation engine: plan and apply for a single resource."""

from .models import (
    EMPTY_STATE,
    Action,
    ApplyCallback,
    ApplyEvent,
    ApplyResult,
    ApplyStatus,
    Lifecycle,
    PlanResult,
    PropertyDiff,
)
from .context import ReconcileContext
from .waiter import wait_until
from .planner import PlanEvaluator
from .executor import ApplyExecutor
from .reconciler import Reconciler

__all__ = [
    'EMPTY_STATE',
    'Action',
    'ApplyCallback',
    'ApplyEvent',
    'ApplyResult',
    'ApplyStatus',
    'Lifecycle',
    'PlanResult',
    'PropertyDiff',
    'ReconcileContext',
    'wait_until',
    'PlanEvaluator',
    'ApplyExecutor',
    'Reconciler',
]
