"""Example usage of the reconciler against the in-memory object store."""

import json

from converge.config import EngineSettings, TimeoutSettings
from converge.engine import Lifecycle, Reconciler
from converge.handlers.memory import InMemoryBackend
from converge.handlers.registry import build_registry
from converge.utils import LogContext, ReconcileError, setup_logging


def desired(**values) -> bytes:
    return json.dumps(values).encode("utf-8")


def example_lifecycle(reconciler: Reconciler):
    """Example: create, update, replace and delete one object."""
    print("=== Object Lifecycle ===")

    state = None
    for step, config in [
        ("create", desired(name="reports", size=10)),
        ("resize", desired(name="reports", size=20)),
        ("rename", desired(name="reports-v2", size=20)),
        ("remove", None),
    ]:
        plan = reconciler.plan("memory:Object", config, state)
        print(f"{step}: planned {plan.action.value} {plan.changed_attributes or ''}")

        result = reconciler.apply("memory:Object", config, state, plan=plan)
        state = result.raise_for_error()
        print(f"  ✓ new state: {state.decode() or '(untracked)'}")


def example_drift(reconciler: Reconciler, backend: InMemoryBackend):
    """Example: an out-of-band change is detected and corrected."""
    print("\n=== Drift Correction ===")

    config = desired(name="cache", size=5)
    state = reconciler.apply("memory:Object", config, None).raise_for_error()
    backend.drift(json.loads(state)["id"], size=500)

    plan = reconciler.plan("memory:Object", config, state)
    print(f"Drifted object: planned {plan.action.value}")
    for name, diff in plan.diff.items():
        print(f"  {name}: {diff.before} -> {diff.after}")

    reconciler.apply("memory:Object", config, state, plan=plan).raise_for_error()
    print("✓ Drift corrected")


def example_protected(reconciler: Reconciler):
    """Example: prevent_destroy stops a rename that would replace the object."""
    print("\n=== Protected Resource ===")

    state = reconciler.apply("memory:Object", desired(name="ledger", size=1), None).raise_for_error()

    try:
        reconciler.plan(
            "memory:Object",
            desired(name="ledger-2024", size=1),
            state,
            lifecycle=Lifecycle(prevent_destroy=True),
        )
    except ReconcileError as e:
        print(e.to_user_message())


def main():
    """Run all examples."""
    setup_logging("warning")

    settings = EngineSettings(owner="examples", timeouts=TimeoutSettings(poll_interval=0.1))
    backend = InMemoryBackend(ready_after=2)
    reconciler = Reconciler(build_registry(settings, memory_backend=backend), settings)

    with LogContext(resource_type="memory:Object"):
        example_lifecycle(reconciler)
        example_drift(reconciler, backend)
        example_protected(reconciler)


if __name__ == '__main__':
    main()
