from __future__ import annotations

import hashlib
import json
import threading

import pytest

from converge.config.settings import EngineSettings
from converge.engine import Action, Lifecycle, PlanResult, Reconciler
from converge.utils.errors import (
    DecodeError,
    ErrorCategory,
    InvalidRequestError,
    LifecycleError,
)

MEMORY = "memory:Object"


def blob(**values) -> bytes:
    return json.dumps(values).encode("utf-8")


def test_plan_records_input_hashes(reconciler):
    desired = blob(name="a", size=10)

    plan = reconciler.plan(MEMORY, desired, None)

    assert plan.config_hash == hashlib.sha256(desired).hexdigest()
    assert plan.prior_state_hash is None


def test_apply_with_matching_plan_skips_describe(reconciler, backend):
    state = reconciler.apply(MEMORY, blob(name="a", size=10), None).new_state
    desired = blob(name="a", size=20)
    plan = reconciler.plan(MEMORY, desired, state)
    backend.calls.clear()

    result = reconciler.apply(MEMORY, desired, state, plan=plan)

    assert result.is_success()
    assert [op for op, _ in backend.calls] == ["update"]


def test_stale_plan_is_rejected_without_remote_calls(reconciler, backend):
    state = reconciler.apply(MEMORY, blob(name="a", size=10), None).new_state
    plan = reconciler.plan(MEMORY, blob(name="a", size=20), state)
    backend.calls.clear()

    result = reconciler.apply(MEMORY, blob(name="a", size=30), state, plan=plan)

    assert result.is_failed()
    assert isinstance(result.error, InvalidRequestError)
    assert "stale" in result.error.message
    assert result.action == Action.UPDATE
    assert result.new_state == state
    assert backend.calls == []


def test_plan_for_another_type_is_rejected(reconciler):
    desired = blob(triggers={})
    plan = PlanResult(resource_type=MEMORY, action=Action.CREATE, config_hash=hashlib.sha256(desired).hexdigest())

    result = reconciler.apply("null_resource", desired, None, plan=plan)

    assert result.is_failed()
    assert "Plan is for memory:Object" in result.error.message


def test_invalid_request_is_reported_not_raised(reconciler):
    result = reconciler.apply(MEMORY, None, None)

    assert result.is_failed()
    assert result.action is None
    assert result.new_state is None
    assert result.error.category == ErrorCategory.INVALID_REQUEST
    assert result.error.context.action == "apply"


def test_decode_error_is_reported_with_path(reconciler):
    prior = b'{"id": "obj-1", "name": "a", "size": 1}'

    result = reconciler.apply(MEMORY, b'{"name": "a", "size": -1}', prior)

    assert isinstance(result.error, DecodeError)
    assert result.error.path == "size"
    assert result.new_state == prior


def test_undecodable_prior_is_reported_before_planning_delete(reconciler, backend):
    prior = b'{"legacy_id": "obj-1"}'

    with pytest.raises(DecodeError) as excinfo:
        reconciler.plan(MEMORY, None, prior)

    assert excinfo.value.path == "id"

    result = reconciler.apply(MEMORY, None, prior)

    assert isinstance(result.error, DecodeError)
    assert result.action is None
    assert result.new_state == prior


def test_lifecycle_violation_leaves_state_untouched(reconciler, backend):
    state = reconciler.apply(MEMORY, blob(name="a", size=10), None).new_state

    result = reconciler.apply(MEMORY, None, state, lifecycle=Lifecycle(prevent_destroy=True))

    assert isinstance(result.error, LifecycleError)
    assert result.new_state == state
    assert backend.exists(json.loads(state)["id"])


def test_null_resource_round_trip_is_stable(reconciler):
    desired = blob(triggers={"version": "1"})
    state = reconciler.apply("null_resource", desired, None).raise_for_error()

    for _ in range(3):
        result = reconciler.apply("null_resource", desired, state)
        assert result.action == Action.NOOP
        assert result.new_state == state


def test_context_uses_configured_owner_and_budgets(registry):
    settings = EngineSettings(owner="team-a")
    reconciler = Reconciler(registry, settings)

    ctx = reconciler.context(timeout=5)

    assert ctx.owner == "team-a"
    assert ctx.wait_timeout == settings.timeouts.wait
    assert 0 < ctx.remaining() <= 5


def test_shared_cancel_event_cancels_context(reconciler):
    event = threading.Event()
    ctx = reconciler.context(cancel_event=event)

    event.set()

    assert ctx.cancelled


def test_distinct_resources_apply_concurrently(reconciler, backend):
    results = {}

    def converge(name):
        results[name] = reconciler.apply(MEMORY, blob(name=name, size=1), None)

    threads = [threading.Thread(target=converge, args=(f"obj{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(result.is_success() for result in results.values())
    ids = {json.loads(result.new_state)["id"] for result in results.values()}
    assert len(ids) == 8
