from __future__ import annotations

import pytest

from converge.handlers.memory import (
    InMemoryBackend,
    MemoryObjectConfig,
    MemoryObjectHandler,
    ObjectConflict,
    ObjectNotFound,
)
from converge.utils.errors import AlreadyExistsError, NotFoundError, RemoteError


def test_backend_rejects_duplicate_names():
    backend = InMemoryBackend()
    backend.create_object("a", 1, {}, owner="me")

    with pytest.raises(ObjectConflict):
        backend.create_object("a", 2, {}, owner="me")


def test_backend_reports_missing_objects():
    backend = InMemoryBackend()

    with pytest.raises(ObjectNotFound):
        backend.get_object("obj-missing")
    with pytest.raises(ObjectNotFound):
        backend.delete_object("obj-missing")


def test_backend_returns_copies():
    backend = InMemoryBackend()
    obj = backend.create_object("a", 1, {"k": "v"}, owner="me")

    obj.tags["k"] = "changed"

    assert backend.get_object(obj.id).tags == {"k": "v"}


def test_backend_pending_objects_turn_ready():
    backend = InMemoryBackend(ready_after=2)
    obj = backend.create_object("a", 1, {}, owner="me")

    assert obj.status == "pending"
    assert backend.get_object(obj.id).status == "pending"
    assert backend.get_object(obj.id).status == "ready"


def test_injected_failures_are_consumed_in_order():
    backend = InMemoryBackend()
    backend.inject_failure("find", ValueError("boom"), times=2)

    for _ in range(2):
        with pytest.raises(ValueError):
            backend.find_by_name("a")
    assert backend.find_by_name("a") is None


def test_describe_reports_live_values(ctx, memory_handler, backend):
    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1, tags={"k": "v"}))
    backend.drift(state.id, size=5)

    described = memory_handler.describe(ctx, state)

    assert described.exists
    assert described.live_config == MemoryObjectConfig(name="a", size=5, tags={"k": "v"})


def test_describe_of_missing_object_is_gone(ctx, memory_handler, backend):
    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))
    backend.remove(state.id)

    assert not memory_handler.describe(ctx, state).exists


def test_create_stamps_the_context_owner(ctx, memory_handler, backend):
    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))

    assert backend.get_object(state.id).owner == ctx.owner


def test_create_conflict_maps_to_already_exists(ctx, memory_handler, backend):
    backend.create_object("a", 1, {}, owner="other")

    with pytest.raises(AlreadyExistsError) as excinfo:
        memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))

    assert excinfo.value.context.operation == "create"
    assert excinfo.value.context.service == "memory"


def test_adopt_requires_matching_owner(ctx, memory_handler, backend):
    backend.create_object("mine", 1, {}, owner=ctx.owner)
    backend.create_object("theirs", 1, {}, owner="other")

    assert memory_handler.adopt(ctx, MemoryObjectConfig(name="mine", size=1)).name == "mine"
    assert memory_handler.adopt(ctx, MemoryObjectConfig(name="theirs", size=1)) is None
    assert memory_handler.adopt(ctx, MemoryObjectConfig(name="nobody", size=1)) is None


def test_update_of_missing_object_is_not_found(ctx, memory_handler, backend):
    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))
    backend.remove(state.id)

    with pytest.raises(NotFoundError):
        memory_handler.update(ctx, MemoryObjectConfig(name="a", size=2), state)


def test_delete_of_missing_object_succeeds(ctx, memory_handler, backend):
    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))
    backend.remove(state.id)

    memory_handler.delete(ctx, state)


def test_throttled_calls_are_retried(ctx, memory_handler, backend):
    backend.inject_failure("create", RuntimeError("Throttling: rate exceeded"), times=2)

    state = memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))

    assert backend.exists(state.id)
    assert [op for op, _ in backend.calls][:3] == ["create", "create", "create"]


def test_retries_stop_at_the_configured_limit(ctx, memory_handler, backend):
    backend.inject_failure("create", ConnectionError("connection refused"), times=3)

    with pytest.raises(RemoteError):
        memory_handler.create(ctx, MemoryObjectConfig(name="a", size=1))

    assert [op for op, _ in backend.calls] == ["create", "create", "create"]


def test_handler_creates_private_backend_by_default():
    handler = MemoryObjectHandler()

    assert isinstance(handler.backend, InMemoryBackend)
