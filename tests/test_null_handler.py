from __future__ import annotations

from converge.handlers.null import NullConfig, NullResourceHandler, NullState


def test_create_assigns_fresh_ids(ctx):
    handler = NullResourceHandler()

    first = handler.create(ctx, NullConfig(triggers={"a": "1"}))
    second = handler.create(ctx, NullConfig(triggers={"a": "1"}))

    assert first.id.startswith("null-")
    assert first.id != second.id
    assert first.triggers == {"a": "1"}


def test_describe_echoes_recorded_triggers(ctx):
    handler = NullResourceHandler()
    state = NullState(id="null-1", triggers={"a": "1"})

    described = handler.describe(ctx, state)

    assert described.exists
    assert described.live_config.triggers == {"a": "1"}


def test_update_keeps_state_and_delete_is_harmless(ctx):
    handler = NullResourceHandler()
    state = NullState(id="null-1")

    assert handler.update(ctx, NullConfig(), state) is state
    handler.delete(ctx, state)
