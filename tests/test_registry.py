from __future__ import annotations

import pytest

from converge.config.settings import EngineSettings
from converge.handlers.memory import MemoryObjectHandler
from converge.handlers.null import NullResourceHandler
from converge.handlers.registry import HandlerRegistry, build_registry
from converge.utils.errors import ConfigurationError, InvalidRequestError


def test_build_registry_includes_every_builtin(registry):
    assert registry.types() == [
        "aws:DynamoDB.Table",
        "aws:ECR.Repository",
        "aws:IAM.Role",
        "aws:S3.Bucket",
        "aws:SNS.Topic",
        "aws:SQS.Queue",
        "memory:Object",
        "null_resource",
    ]
    assert registry.frozen


def test_registered_handlers_declare_known_fields(registry):
    for type_name in registry.types():
        handler = registry.get(type_name)
        fields = set(handler.config_model.model_fields)
        assert set(handler.immutable_fields) <= fields
        assert set(handler.mutable_fields or ()) <= fields
        assert fields <= set(handler.state_model.model_fields)


def test_get_unknown_type_lists_registered_types(registry):
    with pytest.raises(InvalidRequestError) as excinfo:
        registry.get("aws:Lambda.Function")

    assert "null_resource" in excinfo.value.suggestions[0]


def test_frozen_registry_rejects_registration(registry):
    with pytest.raises(ConfigurationError, match="frozen"):
        registry.register(NullResourceHandler())


def test_duplicate_registration_rejected():
    registry = HandlerRegistry()
    registry.register(NullResourceHandler())

    with pytest.raises(ConfigurationError, match="already registered"):
        registry.register(NullResourceHandler())


def test_settings_limit_enabled_handlers(aws_clients):
    settings = EngineSettings(handlers=["memory:Object"])

    registry = build_registry(settings, client_manager=aws_clients)

    assert registry.types() == ["memory:Object"]
    assert "null_resource" not in registry
    assert len(registry) == 1
    assert isinstance(registry.get("memory:Object"), MemoryObjectHandler)


def test_settings_with_unknown_handler_rejected(aws_clients):
    settings = EngineSettings(handlers=["aws:Lambda.Function"])

    with pytest.raises(ConfigurationError, match="aws:Lambda.Function"):
        build_registry(settings, client_manager=aws_clients)


def test_memory_handler_uses_supplied_backend(registry, backend):
    assert registry.get("memory:Object").backend is backend
