from __future__ import annotations

import boto3
import pytest

from converge.config.settings import EngineSettings, RetrySettings, TimeoutSettings
from converge.engine import ReconcileContext, Reconciler
from converge.handlers.memory import InMemoryBackend, MemoryObjectHandler
from converge.handlers.registry import HandlerRegistry, build_registry
from converge.utils.aws_client import AWSClientManager

MEMORY = "memory:Object"


@pytest.fixture
def fast_retry() -> RetrySettings:
    return RetrySettings(max_retries=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def settings(fast_retry: RetrySettings) -> EngineSettings:
    return EngineSettings(
        timeouts=TimeoutSettings(operation=30.0, wait=5.0, poll_interval=0.01),
        retry=fast_retry,
    )


@pytest.fixture
def ctx() -> ReconcileContext:
    return ReconcileContext(timeout=30.0, wait_timeout=5.0, poll_interval=0.01)


@pytest.fixture
def aws_clients() -> AWSClientManager:
    session = boto3.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1",
    )
    return AWSClientManager(region="us-east-1", session=session)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def memory_handler(backend: InMemoryBackend, fast_retry: RetrySettings) -> MemoryObjectHandler:
    return MemoryObjectHandler(backend=backend, retry=fast_retry)


@pytest.fixture
def registry(
    settings: EngineSettings, aws_clients: AWSClientManager, backend: InMemoryBackend
) -> HandlerRegistry:
    return build_registry(settings, client_manager=aws_clients, memory_backend=backend)


@pytest.fixture
def reconciler(registry: HandlerRegistry, settings: EngineSettings) -> Reconciler:
    return Reconciler(registry, settings)
