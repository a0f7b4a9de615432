"""In-memory object store and its handler.

The backend behaves like a small remote API: objects get server-assigned
ids, names are unique, new objects may report ``pending`` for a few reads
before turning ``ready``, and failures can be injected per operation.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import Field

from converge.config.settings import RetrySettings
from converge.engine.waiter import wait_until
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceHandler, ResourceState
from converge.utils.errors import (
    AlreadyExistsError,
    ErrorContext,
    NotFoundError,
    ReconcileError,
    error_handler,
)
from converge.utils.logging import get_logger
from converge.utils.retry import RetryStrategy

logger = get_logger(__name__)

T = TypeVar('T')


class ObjectNotFound(Exception):
    """No object with the requested id."""


class ObjectConflict(Exception):
    """An object with the requested name already exists."""


@dataclass
class StoredObject:
    """Object as held by the backend."""

    id: str
    name: str
    size: int
    owner: str
    tags: Dict[str, str] = field(default_factory=dict)
    status: str = "pending"
    pending_reads: int = 0


class InMemoryBackend:
    """Thread-safe object store with a remote-API-like surface."""

    def __init__(self, ready_after: int = 0):
        """Initialize backend.

        Args:
            ready_after: Number of reads a new object reports ``pending`` for
        """
        self.ready_after = ready_after
        self.calls: List[Tuple[str, str]] = []
        self._objects: Dict[str, StoredObject] = {}
        self._failures: Dict[str, List[BaseException]] = {}
        self._lock = threading.Lock()

    def inject_failure(self, operation: str, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        with self._lock:
            self._failures.setdefault(operation, []).extend([error] * times)

    def _record(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def create_object(self, name: str, size: int, tags: Dict[str, str], owner: str) -> StoredObject:
        with self._lock:
            self._record("create", name)
            if any(obj.name == name for obj in self._objects.values()):
                raise ObjectConflict(f"Object named {name!r} already exists")
            obj = StoredObject(
                id=f"obj-{uuid.uuid4().hex[:12]}",
                name=name,
                size=size,
                owner=owner,
                tags=dict(tags),
                status="pending" if self.ready_after else "ready",
                pending_reads=self.ready_after,
            )
            self._objects[obj.id] = obj
            return copy.deepcopy(obj)

    def get_object(self, object_id: str) -> StoredObject:
        with self._lock:
            self._record("get", object_id)
            obj = self._objects.get(object_id)
            if obj is None:
                raise ObjectNotFound(f"Object {object_id} does not exist")
            if obj.status == "pending":
                obj.pending_reads -= 1
                if obj.pending_reads <= 0:
                    obj.status = "ready"
            return copy.deepcopy(obj)

    def find_by_name(self, name: str) -> Optional[StoredObject]:
        with self._lock:
            self._record("find", name)
            for obj in self._objects.values():
                if obj.name == name:
                    return copy.deepcopy(obj)
            return None

    def update_object(self, object_id: str, size: int, tags: Dict[str, str]) -> StoredObject:
        with self._lock:
            self._record("update", object_id)
            obj = self._objects.get(object_id)
            if obj is None:
                raise ObjectNotFound(f"Object {object_id} does not exist")
            obj.size = size
            obj.tags = dict(tags)
            return copy.deepcopy(obj)

    def delete_object(self, object_id: str) -> None:
        with self._lock:
            self._record("delete", object_id)
            if self._objects.pop(object_id, None) is None:
                raise ObjectNotFound(f"Object {object_id} does not exist")

    def exists(self, object_id: str) -> bool:
        """Out-of-band check used by tests; not recorded as a call."""
        with self._lock:
            return object_id in self._objects

    def drift(self, object_id: str, **changes) -> None:
        """Change an object behind the engine's back."""
        with self._lock:
            obj = self._objects[object_id]
            for key, value in changes.items():
                setattr(obj, key, value)

    def remove(self, object_id: str) -> None:
        """Delete an object behind the engine's back."""
        with self._lock:
            self._objects.pop(object_id, None)


class MemoryObjectConfig(ResourceConfig):
    """Desired object. ``name`` is immutable."""

    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    tags: Dict[str, str] = Field(default_factory=dict)


class MemoryObjectState(ResourceState):
    """Recorded object."""

    id: str
    name: str
    size: int
    tags: Dict[str, str] = Field(default_factory=dict)


class MemoryObjectHandler(ResourceHandler):
    """Handler for objects in an InMemoryBackend."""

    type_name = "memory:Object"
    config_model = MemoryObjectConfig
    state_model = MemoryObjectState
    immutable_fields = ("name",)
    mutable_fields = ("size", "tags")

    def __init__(
        self,
        backend: Optional[InMemoryBackend] = None,
        retry: Optional[RetrySettings] = None
    ):
        """Initialize handler.

        Args:
            backend: Object store (a private one is created when omitted)
            retry: Backoff for transient backend errors
        """
        self.backend = backend or InMemoryBackend()
        self.retry = retry or RetrySettings()

    def describe(self, ctx, state: MemoryObjectState) -> DescribeResult:
        try:
            obj = self._call(ctx, "get", self.backend.get_object, state.id)
        except NotFoundError:
            return DescribeResult.gone()
        return DescribeResult(
            exists=True,
            live_config=MemoryObjectConfig(name=obj.name, size=obj.size, tags=obj.tags),
        )

    def create(self, ctx, config: MemoryObjectConfig) -> MemoryObjectState:
        obj = self._call(
            ctx, "create", self.backend.create_object,
            config.name, config.size, config.tags, ctx.owner,
        )
        logger.info(f"Created object {obj.id}")
        self._wait_ready(ctx, obj.id)
        return self._to_state(obj)

    def update(self, ctx, config: MemoryObjectConfig, state: MemoryObjectState) -> MemoryObjectState:
        obj = self._call(ctx, "update", self.backend.update_object, state.id, config.size, config.tags)
        return self._to_state(obj)

    def delete(self, ctx, state: MemoryObjectState) -> None:
        try:
            self._call(ctx, "delete", self.backend.delete_object, state.id)
        except NotFoundError:
            logger.debug(f"Object {state.id} already deleted")

    def adopt(self, ctx, config: MemoryObjectConfig) -> Optional[MemoryObjectState]:
        obj = self._call(ctx, "find", self.backend.find_by_name, config.name)
        if obj is None or obj.owner != ctx.owner:
            return None
        self._wait_ready(ctx, obj.id)
        return self._to_state(obj)

    def _wait_ready(self, ctx, object_id: str) -> None:
        wait_until(
            ctx,
            lambda: self._call(ctx, "get", self.backend.get_object, object_id).status == "ready",
            f"object {object_id} to become ready",
        )

    @staticmethod
    def _to_state(obj: StoredObject) -> MemoryObjectState:
        return MemoryObjectState(id=obj.id, name=obj.name, size=obj.size, tags=obj.tags)

    def _call(self, ctx, operation: str, func: Callable[..., T], *args) -> T:
        """Call the backend with transient retry and error classification."""
        ctx.check()
        strategy = RetryStrategy(
            max_retries=self.retry.max_retries,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
            sleep=ctx.sleep,
        )
        context = ErrorContext(resource_type=self.type_name, operation=operation, service="memory")
        try:
            return strategy.execute_with_retry(func, *args)
        except ObjectNotFound as e:
            raise NotFoundError(str(e), context=context, cause=e) from e
        except ObjectConflict as e:
            raise AlreadyExistsError(str(e), context=context, cause=e) from e
        except ReconcileError:
            raise
        except Exception as e:
            raise error_handler.classify(e, context=context) from e
