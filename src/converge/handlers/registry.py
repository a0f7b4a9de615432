"""Handler registry: resolves resource type names to handlers."""

import threading
from typing import Dict, List, Optional

from converge.config.settings import EngineSettings
from converge.handlers.aws import AWS_HANDLERS
from converge.handlers.base import ResourceHandler
from converge.handlers.memory import InMemoryBackend, MemoryObjectHandler
from converge.handlers.null import NullResourceHandler
from converge.utils.aws_client import AWSClientManager
from converge.utils.errors import ConfigurationError, InvalidRequestError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class HandlerRegistry:
    """Maps resource type names to handler instances.

    Registration happens at startup. After ``freeze`` the registry is
    read-only and safe to share between threads.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._handlers: Dict[str, ResourceHandler] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, handler: ResourceHandler) -> None:
        """Register a handler under its ``type_name``.

        Raises:
            ConfigurationError: If frozen or the type is already registered
        """
        with self._lock:
            if self._frozen:
                raise ConfigurationError(
                    f"Cannot register {handler.type_name}: registry is frozen"
                )
            if handler.type_name in self._handlers:
                raise ConfigurationError(f"Handler already registered for {handler.type_name}")
            self._handlers[handler.type_name] = handler
        logger.debug(f"Registered handler {handler.type_name}")

    def get(self, resource_type: str) -> ResourceHandler:
        """Resolve a handler.

        Raises:
            InvalidRequestError: If no handler is registered for the type
        """
        handler = self._handlers.get(resource_type)
        if handler is None:
            raise InvalidRequestError(
                f"Unknown resource type: {resource_type}",
                suggestions=[f"Registered types: {', '.join(self.types()) or 'none'}"],
            )
        return handler

    def types(self) -> List[str]:
        """Registered type names, sorted."""
        return sorted(self._handlers)

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, resource_type: str) -> bool:
        return resource_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def build_registry(
    settings: Optional[EngineSettings] = None,
    client_manager: Optional[AWSClientManager] = None,
    memory_backend: Optional[InMemoryBackend] = None
) -> HandlerRegistry:
    """Build a frozen registry of the built-in handlers.

    Args:
        settings: Engine settings; ``settings.handlers`` limits which types
            are enabled (empty enables all)
        client_manager: AWS client manager (built from settings when omitted)
        memory_backend: Backend for the in-memory handler

    Returns:
        Frozen HandlerRegistry

    Raises:
        ConfigurationError: If settings name an unknown handler type
    """
    settings = settings or EngineSettings()
    if client_manager is None:
        client_manager = AWSClientManager(
            profile=settings.aws.profile,
            region=settings.aws.region,
            max_pool_connections=settings.aws.max_pool_connections,
        )

    candidates: List[ResourceHandler] = [
        NullResourceHandler(),
        MemoryObjectHandler(backend=memory_backend, retry=settings.retry),
    ]
    candidates.extend(handler_class(client_manager, settings.retry) for handler_class in AWS_HANDLERS)

    known = {handler.type_name for handler in candidates}
    unknown = [name for name in settings.handlers if name not in known]
    if unknown:
        raise ConfigurationError(
            f"Unknown handler types in settings: {', '.join(unknown)}",
            suggestions=[f"Available types: {', '.join(sorted(known))}"],
        )

    registry = HandlerRegistry()
    for handler in candidates:
        if not settings.handlers or handler.type_name in settings.handlers:
            registry.register(handler)

    registry.freeze()
    logger.debug(f"Handler registry ready with {len(registry)} types")
    return registry
