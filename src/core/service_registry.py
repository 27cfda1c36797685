"""
Service Registry - service lifecycle for one application instance.

Each app builds its own registry at startup and stores it on app.state, so
there is no process-global permission cache or engine. Services may carry a
shutdown hook; hooks run in reverse registration order.

Usage:
    registry = ServiceRegistry()
    registry.register(PERMISSION_CACHE, cache, shutdown=cache.shutdown)

    cache = registry.get(PERMISSION_CACHE)

    registry.shutdown()
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Well-known service names
SETTINGS = "settings"
PERMISSION_CACHE = "permission_cache"
PERMISSION_ENGINE = "permission_engine"
SESSION_VALIDATOR = "session_validator"
RBAC_STORE = "rbac_store"
AUDIT_SINK = "audit_sink"
DB_ENGINE = "db_engine"
DB_SESSION_FACTORY = "db_session_factory"


class ServiceNotRegisteredError(LookupError):
    pass


class ServiceRegistry:
    """
    Service registry with lazy initialization support.

    Services can be registered as instances or as factory callables
    (for lazy/deferred initialization).
    """

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._shutdown_hooks: List[Tuple[str, Callable[[], None]]] = []

    def register(
        self,
        name: str,
        instance: Any,
        shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Register a service instance.

        Args:
            name: Service identifier (e.g., "permission_cache")
            instance: The service instance
            shutdown: Optional callable run by shutdown()
        """
        self._services[name] = instance
        if shutdown is not None:
            self._shutdown_hooks.append((name, shutdown))
        logger.debug(f"Service registered: {name}")

    def register_factory(self, name: str, factory: Callable[[], Any]) -> None:
        """
        Register a factory for lazy service initialization.

        The factory will be called on first `get()` and the result cached.
        """
        self._factories[name] = factory
        logger.debug(f"Service factory registered: {name}")

    def get(self, name: str, default: Any = None) -> Any:
        """
        Retrieve a registered service.

        If a factory is registered and the service hasn't been initialized,
        the factory is called and the result is cached.
        """
        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name]()
            self._services[name] = instance
            return instance

        return default

    def require(self, name: str) -> Any:
        """Like get(), but raises if the service is missing."""
        if not self.has(name):
            raise ServiceNotRegisteredError(f"Service not registered: {name}")
        return self.get(name)

    def has(self, name: str) -> bool:
        """Check if a service is registered (instance or factory)."""
        return name in self._services or name in self._factories

    def reset(self, name: str) -> None:
        """
        Reset a specific service (remove cached instance).

        If a factory is registered, the service will be re-created on next get().
        """
        self._services.pop(name, None)
        logger.debug(f"Service reset: {name}")

    def reset_all(self) -> None:
        """Reset all services. Factories are preserved."""
        self._services.clear()
        logger.debug("All services reset")

    def unregister(self, name: str) -> None:
        """Completely remove a service (instance, factory and hook)."""
        self._services.pop(name, None)
        self._factories.pop(name, None)
        self._shutdown_hooks = [(n, h) for n, h in self._shutdown_hooks if n != name]

    def shutdown(self) -> None:
        """Run shutdown hooks newest first, then drop all instances."""
        while self._shutdown_hooks:
            name, hook = self._shutdown_hooks.pop()
            try:
                hook()
                logger.debug(f"Service shut down: {name}")
            except Exception as e:
                logger.error(f"Shutdown of {name} failed: {e}", exc_info=True)
        self.reset_all()

    @property
    def registered_names(self) -> list:
        """List all registered service names."""
        return sorted(set(self._services) | set(self._factories))
