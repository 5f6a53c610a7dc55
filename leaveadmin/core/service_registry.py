"""
Service registry.

Holds the service instances built at startup so FastAPI dependencies can
resolve them by name, and runs their shutdown hooks in reverse registration
order.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from leaveadmin.core.exceptions import ServiceNotAvailableError

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Name to instance mapping with ordered shutdown."""

    def __init__(self):
        self._services: dict[str, Any] = {}
        self._shutdown_hooks: list[tuple[str, Callable[[], Awaitable[None]]]] = []

    def register_service(
        self,
        name: str,
        instance: Any,
        shutdown: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """
        Register a started service.

        Args:
            name: Lookup name used by dependencies
            instance: The service object
            shutdown: Optional coroutine function called on shutdown
        """
        if name in self._services:
            msg = f"Service '{name}' is already registered"
            raise ValueError(msg)
        self._services[name] = instance
        if shutdown is not None:
            self._shutdown_hooks.append((name, shutdown))
        logger.debug("Registered service %s", name)

    def has_service(self, name: str) -> bool:
        return name in self._services

    def get_service(self, name: str) -> Any:
        """
        Raises:
            ServiceNotAvailableError: If no service is registered under ``name``
        """
        try:
            return self._services[name]
        except KeyError:
            raise ServiceNotAvailableError(name) from None

    def list_services(self) -> list[str]:
        return list(self._services)

    async def shutdown(self) -> None:
        """Run shutdown hooks, last registered first."""
        for name, hook in reversed(self._shutdown_hooks):
            logger.info("Shutting down %s", name)
            await hook()
        self._shutdown_hooks.clear()
        self._services.clear()
