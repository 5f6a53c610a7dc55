"""
Dependencies for dependency injection.

Routers resolve services from the module-level ServiceRegistry through the
dependency functions created here, and receive the authenticated admin
principal placed on the request by the upstream session layer.
"""

import logging
from typing import Any

from fastapi import HTTPException, Request, status

from leaveadmin.core.config import get_settings
from leaveadmin.core.service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

# Module-level service registry instance
_service_registry: ServiceRegistry | None = None

_DEV_ADMIN = {"id": 0, "username": "admin", "role": "admin", "authenticated": True}


def initialize_service_registry(registry: ServiceRegistry | None) -> None:
    """
    Initialize the module-level service registry.

    Called once during application startup, and with None on shutdown.
    """
    global _service_registry
    _service_registry = registry
    if registry is not None:
        logger.info("Service registry initialized for dependency injection")


def get_service_registry() -> ServiceRegistry:
    """
    Get the service registry instance.

    Raises:
        RuntimeError: If the service registry is not initialized
    """
    if _service_registry is None:
        msg = "Service registry not initialized. Call initialize_service_registry() during startup."
        raise RuntimeError(msg)

    return _service_registry


def create_service_dependency(service_name: str):
    """
    Factory function to create service dependencies.

    Args:
        service_name: Name of the service in ServiceRegistry

    Returns:
        A FastAPI dependency function
    """

    def dependency() -> Any:
        service_registry = get_service_registry()
        if not service_registry.has_service(service_name):
            logger.error("Service '%s' not available in ServiceRegistry", service_name)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Service '{service_name}' is not available",
            )
        return service_registry.get_service(service_name)

    dependency.__name__ = f"get_{service_name}"
    return dependency


get_database_switch_service = create_service_dependency("database_switch_service")
get_maintenance_gate = create_service_dependency("maintenance_gate")


def get_authenticated_admin(request: Request) -> dict:
    """
    Get the authenticated administrator from the request state.

    Raises:
        HTTPException: 401 without a principal, 403 for non-admin principals
    """
    user = getattr(request.state, "user", None)
    if user is None and get_settings().security.auth_disabled:
        user = _DEV_ADMIN

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    if user.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required",
        )
    return user
