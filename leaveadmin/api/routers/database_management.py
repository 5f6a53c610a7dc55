"""Database connection management and switchover API endpoints."""

import asyncio
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from leaveadmin.core.dependencies import (
    get_authenticated_admin,
    get_database_switch_service,
    get_maintenance_gate,
)
from leaveadmin.core.exceptions import (
    ActiveConnectionDeletionError,
    ConnectionNotFoundError,
    RequestValidationError,
)
from leaveadmin.models.database_switch import ConnectionEnvironment
from leaveadmin.models.switchover import SwitchOptions
from leaveadmin.services.database_switch_service import DatabaseSwitchService
from leaveadmin.services.maintenance_gate import MaintenanceGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/database", tags=["database", "admin"])

# One switch at a time per process
_switch_lock = asyncio.Lock()


class ConnectionCreateRequest(BaseModel):
    """Register a database connection."""

    name: str = Field(..., min_length=1, max_length=100)
    connection_string: str = Field(..., min_length=1)
    environment: ConnectionEnvironment
    description: str | None = None


class ConnectionUpdateRequest(BaseModel):
    """Change a database connection. Omitted fields are left unchanged."""

    name: str | None = Field(None, min_length=1, max_length=100)
    connection_string: str | None = Field(None, min_length=1)
    environment: ConnectionEnvironment | None = None
    description: str | None = None


class ConnectionResponse(BaseModel):
    """A registered connection; the connection string is never returned in clear."""

    id: int
    name: str
    environment: str
    is_active: bool
    is_current: bool
    description: str | None = None
    masked_connection_string: str | None = None
    created_by: int | None = None
    created_at: str | None = None
    updated_by: int | None = None
    updated_at: str | None = None
    last_switched_at: str | None = None
    last_switched_by: int | None = None
    connection_test_status: str | None = None
    connection_test_message: str | None = None
    connection_test_at: str | None = None


class ConnectionTestRequest(BaseModel):
    """Test an unsaved connection string."""

    connection_string: str = Field(..., min_length=1)


class ConnectionTestResponse(BaseModel):
    """Outcome of a reachability test."""

    success: bool
    status: str
    message: str
    version: str | None = None
    latency_ms: int | None = None


class SwitchRequest(SwitchOptions):
    """Request to switch the active database."""

    confirm: bool = Field(..., description="Explicit confirmation required")


class SwitchResponse(BaseModel):
    """Outcome of a switch or rollback."""

    success: bool
    message: str
    attempt_id: int | None = None
    details: dict[str, Any] | None = None


class MaintenanceStatusResponse(BaseModel):
    """Current maintenance mode state."""

    enabled: bool
    switch_in_progress: bool


def _actor_id(admin: dict) -> int | None:
    try:
        return int(admin.get("id"))
    except (TypeError, ValueError):
        return None


async def _run_exclusive(operation) -> dict[str, Any]:
    if _switch_lock.locked():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A database switch is already in progress",
        )
    async with _switch_lock:
        return await operation()


def _switch_response(result: dict[str, Any]) -> SwitchResponse:
    # Rejected before any state changed; nothing was recorded
    if not result["success"] and result.get("attempt_id") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["message"])
    return SwitchResponse(**result)


@router.get("/connections", response_model=list[ConnectionResponse])
async def list_connections(
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> list[dict[str, Any]]:
    """List registered connections, newest first."""
    return await switch_service.list_connections()


@router.post(
    "/connections", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED
)
async def create_connection(
    request: ConnectionCreateRequest,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Register a new, inactive connection."""
    try:
        return await switch_service.create_connection(
            name=request.name,
            connection_string=request.connection_string,
            environment=request.environment.value,
            description=request.description,
            actor_id=_actor_id(admin),
        )
    except RequestValidationError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from e


@router.get("/connections/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    connection_id: int,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Get one connection."""
    try:
        return await switch_service.get_connection(connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from e


@router.put("/connections/{connection_id}", response_model=ConnectionResponse)
async def update_connection(
    connection_id: int,
    request: ConnectionUpdateRequest,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Update a connection; a new connection string is re-encrypted."""
    changes = request.model_dump(exclude_none=True)
    if "environment" in changes:
        changes["environment"] = request.environment.value
    try:
        return await switch_service.update_connection(
            connection_id, actor_id=_actor_id(admin), **changes
        )
    except ConnectionNotFoundError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from e
    except RequestValidationError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from e


@router.delete("/connections/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    connection_id: int,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> None:
    """Delete an inactive connection."""
    try:
        await switch_service.delete_connection(connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from e
    except ActiveConnectionDeletionError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e)) from e


@router.post("/connections/test", response_model=ConnectionTestResponse)
async def test_connection(
    request: ConnectionTestRequest,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Test an unsaved connection string."""
    return await switch_service.test_connection(request.connection_string)


@router.post("/connections/{connection_id}/test", response_model=ConnectionTestResponse)
async def test_saved_connection(
    connection_id: int,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Test a registered connection and store the result."""
    try:
        return await switch_service.test_saved_connection(connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from e


@router.post("/connections/{connection_id}/switch", response_model=SwitchResponse)
async def switch_database(
    connection_id: int,
    request: SwitchRequest,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> SwitchResponse:
    """Switch the application to another database connection."""
    if not request.confirm:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Explicit confirmation required")

    options = SwitchOptions(**request.model_dump(exclude={"confirm"}))
    logger.info("Admin %s requested switch to connection %s", admin.get("id"), connection_id)
    result = await _run_exclusive(
        lambda: switch_service.switch_database(connection_id, options, _actor_id(admin))
    )
    return _switch_response(result)


@router.post("/history/{attempt_id}/rollback", response_model=SwitchResponse)
async def rollback_switch(
    attempt_id: int,
    request: SwitchRequest,
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> SwitchResponse:
    """Switch back to the source connection of an earlier switch."""
    if not request.confirm:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Explicit confirmation required")

    options = SwitchOptions(**request.model_dump(exclude={"confirm"}))
    logger.info("Admin %s requested rollback of switch attempt %s", admin.get("id"), attempt_id)
    result = await _run_exclusive(
        lambda: switch_service.rollback_switch(attempt_id, options, _actor_id(admin))
    )
    return _switch_response(result)


@router.get("/history")
async def get_switch_history(
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    """Paginated switch history, newest first."""
    return await switch_service.get_switch_history(page=page, limit=limit)


@router.get("/status")
async def get_database_status(
    switch_service: Annotated[DatabaseSwitchService, Depends(get_database_switch_service)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> dict[str, Any]:
    """Active connection, server version and table row counts."""
    return await switch_service.get_database_status()


@router.get("/maintenance", response_model=MaintenanceStatusResponse)
async def get_maintenance_status(
    maintenance_gate: Annotated[MaintenanceGate, Depends(get_maintenance_gate)],
    _admin: Annotated[dict, Depends(get_authenticated_admin)],
) -> MaintenanceStatusResponse:
    """Whether maintenance mode is on and a switch is running."""
    return MaintenanceStatusResponse(
        enabled=await maintenance_gate.is_enabled(),
        switch_in_progress=_switch_lock.locked(),
    )
