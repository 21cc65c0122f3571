"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                -- simple health check
GET  /api/v1/admin/dispatch-board        -- online drivers, busy/idle, pending count
POST /api/v1/admin/drivers/{driver_id}   -- provision a driver presence record
"""

from fastapi import APIRouter, Depends, Request

from ride_dispatch.api.dependencies import (
    get_actor,
    get_dispatch_engine,
    get_registry,
)
from ride_dispatch.api.middleware import limiter
from ride_dispatch.api.schemas import (
    DispatchBoardResponse,
    DriverPresenceResponse,
    HealthResponse,
)
from ride_dispatch.config import settings
from ride_dispatch.domain.entities import Actor
from ride_dispatch.domain.enums import Role
from ride_dispatch.infrastructure.presence import DriverRegistry
from ride_dispatch.services.dispatch import DispatchEngine

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/dispatch-board",
    response_model=DispatchBoardResponse,
    summary="Online drivers and their current assignment",
)
@limiter.limit(settings.rate_limit)
async def dispatch_board(
    request: Request,
    actor: Actor = Depends(get_actor),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    return DispatchBoardResponse.from_board(await engine.dispatch_board(actor))


@router.post(
    "/drivers/{driver_id}",
    response_model=DriverPresenceResponse,
    summary="Provision a driver (idempotent, starts offline)",
)
@limiter.limit(settings.rate_limit)
async def provision_driver(
    request: Request,
    driver_id: str,
    actor: Actor = Depends(get_actor),
    registry: DriverRegistry = Depends(get_registry),
):
    actor.require(Role.ADMIN, message="Admin role required")
    return DriverPresenceResponse.from_presence(await registry.provision(driver_id))


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
