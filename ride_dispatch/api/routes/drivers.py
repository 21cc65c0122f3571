"""
Driver presence endpoints
=========================

GET   /api/v1/drivers/me              -- the calling driver's presence record
PATCH /api/v1/drivers/me/availability -- go online / offline
PUT   /api/v1/drivers/me/location     -- report the current position

A driver can only read and write its own record.
"""

from fastapi import APIRouter, Depends, Request

from ride_dispatch.api.dependencies import get_actor, get_registry
from ride_dispatch.api.middleware import limiter
from ride_dispatch.api.schemas import (
    AvailabilityRequest,
    DriverPresenceResponse,
    ErrorResponse,
    LocationUpdateRequest,
)
from ride_dispatch.config import settings
from ride_dispatch.domain.entities import Actor, Coordinates
from ride_dispatch.domain.enums import Role
from ride_dispatch.infrastructure.presence import DriverRegistry

router = APIRouter(prefix="/drivers", tags=["drivers"])

_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.get(
    "/me",
    response_model=DriverPresenceResponse,
    summary="Presence of the calling driver",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def get_presence(
    request: Request,
    actor: Actor = Depends(get_actor),
    registry: DriverRegistry = Depends(get_registry),
):
    actor.require(Role.DRIVER, message="Only drivers have a presence record")
    return DriverPresenceResponse.from_presence(await registry.get(actor.id))


@router.patch(
    "/me/availability",
    response_model=DriverPresenceResponse,
    summary="Go online or offline",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def set_availability(
    request: Request,
    body: AvailabilityRequest,
    actor: Actor = Depends(get_actor),
    registry: DriverRegistry = Depends(get_registry),
):
    presence = await registry.set_availability(actor, body.is_online)
    return DriverPresenceResponse.from_presence(presence)


@router.put(
    "/me/location",
    response_model=DriverPresenceResponse,
    summary="Report the current position",
    responses=_ERRORS,
)
async def update_location(
    request: Request,
    body: LocationUpdateRequest,
    actor: Actor = Depends(get_actor),
    registry: DriverRegistry = Depends(get_registry),
):
    # No rate limit: the location feed is throttled upstream.
    presence = await registry.update_location(
        actor, Coordinates.from_pair(body.coordinates)
    )
    return DriverPresenceResponse.from_presence(presence)
