"""
Ride endpoints
==============

POST /api/v1/rides                   -- request a ride (passenger)
GET  /api/v1/rides/available         -- pending rides offered to a driver
GET  /api/v1/rides/current           -- the caller's non-terminal ride
GET  /api/v1/rides/history           -- the caller's rides, newest first
GET  /api/v1/rides/{ride_id}         -- one ride
POST /api/v1/rides/{ride_id}/accept  -- bind the calling driver (first wins)
POST /api/v1/rides/{ride_id}/arrived -- driver reached the pickup
POST /api/v1/rides/{ride_id}/start   -- passenger on board
POST /api/v1/rides/{ride_id}/complete
POST /api/v1/rides/{ride_id}/cancel
POST /api/v1/rides/{ride_id}/rate
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ride_dispatch.api.dependencies import (
    get_actor,
    get_dispatch_engine,
    get_state_machine,
)
from ride_dispatch.api.middleware import limiter
from ride_dispatch.api.schemas import (
    AvailableRidesResponse,
    CancelRequest,
    ErrorResponse,
    RateRequest,
    RideCreateRequest,
    RideResponse,
)
from ride_dispatch.config import settings
from ride_dispatch.domain.entities import Actor, Location
from ride_dispatch.services.dispatch import DispatchEngine, PollCursor
from ride_dispatch.services.state_machine import RideStateMachine

router = APIRouter(prefix="/rides", tags=["rides"])

_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    ride = await machine.create(
        actor,
        Location.build(body.origin.coordinates, body.origin.address),
        Location.build(body.destination.coordinates, body.destination.address),
        body.distance,
        body.duration,
        body.price,
        payment_method=body.payment_method,
        idempotency_key=body.idempotency_key,
    )
    return RideResponse.from_model(ride)


@router.get(
    "/available",
    response_model=AvailableRidesResponse,
    summary="List pending rides for the calling driver",
    description=(
        "Every pending ride is listed (no proximity filter). The listing is "
        "empty when the driver is offline or already bound to a ride. Pass "
        "the ids already shown as `seen` to have new rides flagged."
    ),
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def list_available_rides(
    request: Request,
    seen: list[str] = Query(default=[]),
    exclude_seen: bool = False,
    actor: Actor = Depends(get_actor),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    result = await engine.list_available_rides(
        actor, PollCursor(frozenset(seen), exclude_seen)
    )
    return AvailableRidesResponse.from_result(result)


@router.get(
    "/current",
    response_model=Optional[RideResponse],
    summary="The caller's active ride, or null",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def current_ride(
    request: Request,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    ride = await machine.current(actor)
    return RideResponse.from_model(ride) if ride else None


@router.get(
    "/history",
    response_model=list[RideResponse],
    summary="Rides the caller took part in",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def ride_history(
    request: Request,
    limit: int = Query(settings.history_limit, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    rides = await machine.history(actor, limit)
    return [RideResponse.from_model(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    return RideResponse.from_model(await machine.get(actor, ride_id))


@router.post(
    "/{ride_id}/accept",
    response_model=RideResponse,
    summary="Accept a pending ride",
    description="Exactly one driver wins; the others get a ConflictError.",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def accept_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    return RideResponse.from_model(await engine.accept(actor, ride_id))


@router.post(
    "/{ride_id}/arrived",
    response_model=RideResponse,
    summary="Driver arrived at pickup",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def mark_arrived(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    return RideResponse.from_model(await machine.mark_arrived(actor, ride_id))


@router.post(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start the ride",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    return RideResponse.from_model(await machine.start(actor, ride_id))


@router.post(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Complete the ride",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    return RideResponse.from_model(await machine.complete(actor, ride_id))


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Allowed for the passenger or the assigned driver while the ride is "
        "pending, accepted or driver_arrived. Cancellation is permanent."
    ),
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: Optional[CancelRequest] = None,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    reason = body.reason if body else None
    return RideResponse.from_model(await machine.cancel(actor, ride_id, reason))


@router.post(
    "/{ride_id}/rate",
    response_model=RideResponse,
    summary="Rate the other party of a completed ride",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def rate_ride(
    request: Request,
    ride_id: str,
    body: RateRequest,
    actor: Actor = Depends(get_actor),
    machine: RideStateMachine = Depends(get_state_machine),
):
    ride = await machine.rate(actor, ride_id, body.score, body.comment)
    return RideResponse.from_model(ride)
