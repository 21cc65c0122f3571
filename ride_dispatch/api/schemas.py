"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ride_dispatch.domain.entities import DriverPresence
from ride_dispatch.domain.enums import PaymentMethod, PaymentStatus, RideStatus, Role
from ride_dispatch.infrastructure.models import RideModel
from ride_dispatch.services.dispatch import AvailableRides, DispatchBoard


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    coordinates: list[float] = Field(
        ...,
        min_length=2,
        max_length=2,
        description="[longitude, latitude]",
    )
    address: str = Field(..., min_length=1, max_length=255)


class RideCreateRequest(BaseModel):
    origin: LocationIn
    destination: LocationIn
    distance: float = Field(..., ge=0, description="Metres")
    duration: float = Field(..., ge=0, description="Seconds")
    price: float = Field(..., ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RateRequest(BaseModel):
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class AvailabilityRequest(BaseModel):
    is_online: bool


class LocationUpdateRequest(BaseModel):
    coordinates: list[float] = Field(
        ...,
        min_length=2,
        max_length=2,
        description="[longitude, latitude]",
    )


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    coordinates: list[float]
    address: str


class RatingOut(BaseModel):
    score: int
    comment: Optional[str] = None
    rated_at: Optional[datetime] = None


class RideRatingsOut(BaseModel):
    by_passenger: Optional[RatingOut] = None
    by_driver: Optional[RatingOut] = None


def _rating(ride: RideModel, slot: str) -> Optional[RatingOut]:
    score = getattr(ride, f"{slot}_score")
    if score is None:
        return None
    return RatingOut(
        score=score,
        comment=getattr(ride, f"{slot}_comment"),
        rated_at=getattr(ride, f"{slot}_at"),
    )


class RideResponse(BaseModel):
    id: str
    passenger_id: str
    driver_id: Optional[str] = None
    origin: LocationOut
    destination: LocationOut
    distance: float
    duration: float
    price: float
    status: RideStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[Role] = None
    rating: RideRatingsOut
    version: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, ride: RideModel) -> RideResponse:
        return cls(
            id=ride.id,
            passenger_id=ride.passenger_id,
            driver_id=ride.driver_id,
            origin=LocationOut(
                coordinates=[ride.origin_lng, ride.origin_lat],
                address=ride.origin_address,
            ),
            destination=LocationOut(
                coordinates=[ride.destination_lng, ride.destination_lat],
                address=ride.destination_address,
            ),
            distance=ride.distance,
            duration=ride.duration,
            price=ride.price,
            status=ride.status,
            payment_status=ride.payment_status,
            payment_method=ride.payment_method,
            accepted_at=ride.accepted_at,
            arrived_at=ride.arrived_at,
            start_time=ride.start_time,
            end_time=ride.end_time,
            cancelled_at=ride.cancelled_at,
            cancel_reason=ride.cancel_reason,
            cancelled_by=ride.cancelled_by,
            rating=RideRatingsOut(
                by_passenger=_rating(ride, "rating_by_passenger"),
                by_driver=_rating(ride, "rating_by_driver"),
            ),
            version=ride.version,
            created_at=ride.created_at,
        )


class AvailableRideOut(BaseModel):
    ride: RideResponse
    is_new: bool
    distance_to_pickup_km: Optional[float] = None


class AvailableRidesResponse(BaseModel):
    rides: list[AvailableRideOut] = []
    polled_at: datetime
    next_poll_after_seconds: int
    suppressed: Optional[str] = None
    active_ride_id: Optional[str] = None
    total_pending: Optional[int] = None

    @classmethod
    def from_result(cls, result: AvailableRides) -> AvailableRidesResponse:
        return cls(
            rides=[
                AvailableRideOut(
                    ride=RideResponse.from_model(r.ride),
                    is_new=r.is_new,
                    distance_to_pickup_km=r.distance_to_pickup_km,
                )
                for r in result.rides
            ],
            polled_at=result.polled_at,
            next_poll_after_seconds=result.next_poll_after_seconds,
            suppressed=result.suppressed.value if result.suppressed else None,
            active_ride_id=result.active_ride_id,
            total_pending=result.total_pending,
        )


class DriverPresenceResponse(BaseModel):
    driver_id: str
    is_online: bool
    coordinates: Optional[list[float]] = None
    location_updated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_presence(cls, presence: DriverPresence) -> DriverPresenceResponse:
        return cls(
            driver_id=presence.driver_id,
            is_online=presence.is_online,
            coordinates=presence.location.as_pair() if presence.location else None,
            location_updated_at=presence.location_updated_at,
            updated_at=presence.updated_at,
        )


class DispatchBoardDriver(DriverPresenceResponse):
    busy: bool = False
    active_ride_id: Optional[str] = None


class DispatchBoardResponse(BaseModel):
    pending_rides: int
    drivers: list[DispatchBoardDriver] = []

    @classmethod
    def from_board(cls, board: DispatchBoard) -> DispatchBoardResponse:
        drivers = []
        for entry in board.drivers:
            base = DriverPresenceResponse.from_presence(entry.presence)
            drivers.append(
                DispatchBoardDriver(
                    **base.model_dump(),
                    busy=entry.busy,
                    active_ride_id=entry.active_ride_id,
                )
            )
        return cls(pending_rides=board.pending_rides, drivers=drivers)


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    kind: str
    detail: str
