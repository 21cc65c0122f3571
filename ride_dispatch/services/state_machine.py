"""
Ride State Machine
==================

Owns every legal status change of a ride and checks who may make it::

    pending -> accepted -> driver_arrived -> in_progress -> completed
       |          |              |
       +----------+--------------+--> cancelled

Concurrency safety
------------------
Each operation is one guarded ``UPDATE ... WHERE status = <expected>``
(see :meth:`RideRepository.conditional_update`).  The database serialises
writers per row, so at most one transition out of a given (ride, status)
pair succeeds and no lock is ever held across round trips.

When the guarded update matches nothing, the ride is re-read to report
*why*: missing ride, wrong actor, a lost race (the ride already shows
the target status: ``ConflictError``) or an unreachable status
(``InvalidTransitionError``).  A partial unique index on each driver's
active ride makes a second concurrent accept by the same driver fail
with ``ConflictError`` as well.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from ride_dispatch.domain import errors
from ride_dispatch.domain.entities import Actor, Location
from ride_dispatch.domain.enums import (
    CANCELLABLE_STATUSES,
    PaymentMethod,
    RideStatus,
    Role,
)
from ride_dispatch.infrastructure.models import RideModel
from ride_dispatch.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)

MIN_RATING_SCORE = 1
MAX_RATING_SCORE = 5
MAX_TEXT_LENGTH = 500

# Role of the rater -> prefix of the rating slot columns it writes.
_RATING_SLOTS = {
    Role.PASSENGER: "rating_by_passenger",
    Role.DRIVER: "rating_by_driver",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_amount(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise errors.ValidationError(f"{name} must be a number")
    if not math.isfinite(value) or value < 0:
        raise errors.ValidationError(f"{name} must be a non-negative number")


def _clean_text(name: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) > MAX_TEXT_LENGTH:
        raise errors.ValidationError(
            f"{name} must be at most {MAX_TEXT_LENGTH} characters"
        )
    return value or None


def _party_clause(actor: Actor):
    if actor.role == Role.PASSENGER:
        return RideModel.passenger_id == actor.id
    return RideModel.driver_id == actor.id


def _is_party(ride: RideModel, actor: Actor) -> bool:
    if actor.role == Role.PASSENGER:
        return ride.passenger_id == actor.id
    if actor.role == Role.DRIVER:
        return ride.driver_id == actor.id
    return False


class RideStateMachine:
    """Mediates all ride mutation.  One instance per unit of work."""

    def __init__(self, rides: RideRepository):
        self.rides = rides

    # ── Creation ──────────────────────────────────────────────────────

    async def create(
        self,
        passenger: Actor,
        origin: Optional[Location],
        destination: Optional[Location],
        distance: float,
        duration: float,
        price: float,
        *,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        idempotency_key: Optional[str] = None,
    ) -> RideModel:
        passenger.require(
            Role.PASSENGER, message="Only passengers can request rides"
        )
        if origin is None or destination is None:
            raise errors.ValidationError("origin and destination are required")
        _require_amount("distance", distance)
        _require_amount("duration", duration)
        _require_amount("price", price)

        if idempotency_key:
            existing = await self.rides.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                return self._replay(existing, passenger)

        ride = await self.rides.create_ride(
            passenger_id=passenger.id,
            origin=origin,
            destination=destination,
            distance=distance,
            duration=duration,
            price=price,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
        )
        if ride.passenger_id != passenger.id:
            # Lost an insert race on the idempotency key.
            return self._replay(ride, passenger)
        await self.rides.commit()
        logger.info("Ride %s requested by passenger %s", ride.id, passenger.id)
        return ride

    @staticmethod
    def _replay(existing: RideModel, passenger: Actor) -> RideModel:
        if existing.passenger_id != passenger.id:
            raise errors.ConflictError("Idempotency key already used")
        logger.info("Replayed ride %s for idempotency key", existing.id)
        return existing

    # ── Driver transitions ────────────────────────────────────────────

    async def accept(self, driver: Actor, ride_id: str) -> RideModel:
        """Bind *driver* to a pending ride.  First committer wins."""
        driver.require(Role.DRIVER, message="Only drivers can accept rides")

        active = await self.rides.get_active_for_driver(driver.id)
        if active is not None:
            raise errors.ConflictError(
                f"Driver already has an active ride ({active.id})"
            )

        ride = await self.rides.conditional_update(
            ride_id,
            expected=RideStatus.PENDING,
            conditions=(RideModel.driver_id.is_(None),),
            values={
                "status": RideStatus.ACCEPTED,
                "driver_id": driver.id,
                "accepted_at": _utcnow(),
            },
        )
        if ride is None:
            current = await self._get_or_raise(ride_id)
            logger.info(
                "Driver %s lost ride %s (status=%s, driver=%s)",
                driver.id,
                ride_id,
                current.status.value,
                current.driver_id,
            )
            raise errors.ConflictError("Ride no longer available")

        await self.rides.commit()
        logger.info("Ride %s accepted by driver %s", ride.id, driver.id)
        return ride

    async def mark_arrived(self, driver: Actor, ride_id: str) -> RideModel:
        return await self._advance(
            driver,
            ride_id,
            RideStatus.ACCEPTED,
            RideStatus.DRIVER_ARRIVED,
            {"arrived_at": _utcnow()},
        )

    async def start(self, driver: Actor, ride_id: str) -> RideModel:
        return await self._advance(
            driver,
            ride_id,
            RideStatus.DRIVER_ARRIVED,
            RideStatus.IN_PROGRESS,
            {"start_time": _utcnow()},
        )

    async def complete(self, driver: Actor, ride_id: str) -> RideModel:
        return await self._advance(
            driver,
            ride_id,
            RideStatus.IN_PROGRESS,
            RideStatus.COMPLETED,
            {"end_time": _utcnow()},
        )

    async def _advance(
        self,
        driver: Actor,
        ride_id: str,
        expected: RideStatus,
        target: RideStatus,
        stamps: dict,
    ) -> RideModel:
        """Move a ride one step along the main path; bound driver only."""
        driver.require(
            Role.DRIVER, message="Only the assigned driver can update this ride"
        )
        ride = await self.rides.conditional_update(
            ride_id,
            expected=expected,
            conditions=(RideModel.driver_id == driver.id,),
            values={"status": target, **stamps},
        )
        if ride is None:
            current = await self._get_or_raise(ride_id)
            if current.driver_id != driver.id:
                raise errors.AuthorizationError(
                    "Only the assigned driver can update this ride"
                )
            if current.status == target:
                # Same step already applied by a concurrent or repeated call
                raise errors.ConflictError(f"Ride is already {target.value}")
            logger.warning(
                "Rejected %s -> %s on ride %s",
                current.status.value,
                target.value,
                ride_id,
            )
            raise errors.InvalidTransitionError(
                f"Cannot move ride from {current.status.value} to {target.value}"
            )

        await self.rides.commit()
        logger.info("Ride %s is now %s", ride.id, target.value)
        return ride

    # ── Cancellation ──────────────────────────────────────────────────

    async def cancel(
        self, actor: Actor, ride_id: str, reason: Optional[str] = None
    ) -> RideModel:
        """Cancel from pending, accepted or driver_arrived.  Permanent: the
        ride is never released back to pending."""
        actor.require(
            Role.PASSENGER,
            Role.DRIVER,
            message="Only the passenger or the assigned driver can cancel",
        )
        reason = _clean_text("reason", reason)

        ride = await self.rides.conditional_update(
            ride_id,
            expected=CANCELLABLE_STATUSES,
            conditions=(_party_clause(actor),),
            values={
                "status": RideStatus.CANCELLED,
                "cancel_reason": reason,
                "cancelled_by": actor.role,
                "cancelled_at": _utcnow(),
            },
        )
        if ride is None:
            current = await self._get_or_raise(ride_id)
            if not _is_party(current, actor):
                raise errors.AuthorizationError(
                    "Only the passenger or the assigned driver can cancel"
                )
            if current.status == RideStatus.CANCELLED:
                raise errors.ConflictError("Ride is already cancelled")
            raise errors.InvalidTransitionError(
                f"Cannot cancel ride in status {current.status.value}"
            )

        await self.rides.commit()
        logger.info(
            "Ride %s cancelled by %s %s", ride.id, actor.role.value, actor.id
        )
        return ride

    # ── Rating ────────────────────────────────────────────────────────

    async def rate(
        self,
        actor: Actor,
        ride_id: str,
        score: int,
        comment: Optional[str] = None,
    ) -> RideModel:
        """Fill the actor's rating slot once.  Passengers rate the driver,
        drivers rate the passenger."""
        actor.require(
            Role.PASSENGER,
            Role.DRIVER,
            message="Only the passenger or the driver can rate a ride",
        )
        if (
            isinstance(score, bool)
            or not isinstance(score, int)
            or not MIN_RATING_SCORE <= score <= MAX_RATING_SCORE
        ):
            raise errors.ValidationError(
                f"score must be an integer from {MIN_RATING_SCORE} "
                f"to {MAX_RATING_SCORE}"
            )
        comment = _clean_text("comment", comment)

        slot = _RATING_SLOTS[actor.role]
        score_column = getattr(RideModel, f"{slot}_score")
        ride = await self.rides.conditional_update(
            ride_id,
            expected=RideStatus.COMPLETED,
            conditions=(_party_clause(actor), score_column.is_(None)),
            values={
                f"{slot}_score": score,
                f"{slot}_comment": comment,
                f"{slot}_at": _utcnow(),
            },
        )
        if ride is None:
            current = await self._get_or_raise(ride_id)
            if not _is_party(current, actor):
                raise errors.AuthorizationError(
                    "Only the passenger or the driver can rate a ride"
                )
            if current.status != RideStatus.COMPLETED:
                raise errors.InvalidTransitionError(
                    "Only completed rides can be rated"
                )
            raise errors.ConflictError(
                f"Ride already rated by the {actor.role.value}"
            )

        await self.rides.commit()
        logger.info("Ride %s rated %d by %s", ride.id, score, actor.role.value)
        return ride

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, actor: Actor, ride_id: str) -> RideModel:
        ride = await self._get_or_raise(ride_id)
        if actor.role == Role.ADMIN or _is_party(ride, actor):
            return ride
        if actor.role == Role.DRIVER and ride.status == RideStatus.PENDING:
            return ride
        raise errors.AuthorizationError("Not allowed to view this ride")

    async def current(self, actor: Actor) -> Optional[RideModel]:
        """The actor's non-terminal ride, if any."""
        if actor.role == Role.DRIVER:
            return await self.rides.get_active_for_driver(actor.id)
        if actor.role == Role.PASSENGER:
            return await self.rides.get_active_for_passenger(actor.id)
        raise errors.AuthorizationError("Only passengers and drivers have rides")

    async def history(self, actor: Actor, limit: int) -> list[RideModel]:
        actor.require(
            Role.PASSENGER,
            Role.DRIVER,
            message="Only passengers and drivers have rides",
        )
        return await self.rides.get_history(actor.id, limit)

    async def _get_or_raise(self, ride_id: str) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise errors.NotFoundError(f"Ride {ride_id} not found")
        return ride
