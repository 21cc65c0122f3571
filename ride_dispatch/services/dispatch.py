"""
Matching / Dispatch Engine
==========================

Pull model: drivers (or their client shell) call
:meth:`DispatchEngine.list_available_rides` on an interval; nothing is
pushed.  New-ride latency is therefore bounded below by the client's
polling interval.

* Every pending ride is offered to every eligible driver.  There is no
  geofencing; the distance to pickup is reported only as a hint.
* A driver is eligible when online and not bound to a non-terminal ride.
  Ineligible drivers get an empty listing with the reason.
* The engine holds no locks.  A listing only promises "pending at read
  time"; the race between drivers is settled by
  :meth:`RideStateMachine.accept`.
* Poll state (which rides the client already saw) is passed in explicitly
  as a :class:`PollCursor`; the engine keeps none between calls.
* ``listing_limit`` is a page size, not an eligibility cap.  Clients page
  through a long queue with ``exclude_seen``; ``total_pending`` tells
  them whether more rides are waiting.

Complexity: O(P) per listing, P = pending rides returned.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ride_dispatch.config import settings
from ride_dispatch.domain.distance import distance_between_km
from ride_dispatch.domain.entities import Actor, DriverPresence
from ride_dispatch.domain.enums import Role
from ride_dispatch.infrastructure.models import RideModel
from ride_dispatch.infrastructure.presence import DriverRegistry
from ride_dispatch.infrastructure.repositories import RideRepository
from ride_dispatch.services.state_machine import RideStateMachine

logger = logging.getLogger(__name__)


class SuppressionReason(str, enum.Enum):
    OFFLINE = "offline"
    ACTIVE_RIDE = "active_ride"


@dataclass(frozen=True)
class PollCursor:
    """Client-held poll state: ride ids already shown to the driver."""

    seen_ride_ids: frozenset[str] = frozenset()
    exclude_seen: bool = False


@dataclass
class AvailableRide:
    ride: RideModel
    is_new: bool
    distance_to_pickup_km: Optional[float] = None


@dataclass
class AvailableRides:
    polled_at: datetime
    next_poll_after_seconds: int
    rides: list[AvailableRide] = field(default_factory=list)
    suppressed: Optional[SuppressionReason] = None
    active_ride_id: Optional[str] = None
    total_pending: Optional[int] = None


@dataclass
class DispatchBoardEntry:
    presence: DriverPresence
    active_ride_id: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.active_ride_id is not None


@dataclass
class DispatchBoard:
    pending_rides: int
    drivers: list[DispatchBoardEntry] = field(default_factory=list)


class DispatchEngine:
    def __init__(
        self,
        rides: RideRepository,
        registry: DriverRegistry,
        state_machine: Optional[RideStateMachine] = None,
        *,
        listing_limit: int = settings.available_rides_limit,
        poll_interval_seconds: int = settings.poll_interval_seconds,
    ):
        self.rides = rides
        self.registry = registry
        self.state_machine = state_machine or RideStateMachine(rides)
        self.listing_limit = listing_limit
        self.poll_interval_seconds = poll_interval_seconds

    async def list_available_rides(
        self, driver: Actor, cursor: PollCursor = PollCursor()
    ) -> AvailableRides:
        driver.require(Role.DRIVER, message="Only drivers can list available rides")
        result = AvailableRides(
            polled_at=datetime.now(timezone.utc),
            next_poll_after_seconds=self.poll_interval_seconds,
        )

        presence = await self.registry.get(driver.id)
        if not presence.is_online:
            result.suppressed = SuppressionReason.OFFLINE
            return result

        active = await self.rides.get_active_for_driver(driver.id)
        if active is not None:
            result.suppressed = SuppressionReason.ACTIVE_RIDE
            result.active_ride_id = active.id
            return result

        # Seen rides are dropped in SQL, before the LIMIT
        excluded = cursor.seen_ride_ids if cursor.exclude_seen else ()
        pending = await self.rides.get_pending_rides(self.listing_limit, excluded)
        result.total_pending = await self.rides.count_pending()
        for ride in pending:
            is_new = ride.id not in cursor.seen_ride_ids
            distance = None
            if presence.location is not None:
                distance = round(
                    distance_between_km(presence.location, ride.origin.coordinates),
                    3,
                )
            result.rides.append(AvailableRide(ride, is_new, distance))

        new_count = sum(1 for r in result.rides if r.is_new)
        if new_count:
            logger.debug(
                "Driver %s offered %d rides (%d new)",
                driver.id,
                len(result.rides),
                new_count,
            )
        return result

    async def accept(self, driver: Actor, ride_id: str) -> RideModel:
        """Uncontended path into the state machine's conditional accept."""
        return await self.state_machine.accept(driver, ride_id)

    async def dispatch_board(self, actor: Actor) -> DispatchBoard:
        """Online drivers, each flagged with its active ride (admin view)."""
        actor.require(Role.ADMIN, message="Admin role required")
        assignments = await self.rides.get_driver_assignments()
        board = DispatchBoard(pending_rides=await self.rides.count_pending())
        async for presence in self.registry.list_online_drivers():
            board.drivers.append(
                DispatchBoardEntry(
                    presence=presence,
                    active_ride_id=assignments.get(presence.driver_id),
                )
            )
        return board
