"""
Tests for the dispatch engine: eligibility, the poll cursor, the pickup
distance hint and the admin dispatch board.
"""

import pytest
import pytest_asyncio

from ride_dispatch.domain import errors
from ride_dispatch.domain.entities import Coordinates, Location
from ride_dispatch.domain.enums import RideStatus
from ride_dispatch.services.dispatch import (
    DispatchEngine,
    PollCursor,
    SuppressionReason,
)
from tests.conftest import (
    ADMIN,
    DESTINATION,
    DRIVER_1,
    DRIVER_2,
    OTHER_PASSENGER,
    PASSENGER,
    bring_online,
    create_ride,
    drive_to,
)


@pytest_asyncio.fixture
async def dispatch(repository, registry, machine) -> DispatchEngine:
    await bring_online(registry, DRIVER_1)
    return DispatchEngine(
        repository,
        registry,
        machine,
        listing_limit=50,
        poll_interval_seconds=30,
    )


class TestEligibility:
    @pytest.mark.asyncio
    async def test_online_idle_driver_sees_pending_rides(self, dispatch, machine):
        ride = await create_ride(machine)

        result = await dispatch.list_available_rides(DRIVER_1)

        assert result.suppressed is None
        assert [r.ride.id for r in result.rides] == [ride.id]
        assert result.next_poll_after_seconds == 30
        assert result.polled_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_no_proximity_filter(self, dispatch, machine):
        far_away = Location.build([139.6917, 35.6895], "Shinjuku, Tokyo")
        await machine.create(PASSENGER, far_away, DESTINATION, 1.0, 1.0, 1.0)

        result = await dispatch.list_available_rides(DRIVER_1)
        assert len(result.rides) == 1

    @pytest.mark.asyncio
    async def test_offline_driver_gets_empty_listing(self, dispatch, machine, registry):
        await create_ride(machine)
        await registry.set_availability(DRIVER_1, False)

        result = await dispatch.list_available_rides(DRIVER_1)

        assert result.rides == []
        assert result.suppressed == SuppressionReason.OFFLINE

    @pytest.mark.asyncio
    async def test_busy_driver_gets_empty_listing(self, dispatch, machine):
        ride = await create_ride(machine)
        await create_ride(machine, passenger=OTHER_PASSENGER)
        await dispatch.accept(DRIVER_1, ride.id)

        result = await dispatch.list_available_rides(DRIVER_1)

        assert result.rides == []
        assert result.suppressed == SuppressionReason.ACTIVE_RIDE
        assert result.active_ride_id == ride.id

    @pytest.mark.asyncio
    async def test_driver_is_eligible_again_after_completion(self, dispatch, machine):
        ride = await create_ride(machine)
        await drive_to(machine, ride.id, RideStatus.COMPLETED)
        other = await create_ride(machine, passenger=OTHER_PASSENGER)

        result = await dispatch.list_available_rides(DRIVER_1)
        assert [r.ride.id for r in result.rides] == [other.id]

    @pytest.mark.asyncio
    async def test_only_pending_rides_are_listed(self, dispatch, machine, registry):
        await bring_online(registry, DRIVER_2)
        taken = await create_ride(machine)
        cancelled = await create_ride(machine)
        open_ride = await create_ride(machine, passenger=OTHER_PASSENGER)
        await machine.accept(DRIVER_2, taken.id)
        await machine.cancel(PASSENGER, cancelled.id)

        result = await dispatch.list_available_rides(DRIVER_1)
        assert [r.ride.id for r in result.rides] == [open_ride.id]

    @pytest.mark.asyncio
    async def test_unprovisioned_driver(self, dispatch):
        with pytest.raises(errors.NotFoundError):
            await dispatch.list_available_rides(DRIVER_2)

    @pytest.mark.asyncio
    async def test_passenger_cannot_list(self, dispatch):
        with pytest.raises(errors.AuthorizationError):
            await dispatch.list_available_rides(PASSENGER)

    @pytest.mark.asyncio
    async def test_going_offline_keeps_the_assigned_ride(
        self, dispatch, machine, registry
    ):
        ride = await create_ride(machine)
        await dispatch.accept(DRIVER_1, ride.id)
        await registry.set_availability(DRIVER_1, False)

        arrived = await machine.mark_arrived(DRIVER_1, ride.id)
        assert arrived.status == RideStatus.DRIVER_ARRIVED
        assert arrived.driver_id == DRIVER_1.id


class TestPollCursor:
    @pytest.mark.asyncio
    async def test_seen_rides_are_not_new(self, dispatch, machine):
        first = await create_ride(machine)
        second = await create_ride(machine, passenger=OTHER_PASSENGER)

        result = await dispatch.list_available_rides(
            DRIVER_1, PollCursor(frozenset({first.id}))
        )

        flags = {r.ride.id: r.is_new for r in result.rides}
        assert flags == {first.id: False, second.id: True}

    @pytest.mark.asyncio
    async def test_exclude_seen_drops_them(self, dispatch, machine):
        first = await create_ride(machine)
        second = await create_ride(machine, passenger=OTHER_PASSENGER)

        result = await dispatch.list_available_rides(
            DRIVER_1, PollCursor(frozenset({first.id}), exclude_seen=True)
        )
        assert [r.ride.id for r in result.rides] == [second.id]

    @pytest.mark.asyncio
    async def test_listing_limit(self, repository, registry, machine):
        await bring_online(registry, DRIVER_1)
        for _ in range(3):
            await create_ride(machine)
        engine = DispatchEngine(repository, registry, machine, listing_limit=2)

        result = await engine.list_available_rides(DRIVER_1)
        assert len(result.rides) == 2
        assert result.total_pending == 3

    @pytest.mark.asyncio
    async def test_exclude_seen_pages_past_the_limit(
        self, repository, registry, machine
    ):
        await bring_online(registry, DRIVER_1)
        first = await create_ride(machine)
        second = await create_ride(machine, passenger=OTHER_PASSENGER)
        third = await create_ride(machine)
        engine = DispatchEngine(repository, registry, machine, listing_limit=2)

        result = await engine.list_available_rides(
            DRIVER_1,
            PollCursor(frozenset({first.id, second.id}), exclude_seen=True),
        )

        assert [r.ride.id for r in result.rides] == [third.id]
        assert result.rides[0].is_new
        assert result.total_pending == 3


class TestDistanceHint:
    @pytest.mark.asyncio
    async def test_distance_without_location_is_unknown(self, dispatch, machine):
        await create_ride(machine)
        result = await dispatch.list_available_rides(DRIVER_1)
        assert result.rides[0].distance_to_pickup_km is None

    @pytest.mark.asyncio
    async def test_distance_to_pickup(self, dispatch, machine, registry):
        await create_ride(machine)
        # One degree of latitude north of Praça da Sé
        await registry.update_location(DRIVER_1, Coordinates(-46.6340, -22.5505))

        result = await dispatch.list_available_rides(DRIVER_1)
        assert result.rides[0].distance_to_pickup_km == pytest.approx(111.195, abs=0.01)


class TestDispatchBoard:
    @pytest.mark.asyncio
    async def test_board_flags_busy_drivers(self, dispatch, machine, registry):
        await bring_online(registry, DRIVER_2)
        await registry.provision("driver-offline")
        ride = await create_ride(machine)
        await create_ride(machine, passenger=OTHER_PASSENGER)
        await dispatch.accept(DRIVER_2, ride.id)

        board = await dispatch.dispatch_board(ADMIN)

        assert board.pending_rides == 1
        by_id = {e.presence.driver_id: e for e in board.drivers}
        assert set(by_id) == {DRIVER_1.id, DRIVER_2.id}
        assert not by_id[DRIVER_1.id].busy
        assert by_id[DRIVER_2.id].busy
        assert by_id[DRIVER_2.id].active_ride_id == ride.id

    @pytest.mark.asyncio
    async def test_board_is_admin_only(self, dispatch):
        with pytest.raises(errors.AuthorizationError):
            await dispatch.dispatch_board(DRIVER_1)
