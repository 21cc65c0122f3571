"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis.  A file rather than ``:memory:``:
concurrent sessions then get their own connections and SQLite's write
lock serialises the guarded updates the way PostgreSQL's row locks do.

Redis is replaced by ``InMemoryDriverRegistry``, which keeps the real
``DriverRegistry`` logic and swaps only the storage hooks.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ride_dispatch.domain.entities import Actor, Coordinates, Location
from ride_dispatch.domain.enums import RideStatus, Role
from ride_dispatch.infrastructure import models  # noqa: F401  (registers tables)
from ride_dispatch.infrastructure.database import Base
from ride_dispatch.infrastructure.presence import DriverRegistry
from ride_dispatch.infrastructure.repositories import RideRepository
from ride_dispatch.services.state_machine import RideStateMachine


# ── Actors and places ─────────────────────────────────────────────────

PASSENGER = Actor("passenger-1", Role.PASSENGER)
OTHER_PASSENGER = Actor("passenger-2", Role.PASSENGER)
DRIVER_1 = Actor("driver-1", Role.DRIVER)
DRIVER_2 = Actor("driver-2", Role.DRIVER)
ADMIN = Actor("admin-1", Role.ADMIN)

# São Paulo: Praça da Sé -> Avenida Paulista
ORIGIN = Location.build([-46.6340, -23.5505], "Praça da Sé, São Paulo")
DESTINATION = Location.build([-46.6544, -23.5614], "Av. Paulista 1578, São Paulo")


def headers_for(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value}


async def create_ride(
    machine: RideStateMachine, passenger: Actor = PASSENGER, **kwargs
):
    return await machine.create(
        passenger, ORIGIN, DESTINATION, 5200.0, 960.0, 18.75, **kwargs
    )


async def drive_to(
    machine: RideStateMachine,
    ride_id: str,
    status: RideStatus,
    driver: Actor = DRIVER_1,
):
    """Walk a pending ride along the main path up to *status*."""
    steps = [
        (RideStatus.ACCEPTED, machine.accept),
        (RideStatus.DRIVER_ARRIVED, machine.mark_arrived),
        (RideStatus.IN_PROGRESS, machine.start),
        (RideStatus.COMPLETED, machine.complete),
    ]
    ride = None
    for reached, step in steps:
        ride = await step(driver, ride_id)
        if reached == status:
            break
    return ride


# ── Driver registry without Redis ─────────────────────────────────────


class InMemoryDriverRegistry(DriverRegistry):
    """``DriverRegistry`` with dict-backed storage hooks."""

    def __init__(self):
        super().__init__(client=None)
        self.hashes: dict[str, dict[str, str]] = {}
        self.online: set[str] = set()

    async def _provision_raw(self, driver_id: str, now: str) -> dict[str, str]:
        self.hashes.setdefault(
            driver_id,
            {
                "driver_id": driver_id,
                "is_online": "0",
                "created_at": now,
                "updated_at": now,
            },
        )
        return dict(self.hashes[driver_id])

    async def _read_raw(self, driver_id: str) -> Optional[dict[str, str]]:
        data = self.hashes.get(driver_id)
        return dict(data) if data else None

    async def _set_availability_raw(self, driver_id, is_online, now):
        data = self.hashes.get(driver_id)
        if data is None:
            return None
        data.update(is_online="1" if is_online else "0", updated_at=now)
        if is_online:
            self.online.add(driver_id)
        else:
            self.online.discard(driver_id)
        return dict(data)

    async def _update_location_raw(self, driver_id, coordinates: Coordinates, now):
        data = self.hashes.get(driver_id)
        if data is None:
            return None
        data.update(
            longitude=str(coordinates.longitude),
            latitude=str(coordinates.latitude),
            location_updated_at=now,
            updated_at=now,
        )
        return dict(data)

    async def _scan_online_ids(self):
        for driver_id in sorted(self.online):
            yield driver_id


async def bring_online(
    registry: DriverRegistry,
    driver: Actor,
    coordinates: Optional[Coordinates] = None,
) -> None:
    await registry.provision(driver.id)
    await registry.set_availability(driver, True)
    if coordinates is not None:
        await registry.update_location(driver, coordinates)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}", echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def repository(db_session) -> RideRepository:
    return RideRepository(db_session)


@pytest.fixture
def machine(repository) -> RideStateMachine:
    return RideStateMachine(repository)


@pytest.fixture
def registry() -> InMemoryDriverRegistry:
    return InMemoryDriverRegistry()
