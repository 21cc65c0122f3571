"""
Redis-backed Driver Registry.

Each driver's presence is a hash ``driver:{id}`` (online flag, last
known position, timestamps); the ids of online drivers are also kept in
the set ``drivers:online`` so dispatch can scan them without touching
offline drivers.

Every write is one Lua script: check that the driver was provisioned,
apply the change, and read the hash back.  Redis runs scripts
atomically, so a location update racing an availability toggle never
leaves the hash and the online set disagreeing, and each call is a single
round trip.  Presence records are never deleted, only toggled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis

from .store_errors import store_call, translates_store_errors
from ride_dispatch.domain.entities import Actor, Coordinates, DriverPresence
from ride_dispatch.domain.enums import Role
from ride_dispatch.domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_STORE = "driver registry"
ONLINE_SET_KEY = "drivers:online"

PROVISION_SCRIPT = """
if redis.call("exists", KEYS[1]) == 0 then
    redis.call("hset", KEYS[1],
        "driver_id", ARGV[1], "is_online", "0",
        "created_at", ARGV[2], "updated_at", ARGV[2])
end
return redis.call("hgetall", KEYS[1])
"""

SET_AVAILABILITY_SCRIPT = """
if redis.call("exists", KEYS[1]) == 0 then
    return nil
end
redis.call("hset", KEYS[1], "is_online", ARGV[2], "updated_at", ARGV[3])
if ARGV[2] == "1" then
    redis.call("sadd", KEYS[2], ARGV[1])
else
    redis.call("srem", KEYS[2], ARGV[1])
end
return redis.call("hgetall", KEYS[1])
"""

UPDATE_LOCATION_SCRIPT = """
if redis.call("exists", KEYS[1]) == 0 then
    return nil
end
redis.call("hset", KEYS[1],
    "longitude", ARGV[1], "latitude", ARGV[2],
    "location_updated_at", ARGV[3], "updated_at", ARGV[3])
return redis.call("hgetall", KEYS[1])
"""


def driver_key(driver_id: str) -> str:
    return f"driver:{driver_id}"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pairs_to_dict(raw) -> Optional[dict[str, str]]:
    """Lua ``HGETALL`` replies arrive as a flat ``[k1, v1, k2, v2, ...]`` list."""
    if not raw:
        return None
    if isinstance(raw, dict):
        return raw
    return dict(zip(raw[::2], raw[1::2]))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def to_presence(data: dict[str, str]) -> DriverPresence:
    location = None
    if data.get("longitude") and data.get("latitude"):
        location = Coordinates(float(data["longitude"]), float(data["latitude"]))
    return DriverPresence(
        driver_id=data["driver_id"],
        is_online=data.get("is_online") == "1",
        location=location,
        location_updated_at=_parse_time(data.get("location_updated_at")),
        created_at=_parse_time(data.get("created_at")),
        updated_at=_parse_time(data.get("updated_at")),
    )


class DriverRegistry:
    """Live presence and position of every provisioned driver."""

    def __init__(self, client: aioredis.Redis):
        self.redis = client

    # ── Public API ────────────────────────────────────────────────────

    async def provision(self, driver_id: str) -> DriverPresence:
        """Create the driver's record (offline) unless it already exists."""
        if not driver_id or not driver_id.strip():
            raise ValidationError("driver id is required")
        data = await self._provision_raw(driver_id, _utcnow())
        return to_presence(data)

    async def get(self, driver_id: str) -> DriverPresence:
        data = await self._read_raw(driver_id)
        if data is None:
            raise NotFoundError(f"Driver {driver_id} not found")
        return to_presence(data)

    async def set_availability(
        self, driver: Actor, is_online: bool
    ) -> DriverPresence:
        """Idempotent online/offline toggle.  Going offline only affects
        future dispatch listings, never a ride already assigned."""
        driver.require(Role.DRIVER, message="Only drivers can change availability")
        data = await self._set_availability_raw(driver.id, is_online, _utcnow())
        if data is None:
            raise NotFoundError(f"Driver {driver.id} not found")
        logger.info(
            "Driver %s is now %s", driver.id, "online" if is_online else "offline"
        )
        return to_presence(data)

    async def update_location(
        self, driver: Actor, coordinates: Coordinates
    ) -> DriverPresence:
        """Overwrite the last known position; no history is kept."""
        driver.require(Role.DRIVER, message="Only drivers can report a location")
        data = await self._update_location_raw(driver.id, coordinates, _utcnow())
        if data is None:
            raise NotFoundError(f"Driver {driver.id} not found")
        return to_presence(data)

    async def list_online_drivers(self) -> AsyncIterator[DriverPresence]:
        """Lazily yield online drivers.

        Each call starts a fresh ``SSCAN``, so the sequence can be restarted
        at any time.  A driver that goes offline mid-scan is skipped.
        """
        with store_call(_STORE):
            async for driver_id in self._scan_online_ids():
                data = await self._read_raw(driver_id)
                if data is None:
                    continue
                presence = to_presence(data)
                if presence.is_online:
                    yield presence

    # ── Redis access ──────────────────────────────────────────────────

    @translates_store_errors(_STORE)
    async def _provision_raw(self, driver_id: str, now: str) -> dict[str, str]:
        raw = await self.redis.eval(
            PROVISION_SCRIPT, 1, driver_key(driver_id), driver_id, now
        )
        return _pairs_to_dict(raw)

    @translates_store_errors(_STORE)
    async def _read_raw(self, driver_id: str) -> Optional[dict[str, str]]:
        return _pairs_to_dict(await self.redis.hgetall(driver_key(driver_id)))

    @translates_store_errors(_STORE)
    async def _set_availability_raw(
        self, driver_id: str, is_online: bool, now: str
    ) -> Optional[dict[str, str]]:
        raw = await self.redis.eval(
            SET_AVAILABILITY_SCRIPT,
            2,
            driver_key(driver_id),
            ONLINE_SET_KEY,
            driver_id,
            "1" if is_online else "0",
            now,
        )
        return _pairs_to_dict(raw)

    @translates_store_errors(_STORE)
    async def _update_location_raw(
        self, driver_id: str, coordinates: Coordinates, now: str
    ) -> Optional[dict[str, str]]:
        raw = await self.redis.eval(
            UPDATE_LOCATION_SCRIPT,
            1,
            driver_key(driver_id),
            str(coordinates.longitude),
            str(coordinates.latitude),
            now,
        )
        return _pairs_to_dict(raw)

    async def _scan_online_ids(self) -> AsyncIterator[str]:
        async for driver_id in self.redis.sscan_iter(ONLINE_SET_KEY):
            yield driver_id
