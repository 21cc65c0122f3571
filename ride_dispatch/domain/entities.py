"""
Domain value objects.

Coordinates follow the GeoJSON ``[longitude, latitude]`` order used by the
client apps.  Construction validates ranges so a ride can never be stored
with a missing or out-of-range point.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from .enums import Role
from .errors import AuthorizationError, ValidationError


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinates:
    longitude: float
    latitude: float

    def __post_init__(self):
        for name, value, bound in (
            ("longitude", self.longitude, 180.0),
            ("latitude", self.latitude, 90.0),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{name} must be a number")
            if not math.isfinite(value) or abs(value) > bound:
                raise ValidationError(f"{name} out of range: {value}")

    @classmethod
    def from_pair(cls, pair: Optional[Sequence[float]]) -> Coordinates:
        """Build from a ``[longitude, latitude]`` pair."""
        if pair is None or len(pair) != 2:
            raise ValidationError(
                "coordinates must be a [longitude, latitude] pair"
            )
        return cls(longitude=pair[0], latitude=pair[1])

    def as_pair(self) -> list[float]:
        return [self.longitude, self.latitude]


@dataclass(frozen=True)
class Location:
    """A ride endpoint: a point plus the address shown to the other party."""

    coordinates: Coordinates
    address: str

    def __post_init__(self):
        if not isinstance(self.address, str) or not self.address.strip():
            raise ValidationError("address is required")

    @classmethod
    def build(
        cls, coordinates: Optional[Sequence[float]], address: Optional[str]
    ) -> Location:
        return cls(Coordinates.from_pair(coordinates), address or "")


@dataclass(frozen=True)
class Actor:
    """Caller identity as asserted by the external identity provider."""

    id: str
    role: Role

    def require(self, *roles: Role, message: str) -> None:
        if self.role not in roles:
            raise AuthorizationError(message)


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class DriverPresence:
    driver_id: str
    is_online: bool = False
    location: Optional[Coordinates] = None
    location_updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
