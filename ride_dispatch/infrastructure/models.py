"""
SQLAlchemy ORM models.

Tables
------
* ``rides`` -- one row per ride request, from creation to its terminal
  status.  Ratings are folded into the row (two independent slots).

Driver presence is not stored here; it lives in Redis
(see :mod:`ride_dispatch.infrastructure.presence`).

Indexes
-------
* **B-Tree** on ``status`` (pending listing), ``passenger_id`` and
  ``driver_id`` (current ride / history look-ups) and ``idempotency_key``.
* **Partial unique** on ``driver_id`` over non-terminal statuses: a driver
  is bound to at most one active ride, even when two accepts race.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    text,
)

from .database import Base
from ride_dispatch.domain.entities import Coordinates, Location
from ride_dispatch.domain.enums import PaymentMethod, PaymentStatus, RideStatus, Role


# Status is stored by member name.
ACTIVE_DRIVER_PREDICATE = "status IN ('ACCEPTED', 'DRIVER_ARRIVED', 'IN_PROGRESS')"


def _new_ride_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(32), primary_key=True, default=_new_ride_id)
    passenger_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=True)

    origin_lng = Column(Float, nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_address = Column(String(255), nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_address = Column(String(255), nullable=False)

    distance = Column(Float, nullable=False)  # metres
    duration = Column(Float, nullable=False)  # seconds
    price = Column(Float, nullable=False)

    status = Column(Enum(RideStatus), default=RideStatus.PENDING, nullable=False)
    payment_status = Column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_method = Column(
        Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False
    )

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(String(500), nullable=True)
    cancelled_by = Column(Enum(Role), nullable=True)

    # Passenger -> driver
    rating_by_passenger_score = Column(Integer, nullable=True)
    rating_by_passenger_comment = Column(String(500), nullable=True)
    rating_by_passenger_at = Column(DateTime(timezone=True), nullable=True)
    # Driver -> passenger
    rating_by_driver_score = Column(Integer, nullable=True)
    rating_by_driver_comment = Column(String(500), nullable=True)
    rating_by_driver_at = Column(DateTime(timezone=True), nullable=True)

    idempotency_key = Column(String(64), unique=True, nullable=True)
    version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_passenger", "passenger_id"),
        Index("idx_rides_driver", "driver_id"),
        Index("idx_rides_idempotency", "idempotency_key"),
        # At most one non-terminal ride per driver
        Index(
            "uq_rides_driver_active",
            "driver_id",
            unique=True,
            postgresql_where=text(ACTIVE_DRIVER_PREDICATE),
            sqlite_where=text(ACTIVE_DRIVER_PREDICATE),
        ),
    )

    @property
    def origin(self) -> Location:
        return Location(
            Coordinates(self.origin_lng, self.origin_lat), self.origin_address
        )

    @property
    def destination(self) -> Location:
        return Location(
            Coordinates(self.destination_lng, self.destination_lat),
            self.destination_address,
        )
