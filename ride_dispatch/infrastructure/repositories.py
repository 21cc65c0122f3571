"""
Repository Pattern -- abstracts DB access so the state machine stays
DB-agnostic.

The repository receives an ``AsyncSession`` (unit-of-work) and exposes
ride-relevant queries only.  All status changes go through
:meth:`RideRepository.conditional_update`, a single
``UPDATE ... WHERE ... RETURNING`` statement: the database applies it
atomically, so at most one caller can move a ride out of a given status.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RideModel
from .store_errors import translates_store_errors
from ride_dispatch.domain.entities import Location
from ride_dispatch.domain.enums import NON_TERMINAL_STATUSES, PaymentMethod, RideStatus
from ride_dispatch.domain.errors import ConflictError

_STORE = "ride store"


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @translates_store_errors(_STORE)
    async def create_ride(
        self,
        *,
        passenger_id: str,
        origin: Location,
        destination: Location,
        distance: float,
        duration: float,
        price: float,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        idempotency_key: str | None = None,
    ) -> RideModel:
        """Insert a pending ride.

        If a concurrent request already inserted a ride with the same
        ``idempotency_key`` the insert is rolled back and that ride is
        returned instead.
        """
        ride = RideModel(
            passenger_id=passenger_id,
            origin_lng=origin.coordinates.longitude,
            origin_lat=origin.coordinates.latitude,
            origin_address=origin.address,
            destination_lng=destination.coordinates.longitude,
            destination_lat=destination.coordinates.latitude,
            destination_address=destination.address,
            distance=distance,
            duration=duration,
            price=price,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
            status=RideStatus.PENDING,
        )
        self.session.add(ride)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            if idempotency_key is None:
                raise
            existing = await self.get_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            return existing
        return ride

    @translates_store_errors(_STORE)
    async def get_by_id(self, ride_id: str) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id, populate_existing=True)

    @translates_store_errors(_STORE)
    async def get_by_idempotency_key(self, key: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    @translates_store_errors(_STORE)
    async def conditional_update(
        self,
        ride_id: str,
        *,
        expected: Union[RideStatus, Iterable[RideStatus]],
        values: dict[str, Any],
        conditions: Iterable[Any] = (),
    ) -> Optional[RideModel]:
        """Apply *values* only if the ride is in an *expected* status and
        every extra condition holds.  Returns the updated ride, or ``None``
        when nothing matched (missing ride, wrong status, lost race).
        Raises ``ConflictError`` when the update would bind a driver to a
        second active ride.
        """
        if isinstance(expected, RideStatus):
            status_clause = RideModel.status == expected
        else:
            status_clause = RideModel.status.in_(list(expected))

        stmt = (
            update(RideModel)
            .where(RideModel.id == ride_id, status_clause, *conditions)
            .values(**values, version=RideModel.version + 1)
            .returning(RideModel)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
        except IntegrityError as exc:
            # uq_rides_driver_active: the driver won another ride meanwhile
            await self.session.rollback()
            raise ConflictError("Driver already has an active ride") from exc
        return result.scalar_one_or_none()

    @translates_store_errors(_STORE)
    async def get_pending_rides(
        self, limit: int, exclude_ids: Iterable[str] = ()
    ) -> list[RideModel]:
        """Oldest pending rides first.  *exclude_ids* is applied before the
        ``LIMIT`` so the page is filled with rides the caller has not seen."""
        stmt = select(RideModel).where(RideModel.status == RideStatus.PENDING)
        exclude_ids = list(exclude_ids)
        if exclude_ids:
            stmt = stmt.where(RideModel.id.not_in(exclude_ids))
        result = await self.session.execute(
            stmt.order_by(RideModel.created_at, RideModel.id).limit(limit)
        )
        return list(result.scalars().all())

    @translates_store_errors(_STORE)
    async def get_active_for_driver(self, driver_id: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.driver_id == driver_id,
                RideModel.status.in_(list(NON_TERMINAL_STATUSES)),
            )
            .order_by(RideModel.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @translates_store_errors(_STORE)
    async def get_active_for_passenger(
        self, passenger_id: str
    ) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.passenger_id == passenger_id,
                RideModel.status.in_(list(NON_TERMINAL_STATUSES)),
            )
            .order_by(RideModel.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @translates_store_errors(_STORE)
    async def get_history(self, user_id: str, limit: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                or_(
                    RideModel.passenger_id == user_id,
                    RideModel.driver_id == user_id,
                )
            )
            .order_by(RideModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @translates_store_errors(_STORE)
    async def get_driver_assignments(self) -> dict[str, str]:
        """Map driver id -> id of the non-terminal ride bound to them."""
        result = await self.session.execute(
            select(RideModel.driver_id, RideModel.id).where(
                RideModel.driver_id.is_not(None),
                RideModel.status.in_(list(NON_TERMINAL_STATUSES)),
            )
        )
        return {driver_id: ride_id for driver_id, ride_id in result.all()}

    @translates_store_errors(_STORE)
    async def count_pending(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(RideModel.status == RideStatus.PENDING)
        )
        return result.scalar() or 0

    @translates_store_errors(_STORE)
    async def commit(self) -> None:
        await self.session.commit()
