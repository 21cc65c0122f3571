"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ride_dispatch.domain.entities import Actor
from ride_dispatch.domain.enums import Role
from ride_dispatch.domain.errors import AuthorizationError, ValidationError
from ride_dispatch.infrastructure.database import async_session_factory
from ride_dispatch.infrastructure.presence import DriverRegistry
from ride_dispatch.infrastructure.redis_client import get_redis
from ride_dispatch.infrastructure.repositories import RideRepository
from ride_dispatch.services.dispatch import DispatchEngine
from ride_dispatch.services.state_machine import RideStateMachine


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_registry() -> DriverRegistry:
    return DriverRegistry(await get_redis())


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Identity asserted by the upstream identity provider."""
    if not x_actor_id or not x_actor_role:
        raise AuthorizationError("Missing actor identity")
    try:
        role = Role(x_actor_role.lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {x_actor_role}") from None
    return Actor(id=x_actor_id, role=role)


def get_state_machine(db: AsyncSession = Depends(get_db)) -> RideStateMachine:
    return RideStateMachine(RideRepository(db))


def get_dispatch_engine(
    db: AsyncSession = Depends(get_db),
    registry: DriverRegistry = Depends(get_registry),
) -> DispatchEngine:
    return DispatchEngine(RideRepository(db), registry)
