"""
Ride store engine and session factory.

``asyncpg`` against PostgreSQL in production.  Every ride mutation is a
single conditional ``UPDATE``, so sessions are short-lived (one per
request) and nothing holds a row lock across round trips.  Pool sizing
comes from settings; ``pool_pre_ping`` turns a dropped connection into a
fresh one instead of a failed request.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ride_dispatch.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the ride store tables."""
