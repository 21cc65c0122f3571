"""Translate backing-store connection failures into ``StoreUnavailableError``."""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager

from redis import exceptions as redis_exceptions
from sqlalchemy import exc as sa_exc

from ride_dispatch.domain.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_UNAVAILABLE = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
    redis_exceptions.ConnectionError,
    redis_exceptions.TimeoutError,
)


@contextmanager
def store_call(store: str):
    try:
        yield
    except _UNAVAILABLE as exc:
        logger.error("%s unavailable: %s", store, exc)
        raise StoreUnavailableError(f"{store} is unavailable") from exc


def translates_store_errors(store: str):
    """Decorator form of :func:`store_call` for async methods."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with store_call(store):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
