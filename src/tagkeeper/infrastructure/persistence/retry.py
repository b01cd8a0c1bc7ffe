# Hey future me - this is the fix for "database is locked" on the local store!
#
# The migration checkpoints while the host app may be writing the dataset from the UI.
# SQLite allows ONE writer at a time, so the loser gets "database is locked" (or
# "database is busy"). Those are TEMPORARY - back off a little and try again.
#
# USAGE (see SqliteKeyValueStore):
#   @with_db_retry(max_attempts=3)
#   async def _set(self, key: str, value: str) -> None:
#       ...
#
# The wrapper re-raises the raw OperationalError; SqliteKeyValueStore turns it into
# PersistenceError one level up so callers only ever see the domain exception.
"""Lock-retry decorator for the SQLite key/value store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_LOCK_MARKERS = ("locked", "busy")


def is_lock_error(exception: BaseException) -> bool:
    """True for SQLite 'database is locked/busy' errors, which are worth retrying."""
    if not isinstance(exception, OperationalError):
        return False
    text = str(exception).lower()
    return any(marker in text for marker in _LOCK_MARKERS)


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry a store coroutine while SQLite reports a lock.

    Waits initial_delay, then multiplies by backoff_factor up to max_delay
    (0.5s, 1s, 2s ... with the defaults). Other OperationalErrors are raised
    immediately.

    Args:
        max_attempts: Total attempts, first call included
        initial_delay: Wait before the second attempt (seconds)
        max_delay: Upper bound for a single wait (seconds)
        backoff_factor: Growth factor between waits
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 1
            delay = initial_delay
            while True:
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e):
                        raise
                    if attempt >= max_attempts:
                        logger.error(
                            f"[STORE] {func.__qualname__}: still locked after "
                            f"{attempt} attempts, giving up"
                        )
                        raise
                    logger.warning(
                        f"[STORE] {func.__qualname__}: database locked "
                        f"({attempt}/{max_attempts}), retrying in {delay:.1f}s"
                    )

                await asyncio.sleep(delay)
                delay = min(delay * backoff_factor, max_delay)
                attempt += 1

        return wrapper

    return decorator
