"""
Database retry helpers.

Repository functions open their own session per call, so a retried call
re-runs the whole transaction from the beginning.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


RETRYABLE_EXCEPTIONS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    asyncio.TimeoutError,
    ConnectionRefusedError,
    ConnectionResetError,
)

# SQLSTATE codes for serialization failure and deadlock
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def is_retryable_db_error(exc: BaseException) -> bool:
    """True for connection-level failures and lock conflicts worth retrying."""
    if isinstance(exc, RETRYABLE_EXCEPTIONS):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        return sqlstate in RETRYABLE_SQLSTATES
    return False


def create_db_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
):
    """
    Create a tenacity retry decorator for database operations.

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)

    Returns:
        Configured retry decorator
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_retryable_db_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Default retry decorator for database operations
db_retry = create_db_retry()


def with_db_retry(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Decorator to add retry logic to async database functions.

    Usage:
        @with_db_retry
        async def my_db_operation():
            async with db.session() as session:
                ...
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        @db_retry
        async def inner():
            return await func(*args, **kwargs)
        return await inner()

    return wrapper
