"""
YaadBooks Ledger - Storage Retry Helpers

Only transient storage failures (dropped connections, serialization
failures, lock timeouts) are retried. Integrity and data errors are
programming or input errors and propagate unchanged.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.utils.error_handling import StorageException

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_error(exc: BaseException) -> bool:
    """True for errors worth retrying against the store."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def run_with_storage_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> T:
    """
    Run ``operation`` (which should end with its own commit) and retry it
    on transient storage errors.

    The session is rolled back before each retry so the operation starts
    from a clean transaction. When attempts run out a StorageException
    is raised; any other exception is rolled back and re-raised as is.
    """
    attempts = attempts or settings.storage_retry_attempts
    backoff = settings.storage_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            await db.rollback()
            if not is_transient_error(exc):
                raise
            last_error = exc
            logger.warning(
                f"Transient storage error during {description} "
                f"(attempt {attempt}/{attempts}): {exc}"
            )
            if attempt < attempts:
                await asyncio.sleep(backoff * (2 ** (attempt - 1)))

    raise StorageException(
        message=f"Storage unavailable during {description} after {attempts} attempts",
        original_error=last_error if isinstance(last_error, Exception) else None,
        details={"operation": description, "attempts": attempts},
    )
