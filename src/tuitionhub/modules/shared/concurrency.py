"""
Optimistic concurrency helper.

Rows that carry a ``version_id_col`` fail to save with StaleDataError when
another writer got there first. run_with_version_retry rolls the session
back and re-runs the whole read-validate-mutate-save operation so that the
second writer decides against the current state.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tuitionhub.modules.shared.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_WRITE_ATTEMPTS = 3


class ConcurrentModificationError(ConflictError):
    def __init__(self, resource: str = "resource"):
        super().__init__(
            message=f"The {resource} was modified concurrently. Please retry.",
            error_code="CONCURRENT_MODIFICATION",
        )


async def run_with_version_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    resource: str,
    attempts: int = MAX_WRITE_ATTEMPTS,
) -> T:
    """
    Run ``operation`` until it saves without a version conflict.

    ``operation`` must re-read everything it validates against, since the
    session is rolled back between attempts.

    Raises:
        ConcurrentModificationError: If every attempt lost a version race
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StaleDataError:
            await db.rollback()
            logger.warning(f"Version conflict writing {resource} (attempt {attempt}/{attempts})")

    logger.error(f"Giving up on {resource} after {attempts} conflicting writes")
    raise ConcurrentModificationError(resource)
