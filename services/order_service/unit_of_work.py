"""
Explicit unit of work for the order workflow.

`run(work)` opens a session, pins the transaction isolation level, awaits
`work(session)` and commits. Any exception rolls everything back. When the
database aborts the transaction because of a serialization conflict the whole
unit is re-run from scratch, so `work` must be safe to repeat.
"""
import asyncio
import os
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    # SQLite reports write conflicts as a busy database
    return "database is locked" in str(orig).lower()


class UnitOfWork:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        isolation_level: Optional[str] = None,
        max_attempts: Optional[int] = None,
        retry_backoff: float = 0.05,
    ):
        self.session_factory = session_factory
        self.isolation_level = isolation_level or os.getenv("ORDER_TX_ISOLATION_LEVEL", "SERIALIZABLE")
        self.max_attempts = max_attempts if max_attempts is not None else int(os.getenv("ORDER_TX_MAX_ATTEMPTS", "3"))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.retry_backoff = retry_backoff

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await self._run_once(work)
            except DBAPIError as e:
                if not is_serialization_failure(e) or attempt >= self.max_attempts:
                    raise
                logger.warning("unit_of_work_retry", attempt=attempt, error=str(e.orig))
                await asyncio.sleep(self.retry_backoff * attempt)
                attempt += 1

    async def _run_once(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self.session_factory() as session:
            # Must precede any statement so the transaction starts at this level
            await session.connection(execution_options={"isolation_level": self.isolation_level})
            try:
                result = await work(session)
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
            return result
