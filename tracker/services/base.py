"""
Base service class for the tracker's storage-backed services.

Every store operation runs inside get_session(), which commits on success and
rolls back on any exception. SQLite reports writer contention as an
OperationalError ("database is locked"), so reads that may race a writer can
go through execute_with_retry().
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

class BaseService:
    """Base class for services that own a slice of the tracker database."""

    max_retries = 3
    retry_delay = 0.1

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Transactional scope: commit on exit, roll back on error."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], max_retries: int = None) -> T:
        """
        Run a storage coroutine, retrying on OperationalError.

        Other errors propagate on the first attempt. The last OperationalError
        is re-raised once the retries are used up.
        """
        attempts = max_retries or self.max_retries
        for attempt in range(attempts):
            try:
                return await func()
            except OperationalError as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {func.__name__}: {e}")
                await asyncio.sleep(self.retry_delay * (2 ** attempt))  # Exponential backoff
