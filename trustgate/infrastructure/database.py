"""Database Session Manager — async engine, short-lived sessions, failure mapping.

Invariants:
    - A session that raises is rolled back before the error leaves the context
    - Driver/SQLAlchemy failures surface as DatabaseError (503, retryable); domain
      errors raised inside the block pass through untouched
    - Pooled engines carry pool_pre_ping and a bounded pool_timeout (no unbounded waits)

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: ORM objects stay readable after commit in async code
    - SQLite URLs skip pool sizing: aiosqlite picks its own pool for tests
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from trustgate.core.errors import DatabaseError

logger = logging.getLogger(__name__)

# Most specific first: IntegrityError and OperationalError are DBAPIErrors
_FAILURES: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Connection or operational error", "execute"),
    (DBAPIError, "Database driver error", "query"),
    (SQLAlchemyError, "Database operation failed", "unknown"),
)


def _as_database_error(exc: SQLAlchemyError) -> DatabaseError:
    for kind, message, operation in _FAILURES:
        if isinstance(exc, kind):
            return DatabaseError(message, operation)
    return DatabaseError("Database operation failed", "unknown")


class DatabaseSessionManager:
    """Owns the async engine and hands out sessions that roll back on failure."""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_timeout: int = 10,
    ):
        options: dict = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            options.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=1800,
            )
        self.engine = create_async_engine(database_url, **options)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            mapped = _as_database_error(e)
            logger.error(f"{mapped.message}: {type(e).__name__}")
            raise mapped from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a pooled connection (readiness probe)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
        except DatabaseError:
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
