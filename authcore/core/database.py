"""Async database engine, session factory and unit of work.

Configures the SQLAlchemy async engine and provides ``run_in_transaction``,
the single entry point services use to execute a multi-step operation
atomically.

SQLite notes:
- pysqlite never emits BEGIN before a SELECT, so a read-check-write
  sequence is not isolated by default. The engine takes over transaction
  control and opens every transaction with BEGIN IMMEDIATE, which makes
  concurrent units of work queue on the database write lock.
- Foreign keys are off unless enabled per connection; user_tokens relies
  on ON DELETE CASCADE.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds a SQLite connection waits on a locked database before failing
_SQLITE_BUSY_TIMEOUT = 30

UnitOfWork = Callable[[AsyncSession], Awaitable[T]]


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """Enable foreign keys and serialised transactions on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        # Disable pysqlite's own BEGIN handling; _on_begin emits it instead
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``.

    Args:
        url: SQLAlchemy async URL (postgresql+asyncpg or sqlite+aiosqlite).
        echo: Log every SQL statement.

    Returns:
        Configured AsyncEngine.
    """
    is_sqlite = url.startswith("sqlite")
    connect_args = {"timeout": _SQLITE_BUSY_TIMEOUT} if is_sqlite else {}
    engine = create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    if is_sqlite:
        _install_sqlite_hooks(engine)
    logger.debug("Created database engine for %s", engine.url.get_backend_name())
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: UnitOfWork[T],
) -> T:
    """Run ``work`` as one atomic transaction.

    Commits when ``work`` returns; rolls back and re-raises when it raises.
    Nothing written inside a failed unit of work is observable afterwards.

    Args:
        session_factory: Factory producing sessions bound to the store.
        work: Coroutine function receiving the session.

    Returns:
        Whatever ``work`` returned.
    """
    async with session_factory() as db:
        async with db.begin():
            return await work(db)
