"""Async engine and session scopes.

One DatabaseManager owns one AsyncEngine and its session factory. Row
mutations, capture and DDL all run in sessions handed out here; the
caller picks the scope (plain session or one transaction).
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rowrewind.core.config import Settings, get_settings
from rowrewind.core.logging import get_logger

logger = get_logger(__name__)


def _engine_options(settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.db_echo}
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        database = url.database or ""
        if database and not database.startswith(":memory:") and not database.startswith("file:"):
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
        )
    return options


def _sqlite_set_autocommit(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.isolation_level = None


def _sqlite_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN")


def use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself on SQLite connections.

    The sqlite3 driver otherwise opens transactions on its own, only before
    DML, so a SAVEPOINT issued first becomes the outermost transaction and
    its RELEASE commits. With explicit BEGIN, savepoints nest inside the
    session's transaction and DDL rolls back with it.

    Only affects connections opened after the call. Safe to call twice.
    """
    sync_engine = engine.sync_engine
    if sync_engine.dialect.name != "sqlite":
        return
    if not event.contains(sync_engine, "connect", _sqlite_set_autocommit):
        event.listen(sync_engine, "connect", _sqlite_set_autocommit)
    if not event.contains(sync_engine, "begin", _sqlite_begin):
        event.listen(sync_engine, "begin", _sqlite_begin)


class DatabaseManager:
    """Owns the engine and hands out sessions.

    Args:
        settings: Source of the database URL and pool options; loaded from
            the environment when omitted.
        engine: Ready-made engine to use instead of building one, e.g. an
            in-memory SQLite engine in tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._engine = engine
        if engine is not None:
            use_explicit_sqlite_transactions(engine)
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """The engine, created on first access."""
        if self._engine is None:
            self._engine = create_async_engine(
                self.settings.database_url, **_engine_options(self.settings)
            )
            use_explicit_sqlite_transactions(self._engine)
            logger.info(
                "Database engine created",
                database_url=self._engine.url.render_as_string(hide_password=True),
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """A session without an explicit transaction; rolled back on error.

        Example:
            async with db.session() as session:
                history = await LogStoreRepository(session, "orders").history(1)
        """
        async with self.session_factory() as session:
            try:
                yield session
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """A session inside one transaction.

        Commits on normal exit, rolls back on any exception, cancellation
        included. Captured log records share this transaction.

        Example:
            async with db.transaction() as session:
                await undo.rows(session).update("orders", 1, {"status": "paid"})
        """
        async with self.session() as session:
            async with session.begin():
                yield session

    async def check_connection(self) -> bool:
        """Run ``SELECT 1``; False (and an error log) when it fails."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database connection check failed", error=str(e))
            return False
        return True

    async def disconnect(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")


_db_manager: DatabaseManager | None = None


def get_db_manager() -> DatabaseManager:
    """Process-wide manager built from get_settings()."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def close_database() -> None:
    global _db_manager
    if _db_manager is not None:
        await _db_manager.disconnect()
        _db_manager = None
