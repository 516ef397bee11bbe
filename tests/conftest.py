"""Pytest configuration for all tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from rowrewind.application.services.undo_service import UndoService
from rowrewind.core.config import Settings
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import configure_logging, get_logger
from rowrewind.infrastructure.persistence.database import DatabaseManager

logger = get_logger(__name__)

configure_logging(Settings(_env_file=None, environment="testing", log_level="WARNING"))


ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer VARCHAR(50) NOT NULL,
    status VARCHAR(20) DEFAULT 'new',
    total INTEGER
)
"""


class FakeClock:
    """Controllable capture clock; starts at 2024-01-01 12:00:00 UTC."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 1) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory database, ignoring any .env file."""
    return Settings(
        _env_file=None,
        environment="testing",
        database_url="sqlite+aiosqlite:///:memory:",
        log_level="WARNING",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine, settings: Settings) -> DatabaseManager:
    """Database manager over the test engine, with the orders table created."""
    manager = DatabaseManager(settings=settings, engine=engine)
    async with engine.begin() as conn:
        await conn.execute(text(ORDERS_DDL))
    return manager


@pytest.fixture
def hook_registry() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def undo(
    db: DatabaseManager,
    hook_registry: HookRegistry,
    settings: Settings,
    clock: FakeClock,
) -> UndoService:
    return UndoService(db_manager=db, hook_registry=hook_registry, settings=settings, clock=clock)


@pytest_asyncio.fixture
async def logged_orders(undo: UndoService) -> UndoService:
    """UndoService with logging enabled on the orders table."""
    result = await undo.enable_logging("orders")
    assert result, result.error_message
    return undo


async def execute(db: DatabaseManager, sql: str, params: dict[str, Any] | None = None) -> None:
    """Run raw SQL in its own transaction."""
    async with db.transaction() as session:
        await session.execute(text(sql), params or {})


async def fetch_all(db: DatabaseManager, table_name: str) -> list[dict[str, Any]]:
    """All rows of a table, ordered by id."""
    async with db.session() as session:
        result = await session.execute(text(f"SELECT * FROM {table_name} ORDER BY id"))
        return [dict(row) for row in result.mappings()]


async def fetch_log(db: DatabaseManager, table_name: str = "orders") -> list[dict[str, Any]]:
    """All rows of a table's change log, in entry order."""
    async with db.session() as session:
        result = await session.execute(text(f'SELECT * FROM {table_name}_log ORDER BY "__id"'))
        return [dict(row) for row in result.mappings()]
