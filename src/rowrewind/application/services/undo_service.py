"""Public entry point for change logging and revert.

UndoService wires the pieces together: a database manager, one hook
registry shared by every row repository it hands out, the capture hooks,
provisioning and the revert engine. Every operation returns a result
object; the message of the most recent failure is also kept for callers
that only check a boolean.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rowrewind.application.services.provisioning_service import ProvisioningService
from rowrewind.application.services.revert_engine import RevertEngine, RevertResult
from rowrewind.core.config import Settings, get_settings
from rowrewind.core.exceptions import RowRewindError
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.change_log import LogRecord, RevertWindow
from rowrewind.domain.entities.hook_context import HookContext
from rowrewind.domain.services.change_clock import Clock, parse_timestamp, utc_now
from rowrewind.infrastructure.hooks.capture_hooks import CaptureHooks
from rowrewind.infrastructure.persistence.database import DatabaseManager
from rowrewind.infrastructure.persistence.repositories.log_store_repository import (
    LogStoreRepository,
)
from rowrewind.infrastructure.persistence.repositories.row_repository import RowRepository

logger = get_logger(__name__)


@dataclass
class OperationResult:
    """Outcome of enable/disable. Truthy iff the operation succeeded."""

    success: bool
    error_message: str = ""

    def __bool__(self) -> bool:
        return self.success


class UndoService:
    """Enable, disable and revert change logging on tables.

    Args:
        db_manager: Database manager; built from settings when omitted.
        hook_registry: Registry fired by rows(); a private one is created
            when omitted.
        settings: Settings; loaded from the environment when omitted.
        clock: Source of capture times, injectable for tests.

    Example:
        undo = UndoService()
        await undo.enable_logging("orders")
        async with undo.db.transaction() as session:
            await undo.rows(session).update("orders", 1, {"status": "paid"})
        await undo.revert_changes("orders", start_time="2024-01-01 00:00:00")
    """

    def __init__(
        self,
        db_manager: DatabaseManager | None = None,
        hook_registry: HookRegistry | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or (db_manager.settings if db_manager else get_settings())
        self.db = db_manager or DatabaseManager(self.settings)
        self.hook_registry = hook_registry or HookRegistry()
        suffix = self.settings.log_table_suffix

        self.capture_hooks = CaptureHooks(clock=clock or utc_now, suffix=suffix)
        self.provisioning = ProvisioningService(self.hook_registry, self.capture_hooks, suffix)
        self.revert_engine = RevertEngine(
            self.db.session_factory,
            hook_registry=self.hook_registry,
            suffix=suffix,
            strict=self.settings.strict_consistency,
        )
        self._last_error_message = ""

    def _record(self, success: bool, error_message: str = "") -> None:
        self._last_error_message = "" if success else error_message

    async def enable_logging(self, table_name: str) -> OperationResult:
        """Create the table's change log and start capturing its mutations."""
        was_attached = self.provisioning.is_attached(table_name)
        try:
            async with self.db.transaction() as session:
                await self.provisioning.enable_logging(session, table_name)
        except (RowRewindError, SQLAlchemyError) as e:
            if not was_attached:
                self.provisioning.detach(table_name)
            message = e.message if isinstance(e, RowRewindError) else str(e)
            logger.error("Enable logging failed", table_name=table_name, error=message)
            self._record(False, message)
            return OperationResult(success=False, error_message=message)

        self._record(True)
        return OperationResult(success=True)

    async def disable_logging(self, table_name: str) -> OperationResult:
        """Stop capturing and drop the table's change log."""
        try:
            async with self.db.transaction() as session:
                await self.provisioning.disable_logging(session, table_name)
        except (RowRewindError, SQLAlchemyError) as e:
            message = e.message if isinstance(e, RowRewindError) else str(e)
            logger.error("Disable logging failed", table_name=table_name, error=message)
            self._record(False, message)
            return OperationResult(success=False, error_message=message)

        self._record(True)
        return OperationResult(success=True)

    async def revert_changes(
        self,
        table_name: str,
        start_time: str | datetime | None = None,
        end_time: str | datetime | None = None,
        include_insert: bool = True,
        include_update: bool = True,
        include_delete: bool = True,
        timeout: float | None = None,
    ) -> RevertResult:
        """Undo the table's captured changes inside a time window.

        Args:
            table_name: The logged table.
            start_time: Inclusive lower bound (UTC); None means open.
            end_time: Inclusive upper bound (UTC); None means open.
            include_insert: Undo inserts (delete the rows).
            include_update: Undo updates (restore prior values).
            include_delete: Undo deletes (recreate the rows).
            timeout: Deadline in seconds; defaults to revert_timeout_seconds.

        Returns:
            RevertResult, truthy on success.
        """
        try:
            window = RevertWindow.from_flags(
                start_time=parse_timestamp(start_time),
                end_time=parse_timestamp(end_time),
                include_insert=include_insert,
                include_update=include_update,
                include_delete=include_delete,
            )
        except ValueError as e:
            result = RevertResult.failure(table_name, str(e))
        else:
            if timeout is None:
                timeout = self.settings.revert_timeout_seconds
            result = await self.revert_engine.revert(table_name, window, timeout=timeout)

        self._record(result.success, result.error_message)
        return result

    def get_last_error_message(self) -> str:
        """Message of the most recent failed call, or "" if it succeeded."""
        return self._last_error_message

    async def is_logging_enabled(self, table_name: str) -> bool:
        async with self.db.session() as session:
            return await self.provisioning.is_logging_enabled(session, table_name)

    async def list_logged_tables(self) -> list[str]:
        async with self.db.session() as session:
            return await self.provisioning.list_logged_tables(session)

    async def attach_existing(self) -> list[str]:
        """Resume capturing for tables logged by a previous process."""
        async with self.db.session() as session:
            return await self.provisioning.attach_existing(session)

    async def get_row_history(self, table_name: str, primary_key_value: Any) -> list[LogRecord]:
        """All captured snapshots of one row, oldest first."""
        async with self.db.session() as session:
            log_store = LogStoreRepository(session, table_name, self.settings.log_table_suffix)
            return await log_store.history(primary_key_value)

    def rows(self, session: AsyncSession, context: HookContext | None = None) -> RowRepository:
        """Row repository whose mutations are captured for logged tables."""
        return RowRepository(session, self.hook_registry, context)

    async def close(self) -> None:
        await self.db.disconnect()
