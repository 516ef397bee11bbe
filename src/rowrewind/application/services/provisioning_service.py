"""Service for enabling and disabling change logging on tables.

Enabling validates the table, creates (or upgrades) its change log table
and attaches the capture hooks; disabling detaches the hooks and drops
the log.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from rowrewind.core.exceptions import SchemaError
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import get_logger
from rowrewind.infrastructure.hooks.capture_hooks import CaptureHooks
from rowrewind.infrastructure.persistence.log_table_builder import LogTableBuilder
from rowrewind.infrastructure.persistence.repositories.log_store_repository import (
    LogStoreRepository,
)
from rowrewind.infrastructure.persistence.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)


class ProvisioningService:
    """Creates and destroys change logs and their capture hooks.

    DDL runs on the session passed in; the caller owns the transaction.
    Hook attachment is process-local, see attach_existing() for restarts.
    """

    def __init__(
        self,
        hook_registry: HookRegistry,
        capture_hooks: CaptureHooks,
        suffix: str = "_log",
    ) -> None:
        self.hook_registry = hook_registry
        self.capture_hooks = capture_hooks
        self.suffix = suffix
        self._hook_ids: dict[str, list[str]] = {}

    async def enable_logging(self, session: AsyncSession, table_name: str) -> str:
        """Enable change logging on a table.

        An existing log table is kept, so history survives a re-enable;
        source columns added since are appended to it.

        Args:
            session: Database session.
            table_name: The table to log.

        Returns:
            The log table name.

        Raises:
            SchemaError: If the table is missing, lacks a single primary key,
                uses a reserved column name, or its log table name is taken
                by a table that is not a change log. Nothing is created.
        """
        introspector = SchemaIntrospector(session)
        schema = await introspector.get_schema(table_name)

        collisions = LogTableBuilder.find_reserved_collisions(schema.column_names)
        if collisions:
            raise SchemaError(
                f"can't enable logging for the table {table_name}. "
                f"(reserved column names exist: {', '.join(collisions)})"
            )

        log_store = LogStoreRepository.for_schema(session, schema, self.suffix)
        if await log_store.exists():
            log_columns = await introspector.get_columns(log_store.log_table_name)
            if not LogTableBuilder.is_log_table(column.name for column in log_columns):
                raise SchemaError(
                    f"can't enable logging for the table {table_name}. "
                    f"({log_store.log_table_name} exists and is not a change log table)"
                )
            added = await log_store.add_missing_columns(schema)
            logger.info(
                "Reusing existing change log table",
                table_name=table_name,
                log_table=log_store.log_table_name,
                added_columns=added,
            )
        else:
            await LogTableBuilder.create_log_table(session, schema, self.suffix)

        self.attach(table_name)

        logger.info(
            "Logging enabled",
            table_name=table_name,
            log_table=log_store.log_table_name,
        )
        return log_store.log_table_name

    async def disable_logging(self, session: AsyncSession, table_name: str) -> None:
        """Detach the capture hooks and drop the table's change log.

        Safe to call when logging was never enabled.
        """
        self.detach(table_name)
        await LogStoreRepository(session, table_name, self.suffix).drop_all()
        logger.info("Logging disabled", table_name=table_name)

    def attach(self, table_name: str) -> None:
        """Register the capture hooks for a table unless already attached."""
        if table_name in self._hook_ids:
            return
        self._hook_ids[table_name] = self.capture_hooks.register(self.hook_registry, table_name)

    def detach(self, table_name: str) -> None:
        """Unregister the capture hooks for a table, if attached."""
        for hook_id in self._hook_ids.pop(table_name, []):
            self.hook_registry.unregister(hook_id)

    def is_attached(self, table_name: str) -> bool:
        return table_name in self._hook_ids

    async def is_logging_enabled(self, session: AsyncSession, table_name: str) -> bool:
        """Logging is enabled when the log table exists and hooks are attached."""
        if not self.is_attached(table_name):
            return False
        return await LogStoreRepository(session, table_name, self.suffix).exists()

    async def list_logged_tables(self, session: AsyncSession) -> list[str]:
        """Tables that have a well-formed change log table."""
        introspector = SchemaIntrospector(session)
        table_names = await introspector.list_tables()
        existing = set(table_names)

        logged = []
        for name in table_names:
            log_table_name = LogTableBuilder.generate_log_table_name(name, self.suffix)
            if log_table_name not in existing:
                continue
            log_columns = await introspector.get_columns(log_table_name)
            if LogTableBuilder.is_log_table(column.name for column in log_columns):
                logged.append(name)
        return sorted(logged)

    async def attach_existing(self, session: AsyncSession) -> list[str]:
        """Attach capture hooks for every table that already has a change log.

        Returns:
            The tables whose hooks are now attached.
        """
        tables = await self.list_logged_tables(session)
        for table_name in tables:
            self.attach(table_name)
        logger.info("Attached capture hooks for existing change logs", tables=tables)
        return tables
