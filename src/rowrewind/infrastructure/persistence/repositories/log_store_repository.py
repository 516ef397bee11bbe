"""Repository for a table's change log.

The log is append-only: records are added by the capture hooks and only
ever removed by dropping the whole log table when logging is disabled.
"""

from collections.abc import AsyncIterator
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, and_, column, func, insert, or_, select, table, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import TableClause

from rowrewind.core.exceptions import StorageError
from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.change_log import ChangeKind, LogRecord, TableSchema
from rowrewind.domain.services.change_clock import TIMESTAMP_FORMAT, format_timestamp
from rowrewind.infrastructure.persistence.log_table_builder import (
    ENTRY_ID_COLUMN,
    FLAG_COLUMNS,
    RESERVED_COLUMN_NAMES,
    TIMESTAMP_COLUMN,
    LogTableBuilder,
)
from rowrewind.infrastructure.persistence.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)


class LogStoreRepository:
    """Change log operations for one logged table.

    Args:
        session: SQLAlchemy async session.
        table_name: The logged (source) table.
        suffix: Log table suffix from settings.
        primary_key: Source primary-key column; reflected from the source
            table when a read needs it and it was not given.
    """

    def __init__(
        self,
        session: AsyncSession,
        table_name: str,
        suffix: str = "_log",
        primary_key: str | None = None,
    ) -> None:
        self.session = session
        self.table_name = table_name
        self.log_table_name = LogTableBuilder.generate_log_table_name(table_name, suffix)
        self._primary_key = primary_key

    @classmethod
    def for_schema(
        cls, session: AsyncSession, schema: TableSchema, suffix: str = "_log"
    ) -> "LogStoreRepository":
        return cls(session, schema.table_name, suffix, schema.primary_key)

    async def exists(self) -> bool:
        """Check whether the log table exists."""
        return await SchemaIntrospector(self.session).table_exists(self.log_table_name)

    async def _source_columns(self) -> tuple[str, ...]:
        columns = await SchemaIntrospector(self.session).get_columns(self.log_table_name)
        reserved = set(RESERVED_COLUMN_NAMES)
        return tuple(c.name for c in columns if c.name not in reserved)

    async def _resolve_primary_key(self) -> str:
        if self._primary_key is None:
            schema = await SchemaIntrospector(self.session).get_schema(self.table_name)
            self._primary_key = schema.primary_key
        return self._primary_key

    def _clause(self, source_columns: tuple[str, ...]) -> TableClause:
        return table(
            self.log_table_name,
            *[column(name) for name in source_columns],
            column(TIMESTAMP_COLUMN),
            *[column(flag, Boolean) for flag in FLAG_COLUMNS.values()],
            column(ENTRY_ID_COLUMN),
        )

    def _to_record(
        self, row: dict[str, Any], source_columns: tuple[str, ...], primary_key: str
    ) -> LogRecord:
        kinds = [kind for kind, flag in FLAG_COLUMNS.items() if row[flag]]
        if len(kinds) != 1:
            raise StorageError(
                f"change log {self.log_table_name} entry {row[ENTRY_ID_COLUMN]} "
                f"has {len(kinds)} change kinds set"
            )
        captured_at = datetime.strptime(row[TIMESTAMP_COLUMN], TIMESTAMP_FORMAT).replace(
            tzinfo=timezone.utc
        )
        return LogRecord(
            primary_key_value=row[primary_key],
            column_values={name: row[name] for name in source_columns},
            change_kind=kinds[0],
            captured_at=captured_at,
            entry_id=row[ENTRY_ID_COLUMN],
        )

    async def append(self, record: LogRecord) -> LogRecord:
        """Append one record.

        Args:
            record: The snapshot; entry_id is assigned here unless already set.

        Returns:
            The record with its entry_id.

        Raises:
            StorageError: If the insert fails.
        """
        source_columns = tuple(record.column_values.keys())
        clause = self._clause(source_columns)

        values: dict[str, Any] = dict(record.column_values)
        values[TIMESTAMP_COLUMN] = format_timestamp(record.captured_at)
        for kind, flag in FLAG_COLUMNS.items():
            values[flag] = kind is record.change_kind
        if record.entry_id is not None:
            values[ENTRY_ID_COLUMN] = record.entry_id

        stmt = insert(clause).values(values)
        try:
            if self.session.get_bind().dialect.insert_returning:
                result = await self.session.execute(
                    stmt.returning(clause.c[ENTRY_ID_COLUMN])
                )
                entry_id = result.scalar_one()
            else:
                result = await self.session.execute(stmt)
                entry_id = record.entry_id or result.lastrowid
        except SQLAlchemyError as e:
            raise StorageError(
                f"failed to append to change log {self.log_table_name}: {e}"
            ) from e

        logger.debug(
            "Change captured",
            log_table=self.log_table_name,
            entry_id=entry_id,
            change_kind=record.change_kind.value,
            primary_key_value=record.primary_key_value,
        )
        return replace(record, entry_id=entry_id)

    async def query_window(
        self,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        change_kinds: frozenset[ChangeKind] | set[ChangeKind] = frozenset(ChangeKind),
    ) -> AsyncIterator[LogRecord]:
        """Yield records whose kind is included and whose capture time lies
        within the inclusive [start_time, end_time] range.

        An unset bound is open; both unset means no time filtering. Results
        are not ordered.

        Raises:
            StorageError: If the query fails.
        """
        if not change_kinds:
            return

        source_columns = await self._source_columns()
        primary_key = await self._resolve_primary_key()
        clause = self._clause(source_columns)

        conditions = [or_(*[clause.c[FLAG_COLUMNS[kind]] == true() for kind in change_kinds])]
        if start_time is not None:
            conditions.append(clause.c[TIMESTAMP_COLUMN] >= format_timestamp(start_time))
        if end_time is not None:
            conditions.append(clause.c[TIMESTAMP_COLUMN] <= format_timestamp(end_time))

        try:
            result = await self.session.execute(select(clause).where(and_(*conditions)))
        except SQLAlchemyError as e:
            raise StorageError(f"failed to read change log {self.log_table_name}: {e}") from e

        for row in result.mappings():
            yield self._to_record(row, source_columns, primary_key)

    async def history(self, primary_key_value: Any) -> list[LogRecord]:
        """All records for one primary key, oldest first."""
        source_columns = await self._source_columns()
        primary_key = await self._resolve_primary_key()
        clause = self._clause(source_columns)

        stmt = (
            select(clause)
            .where(clause.c[primary_key] == primary_key_value)
            .order_by(clause.c[ENTRY_ID_COLUMN])
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"failed to read change log {self.log_table_name}: {e}") from e

        return [self._to_record(row, source_columns, primary_key) for row in result.mappings()]

    async def count(self) -> int:
        """Total number of records in the log."""
        clause = table(self.log_table_name)
        try:
            result = await self.session.execute(select(func.count()).select_from(clause))
        except SQLAlchemyError as e:
            raise StorageError(f"failed to read change log {self.log_table_name}: {e}") from e
        return result.scalar_one()

    async def add_missing_columns(self, schema: TableSchema) -> list[str]:
        """Add source columns that appeared after logging was enabled.

        Returns:
            Names of the columns that were added.
        """
        existing = set(await self._source_columns())
        missing = [c for c in schema.columns if c.name not in existing]
        await LogTableBuilder.add_columns(self.session, self.log_table_name, missing)
        return [c.name for c in missing]

    async def drop_all(self) -> None:
        """Drop the whole log. Irreversible."""
        await LogTableBuilder.drop_log_table(self.session, self.log_table_name)
