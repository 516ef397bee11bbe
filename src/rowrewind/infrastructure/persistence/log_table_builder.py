"""Change log table builder.

Generates and creates the physical change log table of a logged table:
every source column plus the change metadata columns.
"""

from typing import Any, Iterable

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    false,
    text,
)
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateTable
from sqlalchemy.types import NullType

from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.change_log import ChangeKind, ColumnInfo, TableSchema
from rowrewind.domain.services.change_clock import TIMESTAMP_LENGTH

logger = get_logger(__name__)


# Change metadata columns added to every log table
TIMESTAMP_COLUMN = "__t"
INSERTED_FLAG_COLUMN = "__is_inserted"
UPDATED_FLAG_COLUMN = "__is_updated"
DELETED_FLAG_COLUMN = "__is_deleted"
ENTRY_ID_COLUMN = "__id"

FLAG_COLUMNS: dict[ChangeKind, str] = {
    ChangeKind.INSERTED: INSERTED_FLAG_COLUMN,
    ChangeKind.UPDATED: UPDATED_FLAG_COLUMN,
    ChangeKind.DELETED: DELETED_FLAG_COLUMN,
}

RESERVED_COLUMN_NAMES = (
    TIMESTAMP_COLUMN,
    INSERTED_FLAG_COLUMN,
    UPDATED_FLAG_COLUMN,
    DELETED_FLAG_COLUMN,
    ENTRY_ID_COLUMN,
)


class LogTableBuilder:
    """Builds and creates change log tables from live table schemas."""

    @classmethod
    def generate_log_table_name(cls, table_name: str, suffix: str = "_log") -> str:
        """Generate the log table name for a table.

        Args:
            table_name: The logged table name.
            suffix: Log table suffix from settings.

        Returns:
            The log table name.
        """
        return f"{table_name}{suffix}"

    @classmethod
    def find_reserved_collisions(cls, column_names: Iterable[str]) -> list[str]:
        """Return the column names that collide with the metadata columns."""
        reserved = set(RESERVED_COLUMN_NAMES)
        return [name for name in column_names if name in reserved]

    @classmethod
    def is_log_table(cls, column_names: Iterable[str]) -> bool:
        """Check whether a table carries every metadata column."""
        return set(RESERVED_COLUMN_NAMES).issubset(set(column_names))

    @classmethod
    def log_column_type(cls, column: ColumnInfo) -> Any:
        """Type to use for a source column in the log table."""
        if column.type is None or isinstance(column.type, NullType):
            return Text()
        return column.type

    @classmethod
    def build_log_table(cls, schema: TableSchema, suffix: str = "_log") -> Table:
        """Build the SQLAlchemy Table for a log table.

        Source columns keep their type but lose every constraint; only the
        primary-key column stays NOT NULL. The entry id uses AUTOINCREMENT on
        SQLite so that ids are never reused.

        Args:
            schema: The logged table's schema.
            suffix: Log table suffix from settings.

        Returns:
            An unbound Table on a private MetaData.
        """
        log_table_name = cls.generate_log_table_name(schema.table_name, suffix)

        columns = [
            Column(
                column.name,
                cls.log_column_type(column),
                nullable=column.name != schema.primary_key,
            )
            for column in schema.columns
        ]
        columns += [
            Column(TIMESTAMP_COLUMN, String(TIMESTAMP_LENGTH), nullable=False),
            Column(INSERTED_FLAG_COLUMN, Boolean, nullable=False, server_default=false()),
            Column(UPDATED_FLAG_COLUMN, Boolean, nullable=False, server_default=false()),
            Column(DELETED_FLAG_COLUMN, Boolean, nullable=False, server_default=false()),
            Column(ENTRY_ID_COLUMN, Integer, primary_key=True, autoincrement=True),
        ]

        indexes = [
            Index(f"ix_{log_table_name}_pk", schema.primary_key),
            Index(f"ix_{log_table_name}_t", TIMESTAMP_COLUMN),
            Index(
                f"ix_{log_table_name}_kind",
                INSERTED_FLAG_COLUMN,
                UPDATED_FLAG_COLUMN,
                DELETED_FLAG_COLUMN,
            ),
        ]

        return Table(
            log_table_name,
            MetaData(),
            *columns,
            *indexes,
            sqlite_autoincrement=True,
        )

    @classmethod
    def build_create_table_ddl(
        cls, schema: TableSchema, dialect: Dialect, suffix: str = "_log"
    ) -> str:
        """Render the CREATE TABLE statement of a log table for a dialect."""
        table = cls.build_log_table(schema, suffix)
        return str(CreateTable(table).compile(dialect=dialect)).strip()

    @classmethod
    async def create_log_table(
        cls, session: AsyncSession, schema: TableSchema, suffix: str = "_log"
    ) -> str:
        """Create the log table and its indexes.

        Args:
            session: SQLAlchemy async session (inside the caller's transaction).
            schema: The logged table's schema.
            suffix: Log table suffix from settings.

        Returns:
            The log table name.
        """
        table = cls.build_log_table(schema, suffix)

        logger.info(
            "Creating change log table",
            table_name=schema.table_name,
            log_table=table.name,
        )

        def _create(sync_conn: Connection) -> None:
            table.metadata.create_all(sync_conn)

        connection = await session.connection()
        await connection.run_sync(_create)

        logger.debug("Change log table created", log_table=table.name)
        return table.name

    @classmethod
    def build_add_column_ddl(
        cls, log_table_name: str, columns: Iterable[ColumnInfo], dialect: Dialect
    ) -> list[str]:
        """Build ALTER TABLE ADD COLUMN statements for new source columns.

        Added columns are always nullable: older snapshots have no value
        for them.
        """
        quote = dialect.identifier_preparer.quote
        ddl_statements = []
        for column in columns:
            sql_type = cls.log_column_type(column).compile(dialect=dialect)
            ddl_statements.append(
                f"ALTER TABLE {quote(log_table_name)} ADD COLUMN {quote(column.name)} {sql_type}"
            )
        return ddl_statements

    @classmethod
    async def add_columns(
        cls, session: AsyncSession, log_table_name: str, columns: list[ColumnInfo]
    ) -> None:
        """Execute ALTER TABLE to add source columns missing from a log table."""
        if not columns:
            return

        dialect = session.get_bind().dialect
        ddl_statements = cls.build_add_column_ddl(log_table_name, columns, dialect)

        logger.info(
            "Adding columns to change log table",
            log_table=log_table_name,
            columns=[column.name for column in columns],
        )

        for ddl in ddl_statements:
            await session.execute(text(ddl))
            logger.debug("Column added", ddl=ddl)

    @classmethod
    async def drop_log_table(cls, session: AsyncSession, log_table_name: str) -> None:
        """Drop a log table if it exists."""
        dialect = session.get_bind().dialect
        ddl = f"DROP TABLE IF EXISTS {dialect.identifier_preparer.quote(log_table_name)}"

        logger.info("Dropping change log table", log_table=log_table_name)
        await session.execute(text(ddl))
        logger.debug("Change log table dropped", ddl=ddl)
