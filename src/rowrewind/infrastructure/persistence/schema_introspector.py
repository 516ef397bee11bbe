"""Schema introspection for live tables.

Reads column names (in schema order) and the primary key of a table via
SQLAlchemy reflection. Nothing is cached: every call reflects again so
that schema changes are always seen.
"""

from typing import Any

from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession

from rowrewind.core.exceptions import SchemaError
from rowrewind.domain.entities.change_log import ColumnInfo, TableSchema


class SchemaIntrospector:
    """Reflects tables through the session's connection."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the introspector with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def _run(self, fn: Any) -> Any:
        connection = await self.session.connection()
        return await connection.run_sync(fn)

    async def table_exists(self, table_name: str) -> bool:
        """Check whether a table exists."""

        def _has_table(sync_conn: Connection) -> bool:
            return inspect(sync_conn).has_table(table_name)

        return await self._run(_has_table)

    async def list_tables(self) -> list[str]:
        """List all table names in the default schema."""

        def _table_names(sync_conn: Connection) -> list[str]:
            return inspect(sync_conn).get_table_names()

        return await self._run(_table_names)

    async def get_columns(self, table_name: str) -> tuple[ColumnInfo, ...]:
        """Get the columns of a table in schema order.

        Raises:
            SchemaError: If the table does not exist.
        """

        def _columns(sync_conn: Connection) -> list[dict[str, Any]] | None:
            inspector = inspect(sync_conn)
            if not inspector.has_table(table_name):
                return None
            return inspector.get_columns(table_name)

        columns = await self._run(_columns)
        if columns is None:
            raise SchemaError(f"table {table_name} doesn't exist")

        return tuple(
            ColumnInfo(
                name=column["name"],
                type=column["type"],
                nullable=column.get("nullable", True),
            )
            for column in columns
        )

    async def get_schema(self, table_name: str) -> TableSchema:
        """Get the columns and single primary key of a table.

        Raises:
            SchemaError: If the table does not exist, has no primary key
                or has a composite primary key.
        """

        def _reflect(sync_conn: Connection) -> tuple[list[dict[str, Any]], list[str]] | None:
            inspector = inspect(sync_conn)
            if not inspector.has_table(table_name):
                return None
            columns = inspector.get_columns(table_name)
            pk = inspector.get_pk_constraint(table_name) or {}
            return columns, list(pk.get("constrained_columns") or [])

        reflected = await self._run(_reflect)
        if reflected is None:
            raise SchemaError(f"table {table_name} doesn't exist")

        columns, pk_columns = reflected
        if not pk_columns:
            raise SchemaError(f"primary column doesn't exist on table {table_name}")
        if len(pk_columns) > 1:
            raise SchemaError(
                f"table {table_name} has a composite primary key "
                f"({', '.join(pk_columns)}); exactly one primary key column is required"
            )

        return TableSchema(
            table_name=table_name,
            columns=tuple(
                ColumnInfo(
                    name=column["name"],
                    type=column["type"],
                    nullable=column.get("nullable", True),
                )
                for column in columns
            ),
            primary_key=pk_columns[0],
        )
