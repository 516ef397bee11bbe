"""Repository for row operations on live tables.

Tables are reflected at call time rather than mapped to ORM models, so
rows are plain dicts. Every mutation fires the row hook events on the
same session as the statement; this is where change capture plugs in.
"""

from typing import Any

from sqlalchemy import and_, column, delete, insert, select, table, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import TableClause

from rowrewind.core.exceptions import CaptureError, MutationAbortedError, StorageError
from rowrewind.core.hooks.hook_events import HookEvent
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.change_log import TableSchema
from rowrewind.domain.entities.hook_context import HookContext
from rowrewind.infrastructure.persistence.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)


class RowRepository:
    """Row reads and mutations for any table with a single primary key.

    Mutations do not commit; the caller owns the transaction. Each mutation
    runs in a savepoint together with its hooks. When a hook registered with
    stop_on_error fails, or a hook aborts, the savepoint is rolled back and
    the mutation raises; the rest of the caller's transaction is untouched.

    Args:
        session: SQLAlchemy async session.
        hook_registry: Registry whose row events are fired. Without one,
            mutations fire no hooks at all (and are therefore not captured).
        context: Optional hook context passed to every hook.
    """

    def __init__(
        self,
        session: AsyncSession,
        hook_registry: HookRegistry | None = None,
        context: HookContext | None = None,
    ) -> None:
        self.session = session
        self.hook_registry = hook_registry
        self.context = context

    async def _schema(self, table_or_schema: str | TableSchema) -> TableSchema:
        if isinstance(table_or_schema, TableSchema):
            return table_or_schema
        return await SchemaIntrospector(self.session).get_schema(table_or_schema)

    @staticmethod
    def _clause(schema: TableSchema) -> TableClause:
        return table(schema.table_name, *[column(name) for name in schema.column_names])

    async def _trigger(
        self,
        event: str,
        schema: TableSchema,
        row: dict[str, Any],
        **extra: Any,
    ) -> dict[str, Any]:
        """Fire a row event; raise if a hook aborted or a fatal hook failed."""
        data: dict[str, Any] = {
            "session": self.session,
            "table": schema.table_name,
            "schema": schema,
            "row": row,
            **extra,
        }
        if self.hook_registry is None:
            return data

        result = await self.hook_registry.trigger(
            event,
            data,
            self.context,
            filters={"table": schema.table_name},
        )
        if result.aborted:
            raise MutationAbortedError(
                result.abort_message or f"{event} aborted on {schema.table_name}"
            )
        if not result.success:
            raise CaptureError(
                f"{event} failed on {schema.table_name}: " + "; ".join(result.errors)
            )
        return result.data or data

    async def get(self, table_or_schema: str | TableSchema, primary_key_value: Any) -> dict[str, Any] | None:
        """Fetch one row by primary key.

        Returns:
            Column name -> value in schema order, or None if not found.
        """
        schema = await self._schema(table_or_schema)
        clause = self._clause(schema)
        result = await self.session.execute(
            select(clause).where(clause.c[schema.primary_key] == primary_key_value)
        )
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def exists(self, table_or_schema: str | TableSchema, primary_key_value: Any) -> bool:
        """Check whether a row with this primary key exists."""
        schema = await self._schema(table_or_schema)
        clause = self._clause(schema)
        pk = clause.c[schema.primary_key]
        result = await self.session.execute(
            select(pk).where(pk == primary_key_value).limit(1)
        )
        return result.first() is not None

    async def find(
        self, table_or_schema: str | TableSchema, where: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch the rows matching equality filters (all rows when empty)."""
        schema = await self._schema(table_or_schema)
        clause = self._clause(schema)
        stmt = select(clause)
        if where:
            stmt = stmt.where(and_(*[clause.c[name] == value for name, value in where.items()]))
        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings()]

    async def insert(self, table_or_schema: str | TableSchema, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a row.

        The after-insert event carries the full stored row, read back inside
        the transaction so that defaults and generated keys are included.
        The statement and its hooks share a savepoint: when a hook fails,
        the row is gone again even if the caller goes on to commit.

        Returns:
            The stored row.
        """
        schema = await self._schema(table_or_schema)
        clause = self._clause(schema)
        pk = schema.primary_key

        async with self.session.begin_nested():
            data = await self._trigger(HookEvent.ON_ROW_BEFORE_INSERT, schema, dict(values))
            values = data["row"]

            stmt = insert(clause).values(values)
            primary_key_value = values.get(pk)
            if primary_key_value is None and self.session.get_bind().dialect.insert_returning:
                result = await self.session.execute(stmt.returning(clause.c[pk]))
                primary_key_value = result.scalar_one()
            else:
                result = await self.session.execute(stmt)
                if primary_key_value is None:
                    primary_key_value = result.lastrowid

            row = await self.get(schema, primary_key_value)
            if row is None:
                raise StorageError(
                    f"inserted row {primary_key_value!r} not found in {schema.table_name}"
                )

            await self._trigger(HookEvent.ON_ROW_AFTER_INSERT, schema, row)

        logger.debug(
            "Row inserted",
            table_name=schema.table_name,
            primary_key_value=primary_key_value,
        )
        return row

    async def update(
        self,
        table_or_schema: str | TableSchema,
        primary_key_value: Any,
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Update one row by primary key.

        The before-update event carries the full row as it was. The
        statement and its hooks share a savepoint.

        Returns:
            The updated row, or None if no such row exists.

        Raises:
            ValueError: If values would change the primary key.
        """
        schema = await self._schema(table_or_schema)
        pk = schema.primary_key
        if pk in values and values[pk] != primary_key_value:
            raise ValueError(
                f"changing the primary key of {schema.table_name} rows is not supported"
            )

        old_row = await self.get(schema, primary_key_value)
        if old_row is None:
            return None
        if not values:
            return old_row

        clause = self._clause(schema)
        async with self.session.begin_nested():
            data = await self._trigger(
                HookEvent.ON_ROW_BEFORE_UPDATE, schema, old_row, changes=dict(values)
            )
            changes = data.get("changes", values)

            await self.session.execute(
                update(clause).where(clause.c[pk] == primary_key_value).values(changes)
            )

            new_row = await self.get(schema, primary_key_value)
            await self._trigger(
                HookEvent.ON_ROW_AFTER_UPDATE, schema, new_row, changes=changes, previous=old_row
            )

        logger.debug(
            "Row updated",
            table_name=schema.table_name,
            primary_key_value=primary_key_value,
            columns=list(changes.keys()),
        )
        return new_row

    async def delete(self, table_or_schema: str | TableSchema, primary_key_value: Any) -> bool:
        """Delete one row by primary key.

        The before-delete event carries the full row as it was. The
        statement and its hooks share a savepoint.

        Returns:
            True if a row was deleted, False if none existed.
        """
        schema = await self._schema(table_or_schema)
        old_row = await self.get(schema, primary_key_value)
        if old_row is None:
            return False

        clause = self._clause(schema)
        async with self.session.begin_nested():
            await self._trigger(HookEvent.ON_ROW_BEFORE_DELETE, schema, old_row)

            await self.session.execute(
                delete(clause).where(clause.c[schema.primary_key] == primary_key_value)
            )

            await self._trigger(HookEvent.ON_ROW_AFTER_DELETE, schema, old_row)

        logger.debug(
            "Row deleted",
            table_name=schema.table_name,
            primary_key_value=primary_key_value,
        )
        return True

    async def update_where(
        self,
        table_or_schema: str | TableSchema,
        values: dict[str, Any],
        where: dict[str, Any] | None = None,
    ) -> int:
        """Update every row matching equality filters, one row at a time.

        Returns:
            Number of rows updated.
        """
        schema = await self._schema(table_or_schema)
        rows = await self.find(schema, where)
        for row in rows:
            await self.update(schema, row[schema.primary_key], values)
        return len(rows)

    async def delete_where(
        self,
        table_or_schema: str | TableSchema,
        where: dict[str, Any] | None = None,
    ) -> int:
        """Delete every row matching equality filters, one row at a time.

        Returns:
            Number of rows deleted.
        """
        schema = await self._schema(table_or_schema)
        rows = await self.find(schema, where)
        for row in rows:
            await self.delete(schema, row[schema.primary_key])
        return len(rows)
