"""Revert engine.

Undoes a window of captured changes on one table. The selected snapshots
are grouped by primary key, the most recent one per key (highest entry
id) is kept, and each kept snapshot drives exactly one corrective action:
- an "inserted" snapshot deletes the live row;
- an "updated" or "deleted" snapshot restores the row's captured values,
  updating the live row when it exists and re-inserting it otherwise.

Selection and correction run in one transaction; any failure rolls back
every corrective action of the call. Corrective writes bypass the hook
registry, so a revert never adds records to the change log.
"""

import asyncio
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rowrewind.core.exceptions import (
    ConsistencyError,
    MutationAbortedError,
    RowRewindError,
    StorageError,
)
from rowrewind.core.hooks.hook_events import HookEvent
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import LoggingContext, get_logger
from rowrewind.domain.entities.change_log import ChangeKind, RevertWindow, TableSchema
from rowrewind.domain.services.revert_planner import (
    CorrectiveAction,
    CorrectiveActionType,
    aselect_representatives,
    plan_revert,
)
from rowrewind.infrastructure.persistence.repositories.log_store_repository import (
    LogStoreRepository,
)
from rowrewind.infrastructure.persistence.repositories.row_repository import RowRepository
from rowrewind.infrastructure.persistence.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)


@dataclass
class RevertResult:
    """Outcome of one revert call.

    Truthy iff the revert succeeded. Counts describe corrective actions
    that were applied (and committed).
    """

    success: bool
    table_name: str
    deleted: int = 0
    updated: int = 0
    inserted: int = 0
    error_message: str = ""

    def __bool__(self) -> bool:
        return self.success

    @property
    def actions(self) -> int:
        return self.deleted + self.updated + self.inserted

    @classmethod
    def failure(cls, table_name: str, error_message: str) -> "RevertResult":
        return cls(success=False, table_name=table_name, error_message=error_message)


class RevertEngine:
    """Applies reverts in their own session and transaction.

    Args:
        session_factory: Factory for the revert's session.
        hook_registry: Registry used only for revert events; corrective
            row writes never go through it.
        suffix: Log table suffix from settings.
        strict: Raise ConsistencyError when a snapshot contradicts the
            live row state instead of falling back to update-or-insert.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hook_registry: HookRegistry | None = None,
        suffix: str = "_log",
        strict: bool = False,
    ) -> None:
        self.session_factory = session_factory
        self.hook_registry = hook_registry
        self.suffix = suffix
        self.strict = strict

    async def revert(
        self,
        table_name: str,
        window: RevertWindow,
        timeout: float | None = None,
    ) -> RevertResult:
        """Revert the changes of a table that fall inside a window.

        Args:
            table_name: The logged table.
            window: Time range and change kinds to undo.
            timeout: Optional deadline in seconds; on expiry nothing is applied.

        Returns:
            RevertResult; on failure no corrective action is kept.
        """
        revert_id = f"rv_{uuid.uuid4().hex[:12]}"
        with LoggingContext(revert_id=revert_id, table_name=table_name):
            logger.info(
                "Revert requested",
                start_time=window.start_time.isoformat() if window.start_time else None,
                end_time=window.end_time.isoformat() if window.end_time else None,
                change_kinds=sorted(kind.value for kind in window.change_kinds),
            )
            try:
                if timeout is None:
                    return await self._revert(table_name, window)
                return await asyncio.wait_for(self._revert(table_name, window), timeout)
            except asyncio.TimeoutError:
                logger.warning("Revert timed out, rolled back", timeout=timeout)
                return RevertResult.failure(
                    table_name,
                    f"revert of {table_name} timed out after {timeout}s; no changes were applied",
                )

    async def _revert(self, table_name: str, window: RevertWindow) -> RevertResult:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    result = await self._apply(session, table_name, window)
            except RowRewindError as e:
                logger.error("Revert failed, rolled back", error=e.message)
                return RevertResult.failure(table_name, e.message)
            except SQLAlchemyError as e:
                logger.error("Revert failed, rolled back", error=str(e))
                return RevertResult.failure(table_name, str(e))

        logger.info(
            "Revert applied",
            deleted=result.deleted,
            updated=result.updated,
            inserted=result.inserted,
        )
        return result

    async def _apply(
        self, session: AsyncSession, table_name: str, window: RevertWindow
    ) -> RevertResult:
        schema = await SchemaIntrospector(session).get_schema(table_name)
        log_store = LogStoreRepository.for_schema(session, schema, self.suffix)
        if not await log_store.exists():
            raise StorageError(f"logging is not enabled for table {table_name}")

        representatives = await aselect_representatives(
            log_store.query_window(window.start_time, window.end_time, window.change_kinds)
        )
        actions = plan_revert(representatives)

        logger.debug(
            "Revert planned",
            representative_count=len(representatives),
            action_count=len(actions),
        )

        # No hook registry: corrective writes must not be captured
        rows = RowRepository(session)
        result = RevertResult(success=True, table_name=table_name)
        for action in actions:
            await self._apply_action(rows, schema, action, result)

        if self.hook_registry is not None:
            hook_result = await self.hook_registry.trigger(
                HookEvent.ON_REVERT_AFTER_APPLY,
                {"session": session, "table": table_name, "result": result},
                filters={"table": table_name},
            )
            if hook_result.aborted:
                raise MutationAbortedError(
                    hook_result.abort_message or f"revert of {table_name} aborted"
                )
            if not hook_result.success:
                raise RowRewindError("; ".join(hook_result.errors))

        return result

    async def _apply_action(
        self,
        rows: RowRepository,
        schema: TableSchema,
        action: CorrectiveAction,
        result: RevertResult,
    ) -> None:
        record = action.record
        pk_value = action.primary_key_value

        if action.action is CorrectiveActionType.DELETE:
            deleted = await rows.delete(schema, pk_value)
            if deleted:
                result.deleted += 1
            elif self.strict:
                raise ConsistencyError(
                    f"row {pk_value!r} of {schema.table_name} was inserted "
                    f"(entry {record.entry_id}) but no longer exists"
                )
            return

        # Columns dropped from the live table since the snapshot are skipped
        current_columns = set(schema.column_names)
        values = {
            name: value
            for name, value in record.column_values.items()
            if name in current_columns
        }

        exists = await rows.exists(schema, pk_value)
        if self.strict:
            if record.change_kind is ChangeKind.UPDATED and not exists:
                raise ConsistencyError(
                    f"row {pk_value!r} of {schema.table_name} was updated "
                    f"(entry {record.entry_id}) but no longer exists"
                )
            if record.change_kind is ChangeKind.DELETED and exists:
                raise ConsistencyError(
                    f"row {pk_value!r} of {schema.table_name} was deleted "
                    f"(entry {record.entry_id}) but exists again"
                )

        if exists:
            await rows.update(
                schema,
                pk_value,
                {name: values[name] for name in schema.non_key_columns if name in values},
            )
            result.updated += 1
        else:
            await rows.insert(schema, values)
            result.inserted += 1
