"""Change capture hooks.

These hooks write one change log record per row mutation of a logged
table. They run inline on the mutation's session, so a record is written
in the same transaction as the change it describes, and they are
registered with stop_on_error so that a failed capture fails the
mutation:
- after insert: the new row, kind "inserted"
- before update: the row as it was, kind "updated"
- before delete: the row as it was, kind "deleted"

Columns added to the source table after logging was enabled are added to
the log table on the next capture.
"""

from typing import Any, Optional

from rowrewind.core.hooks.hook_events import HookEvent
from rowrewind.core.hooks.hook_registry import HookRegistry
from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.change_log import ChangeKind, LogRecord, TableSchema
from rowrewind.domain.entities.hook_context import HookContext
from rowrewind.domain.services.change_clock import Clock, to_utc, utc_now
from rowrewind.infrastructure.persistence.repositories.log_store_repository import (
    LogStoreRepository,
)

logger = get_logger(__name__)

# Run before user hooks registered with the default priority of 0
CAPTURE_HOOK_PRIORITY = 100

CAPTURE_EVENTS: dict[str, ChangeKind] = {
    HookEvent.ON_ROW_AFTER_INSERT: ChangeKind.INSERTED,
    HookEvent.ON_ROW_BEFORE_UPDATE: ChangeKind.UPDATED,
    HookEvent.ON_ROW_BEFORE_DELETE: ChangeKind.DELETED,
}


class CaptureHooks:
    """Builds and stores change log records from row events.

    Args:
        clock: Source of capture times; defaults to the current UTC time.
        suffix: Log table suffix from settings.
    """

    def __init__(self, clock: Clock = utc_now, suffix: str = "_log") -> None:
        self.clock = clock
        self.suffix = suffix

    def build_record(
        self, kind: ChangeKind, schema: TableSchema, row: dict[str, Any]
    ) -> LogRecord:
        """Snapshot a row, covering every column of the table in schema order.

        Raises:
            KeyError: If the row lacks one of the table's columns.
        """
        column_values = {name: row[name] for name in schema.column_names}
        return LogRecord(
            primary_key_value=column_values[schema.primary_key],
            column_values=column_values,
            change_kind=kind,
            captured_at=to_utc(self.clock()),
        )

    async def capture(
        self,
        event: str,
        data: Optional[dict[str, Any]],
        context: Optional[HookContext],
    ) -> Optional[dict[str, Any]]:
        """Hook callback: append one record for the row carried by the event."""
        if data is None:
            return data

        kind = CAPTURE_EVENTS[event]
        schema: TableSchema = data["schema"]
        record = self.build_record(kind, schema, data["row"])

        log_store = LogStoreRepository.for_schema(data["session"], schema, self.suffix)
        added = await log_store.add_missing_columns(schema)
        if added:
            logger.info(
                "Capture hook: change log widened",
                table_name=schema.table_name,
                columns=added,
            )
        stored = await log_store.append(record)

        logger.debug(
            "Capture hook: change logged",
            table_name=schema.table_name,
            change_kind=kind.value,
            entry_id=stored.entry_id,
            request_id=context.request_id if context else None,
        )
        return data

    def register(self, registry: HookRegistry, table_name: str) -> list[str]:
        """Register the three capture hooks for one table.

        Returns:
            The hook ids, for unregistering when logging is disabled.
        """
        hook_ids = [
            registry.register(
                event=event,
                callback=self.capture,
                filters={"table": table_name},
                priority=CAPTURE_HOOK_PRIORITY,
                stop_on_error=True,
            )
            for event in CAPTURE_EVENTS
        ]
        logger.info("Capture hooks registered", table_name=table_name, hook_count=len(hook_ids))
        return hook_ids
