"""Pure planning of a revert.

Groups the snapshots selected for a revert by primary key, keeps one
representative per key (the highest entry id) and maps it to the single
corrective action that undoes it.
"""

from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rowrewind.domain.entities.change_log import ChangeKind, LogRecord


class CorrectiveActionType(str, Enum):
    """What to do to the live row."""

    DELETE = "delete"  # undo an insert
    RESTORE = "restore"  # update the live row, or re-insert it when missing


@dataclass(frozen=True)
class CorrectiveAction:
    """One action against the live table, driven by a representative snapshot."""

    action: CorrectiveActionType
    primary_key_value: Any
    record: LogRecord


def _is_newer(candidate: LogRecord, current: LogRecord) -> bool:
    # entry_id is authoritative; captured_at only breaks ties between
    # records that were never appended (entry_id unset)
    if candidate.entry_id is not None and current.entry_id is not None:
        return candidate.entry_id > current.entry_id
    return candidate.captured_at >= current.captured_at


def select_representatives(records: Iterable[LogRecord]) -> dict[Any, LogRecord]:
    """Keep the most recent record per primary key.

    Records are expected to be filtered to the revert window already.

    Args:
        records: Candidate records, in any order.

    Returns:
        Mapping of primary key value -> representative record.
    """
    representatives: dict[Any, LogRecord] = {}
    for record in records:
        current = representatives.get(record.primary_key_value)
        if current is None or _is_newer(record, current):
            representatives[record.primary_key_value] = record
    return representatives


async def aselect_representatives(records: AsyncIterable[LogRecord]) -> dict[Any, LogRecord]:
    """Async counterpart of select_representatives for streamed records."""
    representatives: dict[Any, LogRecord] = {}
    async for record in records:
        current = representatives.get(record.primary_key_value)
        if current is None or _is_newer(record, current):
            representatives[record.primary_key_value] = record
    return representatives


def corrective_action_for(record: LogRecord) -> CorrectiveAction:
    """Map a representative to its corrective action.

    Updated and deleted snapshots are restored the same way; the kind
    only matters for window selection.
    """
    if record.change_kind is ChangeKind.INSERTED:
        action = CorrectiveActionType.DELETE
    else:
        action = CorrectiveActionType.RESTORE
    return CorrectiveAction(
        action=action,
        primary_key_value=record.primary_key_value,
        record=record,
    )


def plan_revert(representatives: dict[Any, LogRecord]) -> list[CorrectiveAction]:
    """Build the corrective actions, ordered by representative entry id.

    Groups are independent; the ordering only makes runs reproducible.
    """
    ordered = sorted(
        representatives.values(),
        key=lambda r: (r.entry_id if r.entry_id is not None else -1, r.captured_at),
    )
    return [corrective_action_for(record) for record in ordered]
