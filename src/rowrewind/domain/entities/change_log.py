"""Change log entities.

A logged table keeps one snapshot per row mutation: the row's values
relevant to that change (new values for an insert, prior values for an
update or delete), a change kind, the capture time and an entry id.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ChangeKind(str, Enum):
    """Kind of row mutation a snapshot was captured for.

    Exactly one kind per record; the persisted form is three mutually
    exclusive flags.
    """

    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ColumnInfo:
    """A single column of a live table.

    Attributes:
        name: Column name.
        type: SQLAlchemy type object as reported by reflection.
        nullable: Whether the column accepts NULL.
    """

    name: str
    type: Any = None
    nullable: bool = True


@dataclass(frozen=True)
class TableSchema:
    """Read-only snapshot of a table's columns and primary key.

    Fetched on demand, never cached across calls.

    Attributes:
        table_name: The table name.
        columns: Columns in schema order.
        primary_key: Name of the single primary-key column.
    """

    table_name: str
    columns: tuple[ColumnInfo, ...]
    primary_key: str

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def non_key_columns(self) -> tuple[str, ...]:
        return tuple(name for name in self.column_names if name != self.primary_key)


@dataclass(frozen=True)
class LogRecord:
    """One captured snapshot of a row.

    Attributes:
        primary_key_value: The row's key at capture time (never None).
        column_values: Column name -> value for every column of the source
            table at capture time, in schema order.
        change_kind: The mutation the snapshot was captured for.
        captured_at: UTC capture time, second precision.
        entry_id: Monotonic id assigned by the log store on append.
    """

    primary_key_value: Any
    column_values: dict[str, Any]
    change_kind: ChangeKind
    captured_at: datetime
    entry_id: int | None = None

    def __post_init__(self) -> None:
        if self.primary_key_value is None:
            raise ValueError("LogRecord.primary_key_value must not be None")


@dataclass(frozen=True)
class RevertWindow:
    """Selection of snapshots eligible for undo.

    Both time bounds are inclusive; an unset bound is open.

    Attributes:
        start_time: Lower bound on captured_at, or None.
        end_time: Upper bound on captured_at, or None.
        change_kinds: Kinds included in the revert.
    """

    start_time: datetime | None = None
    end_time: datetime | None = None
    change_kinds: frozenset[ChangeKind] = field(
        default_factory=lambda: frozenset(ChangeKind)
    )

    @classmethod
    def from_flags(
        cls,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        include_insert: bool = True,
        include_update: bool = True,
        include_delete: bool = True,
    ) -> "RevertWindow":
        """Build a window from the three include flags."""
        kinds = set()
        if include_insert:
            kinds.add(ChangeKind.INSERTED)
        if include_update:
            kinds.add(ChangeKind.UPDATED)
        if include_delete:
            kinds.add(ChangeKind.DELETED)
        return cls(start_time=start_time, end_time=end_time, change_kinds=frozenset(kinds))

