"""Domain entities for RowRewind.

Entities are pure Python dataclasses that represent core concepts.
They have no dependencies on infrastructure or external frameworks.
"""

from rowrewind.domain.entities.change_log import (
    ChangeKind,
    ColumnInfo,
    LogRecord,
    RevertWindow,
    TableSchema,
)
from rowrewind.domain.entities.hook_context import (
    AbortHookException,
    HookContext,
    HookResult,
)

__all__ = [
    "AbortHookException",
    "ChangeKind",
    "ColumnInfo",
    "HookContext",
    "HookResult",
    "LogRecord",
    "RevertWindow",
    "TableSchema",
]
