"""Hook event definitions and categories.

This module defines the hook events fired around row mutations of
tables that go through the RowRepository.

IMPORTANT: Adding new events is allowed (non-breaking), but
           removing or renaming events is a breaking change.
"""


class HookCategory:
    """Categories for organizing hooks."""

    ROW_OPERATIONS = "row_operations"
    REVERT_OPERATIONS = "revert_operations"


class HookEvent:
    """Hook event names.

    - before_* events fire before the statement runs and can abort it
    - after_* events fire once the statement has run, inside the same
      transaction

    Attributes in format: ON_<CATEGORY>_<TIMING>_<OPERATION>
    """

    # Row Operations (logged or plain tables)
    ON_ROW_BEFORE_INSERT = "on_row_before_insert"
    ON_ROW_AFTER_INSERT = "on_row_after_insert"
    ON_ROW_BEFORE_UPDATE = "on_row_before_update"
    ON_ROW_AFTER_UPDATE = "on_row_after_update"
    ON_ROW_BEFORE_DELETE = "on_row_before_delete"
    ON_ROW_AFTER_DELETE = "on_row_after_delete"

    # Revert Operations
    ON_REVERT_AFTER_APPLY = "on_revert_after_apply"


# Mapping of events to their categories
EVENT_CATEGORIES: dict[str, str] = {
    HookEvent.ON_ROW_BEFORE_INSERT: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_ROW_AFTER_INSERT: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_ROW_BEFORE_UPDATE: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_ROW_AFTER_UPDATE: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_ROW_BEFORE_DELETE: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_ROW_AFTER_DELETE: HookCategory.ROW_OPERATIONS,
    HookEvent.ON_REVERT_AFTER_APPLY: HookCategory.REVERT_OPERATIONS,
}


def get_all_events() -> list[str]:
    """Get all available hook event names."""
    return [
        value
        for name, value in vars(HookEvent).items()
        if not name.startswith("_") and isinstance(value, str)
    ]


def is_before_event(event: str) -> bool:
    """Check if an event is a 'before' event (can abort)."""
    return "before" in event.lower()


def is_after_event(event: str) -> bool:
    """Check if an event is an 'after' event."""
    return "after" in event.lower()
