"""Hook system core module.

Row mutations performed through the RowRepository fire the events defined
here; the change capture layer is itself a set of hooks.

Example usage:
    from rowrewind.core.hooks import HookRegistry, HookEvent

    registry = HookRegistry()

    async def audit(event, data, context):
        print(data["table"], data["row"])
        return data

    registry.register(HookEvent.ON_ROW_AFTER_UPDATE, audit, filters={"table": "orders"})
"""

from rowrewind.core.hooks.hook_events import (
    EVENT_CATEGORIES,
    HookCategory,
    HookEvent,
    get_all_events,
    is_after_event,
    is_before_event,
)
from rowrewind.core.hooks.hook_registry import HookRegistry, RegisteredHook

__all__ = [
    # Registry
    "HookRegistry",
    "RegisteredHook",
    # Events
    "HookCategory",
    "HookEvent",
    "EVENT_CATEGORIES",
    "get_all_events",
    "is_before_event",
    "is_after_event",
]
