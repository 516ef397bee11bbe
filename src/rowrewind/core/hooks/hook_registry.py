"""Hook registry.

Holds the callbacks that run around row mutations and reverts. Every
trigger awaits its hooks inline, one after another, so a hook sees (and
writes through) the session of the statement that fired it.

Ordering is by priority, highest first; hooks with equal priority run in
the order they were registered.
"""

import asyncio
import itertools
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from rowrewind.core.logging import get_logger
from rowrewind.domain.entities.hook_context import (
    AbortHookException,
    HookContext,
    HookResult,
)

logger = get_logger(__name__)


@dataclass
class RegisteredHook:
    """A callback bound to one event.

    Attributes:
        id: Registration id, used to unregister.
        event: Event name the hook listens to.
        callback: ``async (event, data, context) -> data | None``.
        filters: Tags that must all be present, with equal values, in the
            trigger filters (e.g. ``{"table": "orders"}``). Empty matches
            every trigger.
        priority: Higher runs earlier.
        stop_on_error: An exception from this hook fails the trigger and
            skips the remaining hooks.
        is_builtin: Protected from unregister() and clear().
        sequence: Registration sequence number, breaks priority ties.
    """

    id: str
    event: str
    callback: Callable
    filters: dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    stop_on_error: bool = False
    is_builtin: bool = False
    sequence: int = 0

    def matches(self, trigger_filters: Optional[dict[str, Any]]) -> bool:
        if not self.filters or not trigger_filters:
            return True
        return all(
            trigger_filters.get(key) is not None and trigger_filters[key] == value
            for key, value in self.filters.items()
        )

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)


class HookRegistry:
    """Registers hooks per event and runs them on trigger.

    Example:
        registry = HookRegistry()
        hook_id = registry.register(
            HookEvent.ON_ROW_BEFORE_UPDATE,
            check_status,
            filters={"table": "orders"},
        )
        result = await registry.trigger(
            HookEvent.ON_ROW_BEFORE_UPDATE,
            {"session": session, "table": "orders", "row": old_row},
            filters={"table": "orders"},
        )
        if result.aborted:
            ...
    """

    def __init__(self) -> None:
        self._by_event: dict[str, list[RegisteredHook]] = {}
        self._by_id: dict[str, RegisteredHook] = {}
        self._sequence = itertools.count(1)

    def register(
        self,
        event: str,
        callback: Callable,
        filters: Optional[dict[str, Any]] = None,
        priority: int = 0,
        stop_on_error: bool = False,
        is_builtin: bool = False,
    ) -> str:
        """Add a hook.

        Args:
            event: Event name, one of HookEvent.
            callback: Async callable ``(event, data, context)``. Returning a
                dict replaces the data passed to later hooks.
            filters: Tag filters, see RegisteredHook.filters.
            priority: Higher runs earlier.
            stop_on_error: Fail the trigger when this hook raises.
            is_builtin: Refuse unregister() for this hook.

        Returns:
            The hook id.
        """
        hook = RegisteredHook(
            id=f"hook_{uuid.uuid4().hex[:12]}",
            event=event,
            callback=callback,
            filters=dict(filters or {}),
            priority=priority,
            stop_on_error=stop_on_error,
            is_builtin=is_builtin,
            sequence=next(self._sequence),
        )
        self._by_event.setdefault(event, []).append(hook)
        self._by_id[hook.id] = hook

        logger.debug(
            "Hook registered",
            hook_id=hook.id,
            hook_event=event,
            priority=priority,
            filters=hook.filters,
            stop_on_error=stop_on_error,
        )
        return hook.id

    def unregister(self, hook_id: str) -> bool:
        """Remove a hook.

        Returns:
            False when the id is unknown or the hook is built in.
        """
        hook = self._by_id.get(hook_id)
        if hook is None:
            logger.warning("Unregister of unknown hook", hook_id=hook_id)
            return False
        if hook.is_builtin:
            logger.warning("Refusing to unregister built-in hook", hook_id=hook_id)
            return False

        remaining = [h for h in self._by_event.get(hook.event, []) if h.id != hook_id]
        if remaining:
            self._by_event[hook.event] = remaining
        else:
            self._by_event.pop(hook.event, None)
        del self._by_id[hook_id]

        logger.debug("Hook unregistered", hook_id=hook_id, hook_event=hook.event)
        return True

    async def trigger(
        self,
        event: str,
        data: Optional[dict[str, Any]] = None,
        context: Optional[HookContext] = None,
        filters: Optional[dict[str, Any]] = None,
    ) -> HookResult:
        """Run the hooks of an event that match the filters.

        A hook raising AbortHookException stops the chain and marks the
        result aborted. Any other exception is recorded in ``errors``; it
        stops the chain and fails the result only for stop_on_error hooks.

        Returns:
            HookResult carrying the (possibly replaced) data.
        """
        result = HookResult(success=True, data=data)
        chain = sorted(
            (hook for hook in self._by_event.get(event, []) if hook.matches(filters)),
            key=lambda hook: hook.sort_key,
        )
        if not chain:
            return result

        logger.debug("Triggering hooks", hook_event=event, hook_count=len(chain), filters=filters)

        for hook in chain:
            try:
                returned = await self._call(hook, event, result.data, context)
            except AbortHookException as e:
                logger.info(
                    "Hook aborted operation",
                    hook_id=hook.id,
                    hook_event=event,
                    abort_message=e.message,
                )
                result.success = False
                result.aborted = True
                result.abort_message = e.message
                return result
            except Exception as e:
                logger.error(
                    "Hook execution failed",
                    hook_id=hook.id,
                    hook_event=event,
                    error=str(e),
                    stop_on_error=hook.stop_on_error,
                )
                result.errors.append(f"Hook {hook.id} failed: {e}")
                if hook.stop_on_error:
                    result.success = False
                    return result
                continue

            if isinstance(returned, dict):
                result.data = returned

        return result

    @staticmethod
    async def _call(
        hook: RegisteredHook,
        event: str,
        data: Optional[dict[str, Any]],
        context: Optional[HookContext],
    ) -> Any:
        if asyncio.iscoroutinefunction(hook.callback):
            return await hook.callback(event, data, context)
        # Plain callables are tolerated but block the event loop
        logger.warning("Hook callback is not async", hook_id=hook.id, hook_event=event)
        return hook.callback(event, data, context)

    def get_hooks_for_event(self, event: str) -> list[RegisteredHook]:
        """Hooks registered for an event, in registration order."""
        return list(self._by_event.get(event, []))

    def get_hook_by_id(self, hook_id: str) -> Optional[RegisteredHook]:
        return self._by_id.get(hook_id)

    def clear(self, include_builtin: bool = False) -> int:
        """Remove every hook (built-in ones only when asked).

        Returns:
            Number of hooks removed.
        """
        doomed = [
            hook
            for hook in self._by_id.values()
            if include_builtin or not hook.is_builtin
        ]
        for hook in doomed:
            self._by_id.pop(hook.id)
            remaining = [h for h in self._by_event.get(hook.event, []) if h.id != hook.id]
            if remaining:
                self._by_event[hook.event] = remaining
            else:
                self._by_event.pop(hook.event, None)

        logger.debug("Hooks cleared", count=len(doomed), include_builtin=include_builtin)
        return len(doomed)
