"""Unit tests for the hook system infrastructure.

Tests cover:
- Hook registration and unregistration
- Priority ordering
- Table-based filtering
- AbortHookException handling
- Error handling and stop_on_error
- Capture hook registration
"""

from datetime import datetime, timezone

import pytest

from rowrewind.core.hooks import (
    EVENT_CATEGORIES,
    HookCategory,
    HookEvent,
    HookRegistry,
    get_all_events,
    is_after_event,
    is_before_event,
)
from rowrewind.domain.entities.change_log import ChangeKind, ColumnInfo, TableSchema
from rowrewind.domain.entities.hook_context import (
    AbortHookException,
    HookContext,
    HookResult,
)
from rowrewind.infrastructure.hooks.capture_hooks import (
    CAPTURE_EVENTS,
    CAPTURE_HOOK_PRIORITY,
    CaptureHooks,
)


class TestHookRegistry:
    """Tests for the HookRegistry class."""

    def test_register_returns_unique_id(self) -> None:
        """Test that register() returns a unique hook ID."""
        registry = HookRegistry()

        async def my_hook(event, data, context):
            return data

        hook_ids = [
            registry.register(HookEvent.ON_ROW_AFTER_INSERT, my_hook)
            for _ in range(10)
        ]

        assert all(hook_id.startswith("hook_") for hook_id in hook_ids)
        assert len(set(hook_ids)) == 10

    def test_register_with_filters_and_priority(self) -> None:
        """Test that filters and priority are stored on the hook."""
        registry = HookRegistry()

        async def my_hook(event, data, context):
            return data

        hook_id = registry.register(
            event=HookEvent.ON_ROW_BEFORE_UPDATE,
            callback=my_hook,
            filters={"table": "orders"},
            priority=10,
        )

        hook = registry.get_hook_by_id(hook_id)
        assert hook is not None
        assert hook.filters == {"table": "orders"}
        assert hook.priority == 10
        assert hook.stop_on_error is False

    def test_unregister_removes_hook(self) -> None:
        """Test that unregister() removes a hook."""
        registry = HookRegistry()

        async def my_hook(event, data, context):
            return data

        hook_id = registry.register(HookEvent.ON_ROW_AFTER_INSERT, my_hook)

        assert registry.unregister(hook_id) is True
        assert registry.get_hook_by_id(hook_id) is None
        assert registry.get_hooks_for_event(HookEvent.ON_ROW_AFTER_INSERT) == []

    def test_unregister_returns_false_for_unknown_id(self) -> None:
        registry = HookRegistry()
        assert registry.unregister("hook_nonexistent") is False

    def test_unregister_builtin_returns_false(self) -> None:
        """Test that built-in hooks cannot be unregistered."""
        registry = HookRegistry()

        async def my_hook(event, data, context):
            return data

        hook_id = registry.register(HookEvent.ON_ROW_AFTER_INSERT, my_hook, is_builtin=True)

        assert registry.unregister(hook_id) is False
        assert registry.get_hook_by_id(hook_id) is not None

    def test_clear_keeps_builtin_hooks(self) -> None:
        registry = HookRegistry()

        async def my_hook(event, data, context):
            return data

        builtin_id = registry.register(HookEvent.ON_ROW_AFTER_INSERT, my_hook, is_builtin=True)
        registry.register(HookEvent.ON_ROW_AFTER_INSERT, my_hook)
        registry.register(HookEvent.ON_ROW_AFTER_DELETE, my_hook)

        assert registry.clear() == 2
        assert registry.get_hook_by_id(builtin_id) is not None
        assert registry.clear(include_builtin=True) == 1


class TestHookRegistryTrigger:
    """Tests for the HookRegistry.trigger() method."""

    @pytest.mark.asyncio
    async def test_trigger_without_hooks_succeeds(self) -> None:
        registry = HookRegistry()

        result = await registry.trigger(HookEvent.ON_ROW_AFTER_INSERT, data={"row": {}})

        assert result.success is True
        assert result.data == {"row": {}}

    @pytest.mark.asyncio
    async def test_hooks_execute_in_priority_order(self) -> None:
        """Test that hooks execute in priority order (higher first, FIFO on ties)."""
        registry = HookRegistry()
        execution_order = []

        def make_hook(name):
            async def hook(event, data, context):
                execution_order.append(name)
                return data

            return hook

        registry.register(HookEvent.ON_ROW_BEFORE_INSERT, make_hook("low"), priority=1)
        registry.register(HookEvent.ON_ROW_BEFORE_INSERT, make_hook("high"), priority=100)
        registry.register(HookEvent.ON_ROW_BEFORE_INSERT, make_hook("medium"), priority=50)
        registry.register(HookEvent.ON_ROW_BEFORE_INSERT, make_hook("medium2"), priority=50)

        await registry.trigger(HookEvent.ON_ROW_BEFORE_INSERT, data={})

        assert execution_order == ["high", "medium", "medium2", "low"]

    @pytest.mark.asyncio
    async def test_hooks_can_modify_data(self) -> None:
        registry = HookRegistry()

        async def default_status(event, data, context):
            data["row"].setdefault("status", "new")
            return data

        registry.register(HookEvent.ON_ROW_BEFORE_INSERT, default_status)

        result = await registry.trigger(
            HookEvent.ON_ROW_BEFORE_INSERT, data={"row": {"customer": "ada"}}
        )

        assert result.data["row"] == {"customer": "ada", "status": "new"}

    @pytest.mark.asyncio
    async def test_context_is_passed_to_hooks(self) -> None:
        registry = HookRegistry()
        seen = []

        async def my_hook(event, data, context):
            seen.append(context)
            return data

        registry.register(HookEvent.ON_ROW_AFTER_UPDATE, my_hook)
        context = HookContext(actor="alice")

        await registry.trigger(HookEvent.ON_ROW_AFTER_UPDATE, data={}, context=context)

        assert seen == [context]
        assert context.request_id.startswith("hk_")


class TestHookRegistryFiltering:
    """Tests for table filtering in hook trigger."""

    @pytest.mark.asyncio
    async def test_table_filtering_only_calls_matching_hooks(self) -> None:
        registry = HookRegistry()
        executed = []

        async def orders_hook(event, data, context):
            executed.append("orders")
            return data

        async def invoices_hook(event, data, context):
            executed.append("invoices")
            return data

        registry.register(HookEvent.ON_ROW_AFTER_INSERT, orders_hook, filters={"table": "orders"})
        registry.register(
            HookEvent.ON_ROW_AFTER_INSERT, invoices_hook, filters={"table": "invoices"}
        )

        await registry.trigger(HookEvent.ON_ROW_AFTER_INSERT, data={}, filters={"table": "orders"})

        assert executed == ["orders"]

    @pytest.mark.asyncio
    async def test_hook_with_no_filter_matches_all(self) -> None:
        registry = HookRegistry()
        executed = []

        async def global_hook(event, data, context):
            executed.append("global")
            return data

        async def orders_hook(event, data, context):
            executed.append("orders")
            return data

        registry.register(HookEvent.ON_ROW_AFTER_INSERT, global_hook)
        registry.register(HookEvent.ON_ROW_AFTER_INSERT, orders_hook, filters={"table": "orders"})

        await registry.trigger(HookEvent.ON_ROW_AFTER_INSERT, data={}, filters={"table": "orders"})

        assert executed == ["global", "orders"]


class TestHookRegistryErrorHandling:
    """Tests for error handling in hooks."""

    @pytest.mark.asyncio
    async def test_abort_hook_exception_cancels_operation(self) -> None:
        registry = HookRegistry()
        executed = []

        async def abort_hook(event, data, context):
            raise AbortHookException("Order is locked")

        async def later_hook(event, data, context):
            executed.append("later")
            return data

        registry.register(HookEvent.ON_ROW_BEFORE_DELETE, abort_hook, priority=10)
        registry.register(HookEvent.ON_ROW_BEFORE_DELETE, later_hook)

        result = await registry.trigger(HookEvent.ON_ROW_BEFORE_DELETE, data={})

        assert result.success is False
        assert result.aborted is True
        assert result.abort_message == "Order is locked"
        assert executed == []

    @pytest.mark.asyncio
    async def test_hook_error_continues_by_default(self) -> None:
        """Test that a failing hook is logged and skipped without stop_on_error."""
        registry = HookRegistry()
        executed = []

        async def failing_hook(event, data, context):
            raise RuntimeError("boom")

        async def later_hook(event, data, context):
            executed.append("later")
            return data

        registry.register(HookEvent.ON_ROW_AFTER_UPDATE, failing_hook, priority=10)
        registry.register(HookEvent.ON_ROW_AFTER_UPDATE, later_hook)

        result = await registry.trigger(HookEvent.ON_ROW_AFTER_UPDATE, data={})

        assert result.success is True
        assert len(result.errors) == 1
        assert "boom" in result.errors[0]
        assert executed == ["later"]

    @pytest.mark.asyncio
    async def test_stop_on_error_fails_the_trigger(self) -> None:
        registry = HookRegistry()
        executed = []

        async def failing_hook(event, data, context):
            raise RuntimeError("log table is gone")

        async def later_hook(event, data, context):
            executed.append("later")
            return data

        registry.register(
            HookEvent.ON_ROW_BEFORE_UPDATE, failing_hook, priority=10, stop_on_error=True
        )
        registry.register(HookEvent.ON_ROW_BEFORE_UPDATE, later_hook)

        result = await registry.trigger(HookEvent.ON_ROW_BEFORE_UPDATE, data={})

        assert result.success is False
        assert result.aborted is False
        assert "log table is gone" in result.errors[0]
        assert executed == []


class TestHookEvents:
    """Tests for the hook event helpers."""

    def test_every_event_has_a_category(self) -> None:
        assert set(get_all_events()) == set(EVENT_CATEGORIES)
        assert EVENT_CATEGORIES[HookEvent.ON_REVERT_AFTER_APPLY] == HookCategory.REVERT_OPERATIONS

    def test_before_and_after_events(self) -> None:
        assert is_before_event(HookEvent.ON_ROW_BEFORE_INSERT)
        assert not is_after_event(HookEvent.ON_ROW_BEFORE_INSERT)
        assert is_after_event(HookEvent.ON_ROW_AFTER_DELETE)

    def test_hook_result_defaults(self) -> None:
        result = HookResult()
        assert result.success is True
        assert result.errors == []


class TestCaptureHooks:
    """Tests for the change capture hooks outside a database."""

    schema = TableSchema(
        table_name="orders",
        columns=(ColumnInfo("id"), ColumnInfo("customer"), ColumnInfo("status")),
        primary_key="id",
    )

    def test_register_adds_three_fatal_hooks(self) -> None:
        registry = HookRegistry()

        hook_ids = CaptureHooks().register(registry, "orders")

        assert len(hook_ids) == 3
        hooks = [registry.get_hook_by_id(hook_id) for hook_id in hook_ids]
        assert {hook.event for hook in hooks} == set(CAPTURE_EVENTS)
        assert all(hook.stop_on_error for hook in hooks)
        assert all(hook.priority == CAPTURE_HOOK_PRIORITY for hook in hooks)
        assert all(hook.filters == {"table": "orders"} for hook in hooks)

    def test_capture_events_map_to_change_kinds(self) -> None:
        assert CAPTURE_EVENTS[HookEvent.ON_ROW_AFTER_INSERT] is ChangeKind.INSERTED
        assert CAPTURE_EVENTS[HookEvent.ON_ROW_BEFORE_UPDATE] is ChangeKind.UPDATED
        assert CAPTURE_EVENTS[HookEvent.ON_ROW_BEFORE_DELETE] is ChangeKind.DELETED

    def test_build_record_snapshots_every_column(self) -> None:
        now = datetime(2024, 3, 1, 8, 30, 15, 999, tzinfo=timezone.utc)
        hooks = CaptureHooks(clock=lambda: now)

        record = hooks.build_record(
            ChangeKind.UPDATED,
            self.schema,
            {"status": "paid", "customer": "ada", "id": 7, "extra": "ignored"},
        )

        assert record.primary_key_value == 7
        assert list(record.column_values) == ["id", "customer", "status"]
        assert record.change_kind is ChangeKind.UPDATED
        assert record.captured_at == now.replace(microsecond=0)
        assert record.entry_id is None

    def test_build_record_requires_every_column(self) -> None:
        with pytest.raises(KeyError):
            CaptureHooks().build_record(ChangeKind.DELETED, self.schema, {"id": 1})
