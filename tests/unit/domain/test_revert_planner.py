"""Unit tests for revert planning: representative selection and corrective actions."""

from datetime import datetime, timedelta, timezone

import pytest

from rowrewind.domain.entities.change_log import (
    ChangeKind,
    ColumnInfo,
    LogRecord,
    RevertWindow,
    TableSchema,
)
from rowrewind.domain.services.revert_planner import (
    CorrectiveActionType,
    aselect_representatives,
    corrective_action_for,
    plan_revert,
    select_representatives,
)

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(pk, kind, entry_id, offset=0, **values):
    return LogRecord(
        primary_key_value=pk,
        column_values={"id": pk, **values},
        change_kind=kind,
        captured_at=T0 + timedelta(seconds=offset),
        entry_id=entry_id,
    )


class TestLogRecord:
    def test_primary_key_value_is_required(self) -> None:
        with pytest.raises(ValueError):
            LogRecord(
                primary_key_value=None,
                column_values={},
                change_kind=ChangeKind.INSERTED,
                captured_at=T0,
            )


class TestRevertWindow:
    def test_from_flags_builds_kind_mask(self) -> None:
        window = RevertWindow.from_flags(include_update=False)
        assert window.change_kinds == frozenset({ChangeKind.INSERTED, ChangeKind.DELETED})

    def test_from_flags_keeps_bounds(self) -> None:
        window = RevertWindow.from_flags(start_time=T0, include_insert=False)
        assert window.start_time == T0
        assert window.end_time is None
        assert ChangeKind.INSERTED not in window.change_kinds


class TestTableSchema:
    def test_non_key_columns_excludes_primary_key(self) -> None:
        schema = TableSchema(
            table_name="orders",
            columns=(ColumnInfo("customer"), ColumnInfo("id"), ColumnInfo("status")),
            primary_key="id",
        )

        assert schema.non_key_columns == ("customer", "status")


class TestSelectRepresentatives:
    def test_highest_entry_id_wins(self) -> None:
        records = [
            make_record(1, ChangeKind.UPDATED, 5, status="b"),
            make_record(1, ChangeKind.INSERTED, 2, status="a"),
            make_record(1, ChangeKind.UPDATED, 9, status="c"),
            make_record(2, ChangeKind.DELETED, 3, status="x"),
        ]

        representatives = select_representatives(records)

        assert set(representatives) == {1, 2}
        assert representatives[1].entry_id == 9
        assert representatives[2].entry_id == 3

    def test_entry_id_beats_capture_time(self) -> None:
        # Same second, or even a clock that went backwards: entry order decides
        earlier_id = make_record(1, ChangeKind.INSERTED, 1, offset=5)
        later_id = make_record(1, ChangeKind.UPDATED, 2, offset=0)

        representatives = select_representatives([later_id, earlier_id])

        assert representatives[1] is later_id

    def test_no_records_no_representatives(self) -> None:
        assert select_representatives([]) == {}

    @pytest.mark.asyncio
    async def test_async_selection_matches_sync(self) -> None:
        records = [
            make_record(1, ChangeKind.INSERTED, 1),
            make_record(1, ChangeKind.UPDATED, 4),
            make_record(2, ChangeKind.UPDATED, 2),
        ]

        async def stream():
            for record in records:
                yield record

        assert await aselect_representatives(stream()) == select_representatives(records)


class TestPlanRevert:
    def test_inserted_maps_to_delete(self) -> None:
        action = corrective_action_for(make_record(1, ChangeKind.INSERTED, 1))
        assert action.action is CorrectiveActionType.DELETE
        assert action.primary_key_value == 1

    @pytest.mark.parametrize("kind", [ChangeKind.UPDATED, ChangeKind.DELETED])
    def test_updated_and_deleted_map_to_restore(self, kind) -> None:
        action = corrective_action_for(make_record(1, kind, 1, status="old"))
        assert action.action is CorrectiveActionType.RESTORE
        assert action.record.column_values == {"id": 1, "status": "old"}

    def test_one_action_per_key_ordered_by_entry_id(self) -> None:
        representatives = select_representatives(
            [
                make_record(3, ChangeKind.UPDATED, 7),
                make_record(1, ChangeKind.INSERTED, 2),
                make_record(1, ChangeKind.UPDATED, 4),
                make_record(2, ChangeKind.DELETED, 5),
            ]
        )

        actions = plan_revert(representatives)

        assert [a.primary_key_value for a in actions] == [1, 2, 3]
        assert [a.action for a in actions] == [
            CorrectiveActionType.RESTORE,
            CorrectiveActionType.RESTORE,
            CorrectiveActionType.RESTORE,
        ]

    def test_empty_plan(self) -> None:
        assert plan_revert({}) == []
