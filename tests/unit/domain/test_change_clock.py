from datetime import datetime, timedelta, timezone

import pytest

from rowrewind.domain.services.change_clock import (
    TIMESTAMP_LENGTH,
    format_timestamp,
    parse_timestamp,
    to_utc,
    utc_now,
)


def test_utc_now_has_second_precision():
    now = utc_now()
    assert now.tzinfo == timezone.utc
    assert now.microsecond == 0


def test_naive_datetimes_are_taken_as_utc():
    assert to_utc(datetime(2024, 1, 1, 12, 0, 0)) == datetime(
        2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
    )


def test_aware_datetimes_are_converted_to_utc():
    cet = timezone(timedelta(hours=1))
    assert to_utc(datetime(2024, 1, 1, 13, 0, 0, 500, tzinfo=cet)) == datetime(
        2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
    )


def test_format_timestamp():
    text = format_timestamp(datetime(2024, 2, 3, 4, 5, 6, 789, tzinfo=timezone.utc))
    assert text == "2024-02-03 04:05:06"
    assert len(text) == TIMESTAMP_LENGTH


def test_formatted_timestamps_sort_in_time_order():
    base = datetime(2023, 12, 31, 23, 59, 58, tzinfo=timezone.utc)
    stamps = [format_timestamp(base + timedelta(seconds=s)) for s in (0, 1, 2, 3600)]
    assert stamps == sorted(stamps)


@pytest.mark.parametrize(
    "value",
    [
        "2024-01-01 12:00:00",
        "2024-01-01T12:00:00",
        "2024-01-01T12:00:00Z",
        "2024-01-01T13:00:00+01:00",
        datetime(2024, 1, 1, 12, 0, 0),
    ],
)
def test_parse_timestamp_accepts_common_forms(value):
    assert parse_timestamp(value) == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_parse_timestamp_none_is_open_bound():
    assert parse_timestamp(None) is None


@pytest.mark.parametrize("value", ["yesterday", "2024-13-01 00:00:00", ""])
def test_parse_timestamp_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_timestamp(value)
