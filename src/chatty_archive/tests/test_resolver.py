"""
Tests for resolving partial stamps against the running anchor.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest

from chatty_archive.errors import TimestampError
from chatty_archive.models import RawTimestamp
from chatty_archive.resolver import resolve_timestamp

PLUS_TWO = timezone(timedelta(hours=2))


def _anchor(*args) -> datetime:
    return datetime(*args, tzinfo=PLUS_TWO)


def test_time_moving_forward_stays_on_same_day() -> None:
    resolved = resolve_timestamp(
        RawTimestamp(time=time(10, 5)), _anchor(2017, 10, 5, 10, 0)
    )

    assert resolved == _anchor(2017, 10, 5, 10, 5)


def test_equal_time_stays_on_same_day() -> None:
    anchor = _anchor(2017, 10, 5, 10, 0)

    assert resolve_timestamp(RawTimestamp(time=time(10, 0)), anchor) == anchor


def test_time_going_backwards_rolls_to_next_day() -> None:
    resolved = resolve_timestamp(
        RawTimestamp(time=time(0, 10)), _anchor(2017, 10, 5, 23, 59)
    )

    assert resolved == _anchor(2017, 10, 6, 0, 10)


def test_rollover_crosses_month_and_year() -> None:
    resolved = resolve_timestamp(
        RawTimestamp(time=time(0, 0, 1)), _anchor(2017, 12, 31, 23, 59, 59)
    )

    assert resolved == _anchor(2018, 1, 1, 0, 0, 1)


def test_resolved_value_keeps_anchor_offset() -> None:
    resolved = resolve_timestamp(
        RawTimestamp(time=time(12)), _anchor(2017, 10, 5, 11, 0)
    )

    assert resolved.utcoffset() == timedelta(hours=2)


def test_dated_stamp_ignores_anchor_date() -> None:
    raw = RawTimestamp(time=time(8, 30), date=date(2017, 1, 2))

    assert resolve_timestamp(raw, _anchor(2019, 6, 1, 23, 0)) == _anchor(
        2017, 1, 2, 8, 30
    )


def test_replaying_dated_stamps_is_independent_of_anchor() -> None:
    stamps = [
        RawTimestamp(time=time(23, 59), date=date(2017, 10, 5)),
        RawTimestamp(time=time(0, 1), date=date(2017, 10, 6)),
        RawTimestamp(time=time(0, 1), date=date(2017, 10, 6)),
    ]

    def replay(start: datetime) -> list[datetime]:
        out = []
        current = start
        for raw in stamps:
            current = resolve_timestamp(raw, current)
            out.append(current)
        return out

    assert replay(_anchor(2000, 1, 1, 0, 0)) == replay(_anchor(2030, 5, 5, 18, 0))


def test_rollover_past_last_representable_day() -> None:
    with pytest.raises(TimestampError):
        resolve_timestamp(RawTimestamp(time=time(0)), _anchor(9999, 12, 31, 23, 0))
