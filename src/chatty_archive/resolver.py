"""Resolve partial log stamps into absolute, offset-aware datetimes."""

from __future__ import annotations

from datetime import datetime, timedelta

from .errors import TimestampError
from .models import RawTimestamp

ONE_DAY = timedelta(days=1)


def resolve_timestamp(raw: RawTimestamp, previous: datetime) -> datetime:
    """Return the absolute time of ``raw`` given the previous anchor.

    A stamp with a date is taken as-is in the anchor's UTC offset. A
    time-only stamp is placed on the anchor's calendar day; if that would
    move backwards in time, it is placed on the following day instead. At
    most one midnight is assumed to pass between consecutive stamps.

    Parameters
    ----------
    raw:
        Stamp parsed from the log line.
    previous:
        Most recently resolved timestamp. Must be offset-aware.

    Raises
    ------
    TimestampError
        If the resulting date cannot be represented.
    """

    offset = previous.tzinfo
    if raw.date is not None:
        return datetime.combine(raw.date, raw.time, tzinfo=offset)

    candidate = datetime.combine(previous.date(), raw.time, tzinfo=offset)
    if candidate >= previous:
        return candidate
    try:
        next_day = previous.date() + ONE_DAY
    except OverflowError as err:
        raise TimestampError(f"cannot roll {previous.isoformat()} past the last day") from err
    return datetime.combine(next_day, raw.time, tzinfo=offset)
