"""Line grammar for chatty transcript logs.

Each physical line is classified into exactly one event. The recognized
shapes, tried in this order (first match wins):

  [STAMP] <SIGILS NAME> body          -> Message
  [STAMP] You have joined #channel    -> ChannelJoined
  [STAMP] anything else               -> SystemNotice
  # Log started: 2017-10-05 23:40:00 +0200  -> SessionBegin
  # Log closed: 2017-10-08 15:19:46 +0200   -> SessionEnd
  -                                   -> Separator
  anything else                       -> Unclassified

``STAMP`` is ``HH:MM:SS`` with an optional ``YYYY-MM-DD `` prefix. Digit
groups are not width-checked, but the values must form a real calendar
date and clock time.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, Optional, Tuple

from .errors import IncompleteLine, ParseError, TimestampError
from .models import (
    SIGIL_FLAGS,
    ChannelJoined,
    LogEvent,
    Message,
    RawTimestamp,
    Sender,
    Separator,
    SessionBegin,
    SessionEnd,
    SystemNotice,
    Unclassified,
)

SESSION_BEGIN_PREFIX = "# Log started: "
SESSION_END_PREFIX = "# Log closed: "
JOINED_LITERAL = "You have joined"
SEPARATOR = "-"

_STAMP = (
    r"\[(?:(?P<year>[0-9]+)-(?P<month>[0-9]+)-(?P<day>[0-9]+) )?"
    r"(?P<hour>[0-9]+):(?P<minute>[0-9]+):(?P<second>[0-9]+)\]"
)
_SPACE = r"[ \t]+"
# Sigils are consumed greedily, so the name may not start with one.
_SENDER = r"<(?P<sigils>[+@%~]*)(?P<name>[^>+@%~][^>]*)>"

STAMP_RE = re.compile(_STAMP)
SENDER_RE = re.compile(_SENDER)
MESSAGE_RE = re.compile(rf"{_STAMP}{_SPACE}{_SENDER}{_SPACE}(?P<body>.*)", re.S)
JOINED_RE = re.compile(
    rf"{_STAMP}{_SPACE}{re.escape(JOINED_LITERAL)}{_SPACE}(?P<channel>[^ \t].*)",
    re.S,
)
NOTICE_RE = re.compile(rf"{_STAMP}{_SPACE}(?P<body>.*)", re.S)
SESSION_STAMP_RE = re.compile(
    r"(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2}) "
    r"(?P<hour>[0-9]{2}):(?P<minute>[0-9]{2}):(?P<second>[0-9]{2}) "
    r"(?P<sign>[+-])(?P<off_hours>[0-9]{2})(?P<off_minutes>[0-9]{2})"
)
# An opened bracket holding only stamp characters up to the end of the line.
_TRUNCATED_STAMP_RE = re.compile(r"\[[0-9: -]*")


def _raw_timestamp_from_match(match: re.Match) -> RawTimestamp:
    """Build a :class:`RawTimestamp` from the named groups of ``_STAMP``."""

    try:
        clock = time(
            int(match.group("hour")),
            int(match.group("minute")),
            int(match.group("second")),
        )
        day = None
        if match.group("year") is not None:
            day = date(
                int(match.group("year")),
                int(match.group("month")),
                int(match.group("day")),
            )
    except (ValueError, OverflowError) as err:
        raise TimestampError(f"invalid timestamp {match.group(0)!r}: {err}") from err
    return RawTimestamp(time=clock, date=day)


def _sender_from_match(match: re.Match) -> Sender:
    # dict.fromkeys keeps first-seen order while dropping repeated sigils
    flags = tuple(dict.fromkeys(SIGIL_FLAGS[s] for s in match.group("sigils")))
    return Sender(name=match.group("name"), flags=flags)


def parse_raw_timestamp(text: str) -> Optional[RawTimestamp]:
    """Parse a bracketed stamp such as ``[22:05:44]`` or ``[2017-10-08 22:05:44]``.

    Returns ``None`` when ``text`` is not a bracketed stamp. Raises
    :class:`TimestampError` when the digits are out of range.
    """

    match = STAMP_RE.fullmatch(text)
    if match is None:
        return None
    return _raw_timestamp_from_match(match)


def parse_sender(text: str) -> Optional[Sender]:
    """Parse a ``<~+@name>`` sender token, or return ``None``."""

    match = SENDER_RE.fullmatch(text)
    if match is None:
        return None
    return _sender_from_match(match)


def parse_session_timestamp(text: str) -> datetime:
    """Parse the ``YYYY-MM-DD HH:MM:SS ±HHMM`` suffix of a session marker.

    Raises
    ------
    ParseError
        If the text does not follow the fixed pattern or holds out-of-range
        values.
    """

    match = SESSION_STAMP_RE.fullmatch(text)
    if match is None:
        raise ParseError(f"malformed session timestamp {text!r}")
    if int(match.group("off_minutes")) > 59:
        raise ParseError(f"invalid UTC offset in session timestamp {text!r}")
    try:
        offset = timedelta(
            hours=int(match.group("off_hours")),
            minutes=int(match.group("off_minutes")),
        )
        if match.group("sign") == "-":
            offset = -offset
        return datetime(
            int(match.group("year")),
            int(match.group("month")),
            int(match.group("day")),
            int(match.group("hour")),
            int(match.group("minute")),
            int(match.group("second")),
            tzinfo=timezone(offset),
        )
    except ValueError as err:
        raise ParseError(f"invalid session timestamp {text!r}: {err}") from err


def _is_truncated(line: str) -> bool:
    """Return True if ``line`` stops inside a stamp or a session marker."""

    if _TRUNCATED_STAMP_RE.fullmatch(line):
        return True
    if line.startswith("# Log"):
        return any(
            len(line) < len(prefix) and prefix.startswith(line)
            for prefix in (SESSION_BEGIN_PREFIX, SESSION_END_PREFIX)
        )
    return False


def classify_line(line: str) -> LogEvent:
    """Classify one log line (without its line terminator) into an event.

    Raises
    ------
    ParseError
        A session marker prefix is followed by a malformed timestamp.
    TimestampError
        A bracketed stamp holds an impossible date or time.
    IncompleteLine
        The line ends in the middle of a stamp or marker prefix.
    """

    match = MESSAGE_RE.fullmatch(line)
    if match:
        return Message(
            time=_raw_timestamp_from_match(match),
            sender=_sender_from_match(match),
            body=match.group("body"),
        )

    match = JOINED_RE.fullmatch(line)
    if match:
        return ChannelJoined(
            time=_raw_timestamp_from_match(match), channel=match.group("channel")
        )

    match = NOTICE_RE.fullmatch(line)
    if match:
        return SystemNotice(
            time=_raw_timestamp_from_match(match), body=match.group("body")
        )

    if line.startswith(SESSION_BEGIN_PREFIX):
        return SessionBegin(
            at=parse_session_timestamp(line[len(SESSION_BEGIN_PREFIX) :])
        )

    if line.startswith(SESSION_END_PREFIX):
        return SessionEnd(at=parse_session_timestamp(line[len(SESSION_END_PREFIX) :]))

    if line == SEPARATOR:
        return Separator()

    if _is_truncated(line):
        raise IncompleteLine()

    return Unclassified(text=line)


def classify_lines(lines: Iterable[str]) -> Iterator[Tuple[int, LogEvent]]:
    """Yield ``(line_num, event)`` pairs for each line, numbering from 1.

    Line terminators are stripped. Errors carry the offending line number.
    This performs classification only; no timestamps are resolved.
    """

    for line_num, raw in enumerate(lines, start=1):
        try:
            yield line_num, classify_line(raw.rstrip("\r\n"))
        except (ParseError, TimestampError, IncompleteLine) as err:
            err.line_num = line_num
            raise
