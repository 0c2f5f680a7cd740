"""Errors raised while reading a chatty log.

Every error aborts processing of the current stream. Lines that match no
grammar rule are not errors; they are reported and skipped by the driver.
"""

from __future__ import annotations

from typing import Optional


class ChattyLogError(Exception):
    """Base class for fatal log processing errors.

    ``line_num`` is the 1-based input line the error belongs to, when known.
    The driver fills it in for errors raised while handling a line.
    """

    default_message = "log processing failed"

    def __init__(self, message: Optional[str] = None, *, line_num: Optional[int] = None):
        self.message = message or self.default_message
        self.line_num = line_num
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.line_num is None:
            return self.message
        return f"line {self.line_num}: {self.message}"


class ParseError(ChattyLogError):
    """A line had a recognized shape but malformed content."""

    default_message = "parse error"

    def __init__(self, cause: str, *, line_num: Optional[int] = None):
        self.cause = cause
        super().__init__(f"parse error: {cause}", line_num=line_num)


class IncompleteLine(ChattyLogError):
    default_message = "line ended in the middle of a token"


class MissingBeginTimestamp(ChattyLogError):
    default_message = "timestamped line seen before any '# Log started' marker"


class MissingJoinChannel(ChattyLogError):
    default_message = "message seen before any 'You have joined' notice"


class TimestampError(ChattyLogError):
    """A calendar date or clock time could not be constructed."""

    default_message = "invalid timestamp"


class SinkError(ChattyLogError):
    """The sink rejected a message; the original error is ``__cause__``."""

    default_message = "sink rejected message"
