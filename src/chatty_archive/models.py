"""Typed records produced while reading chatty transcript logs.

The grammar turns each raw line into exactly one :data:`LogEvent` variant.
The stream driver then resolves the partial timestamps carried by those
events into absolute, offset-aware ``datetime`` values and hands completed
messages to a sink as :class:`ResolvedMessage` records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, Tuple, Union


class MessageFlag(str, Enum):
    """Role flags attached to a message sender.

    Values
    ------
    BROADCASTER:
        Channel owner, written as ``~`` before the name.
    MODERATOR:
        Channel moderator, written as ``@``.
    PRIME:
        Prime/turbo user, written as ``+``.
    SUBSCRIBER:
        Channel subscriber, written as ``%``.
    STAFF:
        Platform staff. No sigil exists for this flag in the log text, so it
        is never produced by the grammar and only appears when constructed
        directly.
    """

    BROADCASTER = "broadcaster"
    MODERATOR = "moderator"
    PRIME = "prime"
    SUBSCRIBER = "subscriber"
    STAFF = "staff"


SIGIL_FLAGS = {
    "+": MessageFlag.PRIME,
    "@": MessageFlag.MODERATOR,
    "%": MessageFlag.SUBSCRIBER,
    "~": MessageFlag.BROADCASTER,
}


@dataclass(frozen=True)
class Sender:
    """Message author and the flags decoded from the name's sigils.

    ``flags`` keeps the order in which the sigils appeared in the text.
    """

    name: str
    flags: Tuple[MessageFlag, ...] = ()


@dataclass(frozen=True)
class RawTimestamp:
    """Bracketed stamp as written in the log; ``date`` is optional."""

    time: time
    date: Optional[date] = None


@dataclass(frozen=True)
class SessionBegin:
    at: datetime


@dataclass(frozen=True)
class SessionEnd:
    at: datetime


@dataclass(frozen=True)
class ChannelJoined:
    time: RawTimestamp
    channel: str


@dataclass(frozen=True)
class Message:
    time: RawTimestamp
    sender: Sender
    body: str


@dataclass(frozen=True)
class SystemNotice:
    time: RawTimestamp
    body: str


@dataclass(frozen=True)
class Separator:
    pass


@dataclass(frozen=True)
class Unclassified:
    text: str


LogEvent = Union[
    SessionBegin,
    SessionEnd,
    ChannelJoined,
    Message,
    SystemNotice,
    Separator,
    Unclassified,
]


@dataclass
class ResolverState:
    """Running state for a single log stream.

    Parameters
    ----------
    last_timestamp:
        Most recently resolved absolute timestamp (the anchor). Unset until
        a session marker or a resolved line has been seen.
    channel:
        Channel named by the latest ``You have joined`` notice.
    """

    last_timestamp: Optional[datetime] = None
    channel: Optional[str] = None


@dataclass(frozen=True)
class ResolvedMessage:
    """A chat message with its channel and absolute timestamp resolved."""

    channel: str
    nick: str
    message: str
    sent_at: datetime
    flags: Tuple[MessageFlag, ...] = field(default_factory=tuple)

    def to_record(self) -> dict:
        """Return a JSON-serializable mapping for export sinks."""

        return {
            "channel": self.channel,
            "nick": self.nick,
            "flags": [flag.value for flag in self.flags],
            "message": self.message,
            "sent_at": self.sent_at.isoformat(),
        }
