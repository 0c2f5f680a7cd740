"""Per-stream control loop turning log lines into resolved messages.

The driver reads one line at a time, classifies it, advances the
:class:`~chatty_archive.models.ResolverState` and submits each resolved
message to a sink. The first fatal error stops the stream; lines that match
no grammar rule are logged and skipped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from tqdm import tqdm

from .errors import ChattyLogError, MissingBeginTimestamp, MissingJoinChannel, SinkError
from .grammar import classify_line
from .models import (
    ChannelJoined,
    LogEvent,
    Message,
    ResolvedMessage,
    ResolverState,
    Separator,
    SessionBegin,
    SessionEnd,
    SystemNotice,
    Unclassified,
)
from .resolver import resolve_timestamp
from .sinks import Sink

LOGGER = logging.getLogger(__name__)


def _advance(state: ResolverState, event) -> None:
    """Resolve the event's stamp against the anchor and move the anchor."""

    if state.last_timestamp is None:
        raise MissingBeginTimestamp()
    state.last_timestamp = resolve_timestamp(event.time, state.last_timestamp)


def _submit(sink: Sink, message: ResolvedMessage) -> None:
    try:
        sink.submit(message)
    except SinkError:
        raise
    except Exception as err:
        raise SinkError(f"sink rejected message: {err}") from err


def apply_event(
    state: ResolverState, event: LogEvent, sink: Sink
) -> Optional[ResolvedMessage]:
    """Apply one classified event to ``state``.

    Returns the message submitted to ``sink``, if the event produced one.

    Raises
    ------
    MissingJoinChannel
        A message arrived before any channel was joined.
    MissingBeginTimestamp
        A timestamped line arrived before any session marker.
    TimestampError
        The stamp could not be resolved.
    SinkError
        The sink failed to record the message.
    """

    if isinstance(event, (SessionBegin, SessionEnd)):
        state.last_timestamp = event.at
    elif isinstance(event, Message):
        if state.channel is None:
            raise MissingJoinChannel()
        _advance(state, event)
        message = ResolvedMessage(
            channel=state.channel,
            nick=event.sender.name,
            message=event.body,
            sent_at=state.last_timestamp,
            flags=event.sender.flags,
        )
        _submit(sink, message)
        return message
    elif isinstance(event, ChannelJoined):
        _advance(state, event)
        state.channel = event.channel
    elif isinstance(event, SystemNotice):
        _advance(state, event)
    elif isinstance(event, (Separator, Unclassified)):
        pass
    else:
        raise TypeError(f"unknown log event {event!r}")
    return None


def process_line(
    state: ResolverState, line: str, line_num: int, sink: Sink
) -> Optional[ResolvedMessage]:
    """Classify and apply a single raw line.

    The line terminator is stripped first. Errors are tagged with
    ``line_num`` before being re-raised.
    """

    text = line.rstrip("\r\n")
    try:
        event = classify_line(text)
        if isinstance(event, Unclassified):
            LOGGER.warning(
                "Unknown line type encountered, ignoring line %d\n%s",
                line_num,
                event.text,
            )
        return apply_event(state, event, sink)
    except ChattyLogError as err:
        if err.line_num is None:
            err.line_num = line_num
        raise


def parse_stream(lines: Iterable[str], sink: Sink) -> int:
    """Process every line of one log stream with fresh state.

    ``lines`` is consumed lazily, so arbitrarily large inputs are fine. The
    sink is not finalized here; that is left to the caller.

    Returns
    -------
    int
        Number of messages submitted to ``sink``.
    """

    state = ResolverState()
    submitted = 0
    for line_num, line in enumerate(lines, start=1):
        if process_line(state, line, line_num, sink) is not None:
            submitted += 1
    return submitted


def parse_file(
    path: Union[Path, str],
    sink: Sink,
    *,
    encoding: str = "utf-8",
    progress: bool = False,
) -> int:
    """Stream a log file from disk through :func:`parse_stream`."""

    path = Path(path)
    with path.open("r", encoding=encoding, newline="") as handle:
        lines = tqdm(handle, desc=path.name, unit="line", disable=not progress)
        return parse_stream(lines, sink)
