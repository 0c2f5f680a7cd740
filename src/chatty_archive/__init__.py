"""Chatty log parsing package metadata and public exports."""

from .driver import apply_event, parse_file, parse_stream, process_line
from .errors import (
    ChattyLogError,
    IncompleteLine,
    MissingBeginTimestamp,
    MissingJoinChannel,
    ParseError,
    SinkError,
    TimestampError,
)
from .grammar import classify_line, classify_lines
from .models import (
    ChannelJoined,
    Message,
    MessageFlag,
    RawTimestamp,
    ResolvedMessage,
    ResolverState,
    Sender,
    Separator,
    SessionBegin,
    SessionEnd,
    SystemNotice,
    Unclassified,
)
from .resolver import resolve_timestamp
from .sinks import CsvSink, JsonlSink, ListSink, Sink, SqliteSink, open_sink
