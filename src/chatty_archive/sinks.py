"""Destinations for resolved chat messages.

The stream driver calls :meth:`Sink.submit` once per resolved message. The
caller calls :meth:`Sink.finalize` once all input has been processed; no
sink flushes buffered data implicitly on close or garbage collection.
"""

from __future__ import annotations

import csv
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import timezone
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Tuple, Union

from .errors import SinkError
from .models import ResolvedMessage

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 3000

CSV_FIELDNAMES = ("channel", "nick", "flags", "message", "sent_at")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS channels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users (id),
    channel_id INTEGER NOT NULL REFERENCES channels (id),
    message TEXT NOT NULL,
    flags TEXT NOT NULL,
    sent_at TEXT NOT NULL
);
"""


class Sink(ABC):
    """Receives resolved messages from the stream driver."""

    @abstractmethod
    def submit(self, message: ResolvedMessage) -> None:
        """Record one message. Raise :class:`SinkError` on failure."""

    @abstractmethod
    def finalize(self) -> None:
        """Flush anything still buffered. Raise :class:`SinkError` on failure."""

    def close(self) -> None:
        """Release underlying resources without flushing."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ListSink(Sink):
    """Keep submitted messages in memory."""

    def __init__(self) -> None:
        self.messages: List[ResolvedMessage] = []
        self.finalized = False

    def submit(self, message: ResolvedMessage) -> None:
        self.messages.append(message)

    def finalize(self) -> None:
        self.finalized = True


class _TextSink(Sink):
    """Shared handle management for sinks writing to a text stream.

    A path is opened (and later closed) by the sink; an already open handle
    is written to but left open for its owner.
    """

    def __init__(self, target: Union[Path, str, TextIO]) -> None:
        if isinstance(target, (str, Path)):
            path = Path(target).expanduser()
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                self.handle: TextIO = path.open("w", encoding="utf-8", newline="")
            except OSError as err:
                raise SinkError(f"cannot open output {path}: {err}") from err
            self._owns_handle = True
        else:
            self.handle = target
            self._owns_handle = False

    def finalize(self) -> None:
        try:
            self.handle.flush()
        except OSError as err:
            raise SinkError(f"failed to flush output: {err}") from err

    def close(self) -> None:
        if self._owns_handle and not self.handle.closed:
            self.handle.close()


class JsonlSink(_TextSink):
    """Write one JSON object per message."""

    def submit(self, message: ResolvedMessage) -> None:
        try:
            self.handle.write(json.dumps(message.to_record(), ensure_ascii=False))
            self.handle.write("\n")
        except OSError as err:
            raise SinkError(f"failed to write message: {err}") from err


class CsvSink(_TextSink):
    """Write messages as CSV rows with a header; flags are ``|``-joined."""

    def __init__(self, target: Union[Path, str, TextIO]) -> None:
        super().__init__(target)
        self.writer = csv.DictWriter(self.handle, fieldnames=CSV_FIELDNAMES)
        self.writer.writeheader()

    def submit(self, message: ResolvedMessage) -> None:
        record = message.to_record()
        record["flags"] = "|".join(record["flags"])
        try:
            self.writer.writerow(record)
        except OSError as err:
            raise SinkError(f"failed to write message: {err}") from err


def to_naive_utc(message: ResolvedMessage) -> str:
    """Return ``sent_at`` as naive UTC text for storage."""

    utc = message.sent_at.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(sep=" ")


class SqliteSink(Sink):
    """Batch messages into an SQLite database.

    Users and channels are looked up by name and created when missing; ids
    are cached for the lifetime of the sink. Messages are inserted in
    batches of ``batch_size`` and on :meth:`finalize`.

    Parameters
    ----------
    db_path:
        Database file path, or ``":memory:"``.
    batch_size:
        Number of buffered messages that triggers an insert.
    """

    def __init__(
        self, db_path: Union[Path, str], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.message_batch: List[Tuple[int, int, str, str, str]] = []
        self.user_ids: Dict[str, int] = {}
        self.channel_ids: Dict[str, int] = {}
        try:
            self.connection = sqlite3.connect(str(db_path))
        except sqlite3.Error as err:
            raise SinkError(f"cannot open database {db_path}: {err}") from err
        try:
            self.connection.executescript(SCHEMA)
        except sqlite3.Error as err:
            self.connection.close()
            raise SinkError(f"cannot open database {db_path}: {err}") from err

    def _find_or_create(self, table: str, cache: Dict[str, int], name: str) -> int:
        if name in cache:
            return cache[name]
        row = self.connection.execute(
            f"SELECT id FROM {table} WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            cursor = self.connection.execute(
                f"INSERT INTO {table} (name) VALUES (?)", (name,)
            )
            row_id = cursor.lastrowid
        else:
            row_id = row[0]
        cache[name] = row_id
        return row_id

    def submit(self, message: ResolvedMessage) -> None:
        try:
            user_id = self._find_or_create("users", self.user_ids, message.nick)
            channel_id = self._find_or_create(
                "channels", self.channel_ids, message.channel
            )
        except sqlite3.Error as err:
            raise SinkError(f"failed to store sender or channel: {err}") from err

        self.message_batch.append(
            (
                user_id,
                channel_id,
                message.message,
                ",".join(flag.value for flag in message.flags),
                to_naive_utc(message),
            )
        )
        if len(self.message_batch) >= self.batch_size:
            self.commit()

    def commit(self) -> None:
        """Insert the buffered batch and commit the transaction."""

        try:
            self.connection.executemany(
                "INSERT INTO messages (user_id, channel_id, message, flags, sent_at) "
                "VALUES (?, ?, ?, ?, ?)",
                self.message_batch,
            )
            self.connection.commit()
        except sqlite3.Error as err:
            raise SinkError(f"failed to insert message batch: {err}") from err
        LOGGER.debug("Committed %d messages", len(self.message_batch))
        self.message_batch.clear()

    def finalize(self) -> None:
        self.commit()

    def close(self) -> None:
        if self.message_batch:
            LOGGER.warning(
                "Closing database with %d uncommitted messages", len(self.message_batch)
            )
        self.connection.close()


def open_sink(
    output: str,
    *,
    database: Optional[str] = None,
    out: Optional[Union[Path, str, TextIO]] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Sink:
    """Create the sink selected by an output format name.

    ``output`` is one of ``jsonl``, ``csv`` or ``sqlite`` (alias ``sqlite3``).
    """

    if output == "jsonl":
        if out is None:
            raise ValueError("an output path or handle is required for jsonl")
        return JsonlSink(out)
    if output == "csv":
        if out is None:
            raise ValueError("an output path or handle is required for csv")
        return CsvSink(out)
    if output in ("sqlite", "sqlite3"):
        if not database:
            raise ValueError("Database URL missing")
        return SqliteSink(strip_sqlite_scheme(database), batch_size=batch_size)
    raise ValueError(f"Invalid output type: {output}")


def strip_sqlite_scheme(database: str) -> str:
    """Turn ``sqlite:///path`` into ``path``; other values pass through."""

    prefix = "sqlite:///"
    if database.startswith(prefix):
        return database[len(prefix) :]
    return database
