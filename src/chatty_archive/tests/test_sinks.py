"""
Tests for message sinks.
"""

from __future__ import annotations

import csv
import io
import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from chatty_archive.errors import SinkError
from chatty_archive.models import MessageFlag, ResolvedMessage
from chatty_archive.sinks import (
    CsvSink,
    JsonlSink,
    ListSink,
    SqliteSink,
    open_sink,
    strip_sqlite_scheme,
)

PLUS_TWO = timezone(timedelta(hours=2))


def _message(nick: str = "JohnDoe", body: str = "hello", minute: int = 10) -> ResolvedMessage:
    return ResolvedMessage(
        channel="#test",
        nick=nick,
        message=body,
        sent_at=datetime(2017, 10, 6, 0, minute, tzinfo=PLUS_TWO),
        flags=(MessageFlag.MODERATOR, MessageFlag.PRIME),
    )


def _count_messages(db_path: Path) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]


def test_list_sink_collects_and_finalizes() -> None:
    sink = ListSink()
    sink.submit(_message())
    sink.finalize()

    assert sink.messages == [_message()]
    assert sink.finalized


def test_jsonl_sink_writes_one_record_per_line() -> None:
    buffer = io.StringIO()
    with JsonlSink(buffer) as sink:
        sink.submit(_message())
        sink.submit(_message(nick="Jane", body="héllo"))
        sink.finalize()

    records = [json.loads(line) for line in buffer.getvalue().splitlines()]
    assert records[0] == {
        "channel": "#test",
        "nick": "JohnDoe",
        "flags": ["moderator", "prime"],
        "message": "hello",
        "sent_at": "2017-10-06T00:10:00+02:00",
    }
    assert records[1]["message"] == "héllo"
    assert not buffer.closed


def test_csv_sink_writes_header_and_rows(tmp_path: Path) -> None:
    out_path = tmp_path / "nested" / "messages.csv"
    with CsvSink(out_path) as sink:
        sink.submit(_message())
        sink.finalize()

    with out_path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows == [
        {
            "channel": "#test",
            "nick": "JohnDoe",
            "flags": "moderator|prime",
            "message": "hello",
            "sent_at": "2017-10-06T00:10:00+02:00",
        }
    ]
    assert sink.handle.closed


def test_sqlite_sink_stores_users_channels_and_utc_times(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    with SqliteSink(db_path) as sink:
        sink.submit(_message())
        sink.submit(_message(minute=11))
        sink.submit(_message(nick="Jane"))
        sink.finalize()

    with sqlite3.connect(db_path) as conn:
        users = conn.execute("SELECT name FROM users ORDER BY id").fetchall()
        channels = conn.execute("SELECT name FROM channels").fetchall()
        first = conn.execute(
            "SELECT message, flags, sent_at FROM messages ORDER BY id"
        ).fetchone()

    assert users == [("JohnDoe",), ("Jane",)]
    assert channels == [("#test",)]
    assert first == ("hello", "moderator,prime", "2017-10-05 22:10:00")


def test_sqlite_sink_reuses_existing_rows(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    for _ in range(2):
        with SqliteSink(db_path) as sink:
            sink.submit(_message())
            sink.finalize()

    with sqlite3.connect(db_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 1
    assert _count_messages(db_path) == 2


def test_sqlite_sink_commits_full_batches(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    sink = SqliteSink(db_path, batch_size=2)
    for minute in range(3):
        sink.submit(_message(minute=minute))

    assert _count_messages(db_path) == 2
    assert len(sink.message_batch) == 1

    sink.finalize()
    sink.close()
    assert _count_messages(db_path) == 3


def test_sqlite_sink_does_not_flush_on_close(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    with SqliteSink(db_path) as sink:
        sink.submit(_message())

    assert _count_messages(db_path) == 0


def test_sqlite_sink_wraps_database_errors(tmp_path: Path) -> None:
    sink = SqliteSink(tmp_path / "archive.db")
    sink.connection.execute("DROP TABLE messages")
    sink.submit(_message())

    with pytest.raises(SinkError) as excinfo:
        sink.finalize()

    assert isinstance(excinfo.value.__cause__, sqlite3.Error)
    sink.close()


def test_sqlite_sink_rejects_bad_batch_size(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SqliteSink(tmp_path / "archive.db", batch_size=0)


def test_open_sink_selects_format(tmp_path: Path) -> None:
    assert isinstance(open_sink("jsonl", out=io.StringIO()), JsonlSink)
    assert isinstance(open_sink("csv", out=io.StringIO()), CsvSink)
    sink = open_sink("sqlite", database=f"sqlite:///{tmp_path / 'a.db'}")
    assert isinstance(sink, SqliteSink)
    sink.close()
    assert (tmp_path / "a.db").exists()


def test_open_sink_requires_database_for_sqlite() -> None:
    with pytest.raises(ValueError, match="Database URL missing"):
        open_sink("sqlite", database=None)


def test_open_sink_rejects_unknown_format() -> None:
    with pytest.raises(ValueError, match="Invalid output type"):
        open_sink("pg", database="postgres://localhost/db")


def test_strip_sqlite_scheme() -> None:
    assert strip_sqlite_scheme("sqlite:///tmp/a.db") == "tmp/a.db"
    assert strip_sqlite_scheme("/tmp/a.db") == "/tmp/a.db"


def test_text_sink_wraps_open_errors(tmp_path: Path) -> None:
    with pytest.raises(SinkError) as excinfo:
        JsonlSink(tmp_path)

    assert isinstance(excinfo.value.__cause__, OSError)


class FakeConnection:
    """Connection double whose schema setup fails."""

    def __init__(self) -> None:
        self.closed = False

    def executescript(self, script: str) -> None:
        raise sqlite3.OperationalError("disk I/O error")

    def close(self) -> None:
        self.closed = True


def test_sqlite_sink_closes_connection_when_schema_fails(monkeypatch) -> None:
    fake = FakeConnection()
    monkeypatch.setattr(sqlite3, "connect", lambda path: fake)

    with pytest.raises(SinkError):
        SqliteSink("archive.db")

    assert fake.closed
