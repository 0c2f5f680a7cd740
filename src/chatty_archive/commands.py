"""CLI entry point for archiving chatty log files.

Reads one or more chatty logs, resolves every message's timestamp and writes
the messages to JSONL, CSV or an SQLite database. Each file is parsed with
fresh state; the output sink is shared and finalized once at the end.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .driver import parse_file
from .errors import ChattyLogError, SinkError
from .sinks import DEFAULT_BATCH_SIZE, open_sink

OUTPUT_CHOICES = ("jsonl", "csv", "sqlite")


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for ``chatty-archive``."""

    parser = argparse.ArgumentParser(
        prog="chatty-archive",
        description=(
            "Parse chatty log files and save the messages in other formats "
            "or databases"
        ),
    )
    parser.add_argument("files", nargs="+", type=Path, help="Log files to read")
    parser.add_argument(
        "-o",
        "--output",
        required=True,
        choices=OUTPUT_CHOICES,
        help="Output/exporting format",
    )
    parser.add_argument(
        "--database",
        "--db",
        dest="database",
        default=None,
        help=(
            "SQLite database path when saving in a database "
            "(default: $DATABASE_URL, also read from .env)"
        ),
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output file for jsonl/csv (default: stdout)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Messages per database insert (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--encoding", default="utf-8", help="Text encoding of the log files"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("--log-file", help="Also write a detailed log to this path")
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable the per-file progress bar"
    )
    return parser


def configure_logging(verbose: bool, log_file: Optional[str]) -> logging.Logger:
    """Set up the package logger with console and optional file handlers."""

    logger = logging.getLogger("chatty_archive")
    logger.handlers.clear()
    logger.setLevel(logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO if verbose else logging.WARNING)
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)
    if log_file:
        lf_path = Path(log_file).expanduser()
        lf_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(lf_path), encoding="utf-8")
        fh.setLevel(logging.INFO)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(fh)
    return logger


def resolve_database(cli_value: Optional[str]) -> Optional[str]:
    """Return the database location from the CLI or ``DATABASE_URL``."""

    if cli_value:
        return cli_value
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)
    return os.environ.get("DATABASE_URL") or None


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return the process exit status."""

    parser = build_parser()
    args = parser.parse_args(argv)

    for path in args.files:
        if not path.exists():
            parser.error(f"File does not exist: {path}")
        if not path.is_file():
            parser.error(f"Path is not a file: {path}")

    logger = configure_logging(args.verbose, args.log_file)

    database = resolve_database(args.database) if args.output == "sqlite" else None
    try:
        sink = open_sink(
            args.output,
            database=database,
            out=args.out if args.out is not None else sys.stdout,
            batch_size=args.batch_size,
        )
    except ValueError as e:
        parser.error(str(e))
    except SinkError as e:
        logger.error("[CRASH] %s", e)
        return 1

    ok = 0
    fail = 0
    total_messages = 0
    with sink:
        for path in args.files:
            logger.info("Opening log file %s", path)
            try:
                count = parse_file(
                    path,
                    sink,
                    encoding=args.encoding,
                    progress=not args.no_progress,
                )
            except ChattyLogError as e:
                fail += 1
                logger.error("[FAIL] %s: %s", path, e)
                continue
            except (OSError, UnicodeDecodeError) as e:
                fail += 1
                logger.error("[CRASH] %s: %s", path, e)
                continue
            ok += 1
            total_messages += count
            logger.info("[OK] %s (%d messages)", path, count)

        try:
            sink.finalize()
        except SinkError as e:
            logger.error("[CRASH] finalizing output: %s", e)
            return 1

    print(
        f"Summary: ok={ok}, fail={fail}, total={ok + fail}, messages={total_messages}",
        file=sys.stderr,
    )
    return 1 if fail else 0


if __name__ == "__main__":
    raise SystemExit(main())
