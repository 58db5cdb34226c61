"""
Command line access to a span object store.

    span-store --db objects.db put "holiday photos" photos.zip
    span-store --db objects.db list
    span-store --db objects.db get 1 -o photos.zip
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .backends.base import ObjectBackend
from .chunking import SPAN_SIZE
from .logging_utils import configure_structured_logging
from .results import StorageResult
from .service import ObjectStoreService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="span-store",
        description="Store and fetch large objects as bounded spans in a relational database",
    )
    parser.add_argument("--db", default=":memory:", help="Database file (default: in-memory)")
    parser.add_argument(
        "--backend",
        choices=("sqlite", "duckdb"),
        default="sqlite",
        help="Relational engine to use",
    )
    parser.add_argument(
        "--span-size",
        type=int,
        default=SPAN_SIZE,
        help=f"Maximum bytes per span row (default: {SPAN_SIZE})",
    )
    parser.add_argument(
        "--non-atomic",
        action="store_true",
        help="Commit each span separately instead of one transaction per upload",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")

    commands = parser.add_subparsers(dest="command", required=True)

    put = commands.add_parser("put", help="Store a message with an optional file")
    put.add_argument("text", help="Descriptive label")
    put.add_argument("file", nargs="?", type=Path, help="File to attach")

    get = commands.add_parser("get", help="Fetch an object's payload")
    get.add_argument("target", help="Object target")
    get.add_argument("-o", "--output", type=Path, help="Write the payload to this file")

    listing = commands.add_parser("list", help="List recent objects")
    listing.add_argument("--limit", type=int, default=None, help="Maximum objects to list")

    return parser


async def _open_backend(args: argparse.Namespace) -> ObjectBackend:
    if args.backend == "duckdb":
        from .backends.duckdb import DuckDBBackend, DuckDBConfig

        return await DuckDBBackend.create(
            DuckDBConfig(
                db_path=args.db, span_size=args.span_size, atomic_uploads=not args.non_atomic
            )
        )

    from .backends.sqlite import SQLiteBackend, SQLiteConfig

    return await SQLiteBackend.create(
        SQLiteConfig(db_path=args.db, span_size=args.span_size, atomic_uploads=not args.non_atomic)
    )


async def run(args: argparse.Namespace) -> StorageResult:
    """Execute one parsed command."""
    try:
        backend = await _open_backend(args)
    except Exception as e:
        return StorageResult.failure(e)

    async with backend:
        service = ObjectStoreService(backend)
        if args.command == "put":
            return await service.send_message(args.text, args.file)
        if args.command == "list":
            return await service.list_recent(args.limit)
        if args.output is not None:
            return await service.save_object(args.target, args.output)
        return await service.read_object(args.target)


def _configure_logging(args: argparse.Namespace) -> None:
    level = getattr(logging, str(args.log_level).upper(), logging.WARNING)
    if args.json_logs:
        configure_structured_logging(level)
    else:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)

    result = asyncio.run(run(args))
    output: dict[str, Any] = result.to_dict()
    print(json.dumps(output, indent=2, default=str))
    return 0 if result.is_ok else 1


if __name__ == "__main__":
    sys.exit(main())
