"""
Inspect CLI tool for dbjson.

Reads the local and remote replica documents directly and prints merged
views as JSON. It never writes either document.

Usage:
    dbjson-inspect index songs
    dbjson-inspect item songs.Petrichor
    dbjson-inspect record songs 1 --columns name scratch --entries all
    dbjson-inspect table songs --columns name
    dbjson-inspect next-id songs

Invariants:
    - Replica files are opened read-only; missing files read as empty
    - Domain errors exit with status 1, usage errors with status 2
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from ..config import StorageConfig
from ..errors import DbJsonError
from ..replica import JsonFileReplica, ReadOnlyReplica
from ..store import VersionedStore

logger = logging.getLogger(__name__)


class InspectCLI:
    """Read-only views over a pair of replica documents.

    Example:
        >>> cli = InspectCLI(StorageConfig(data_dir="/srv/dbjson"))
        >>> cli.next_id("songs")
        4
    """

    def __init__(self, storage: StorageConfig) -> None:
        self.storage = storage
        self.store = VersionedStore(
            self._open(storage.local_path),
            self._open(storage.remote_path),
            root_key=storage.root_key,
        )

    def _open(self, path: Path) -> ReadOnlyReplica:
        return ReadOnlyReplica(JsonFileReplica(path, root_key=self.storage.root_key, create=False))

    def index(self, path: str) -> List[str]:
        return self.store.get_index(path)

    def item(self, path: str) -> Any:
        return self.store.get_item(path)

    def record(self, table: str, record_id: int, columns: Optional[List[str]], entries: str) -> Any:
        return self.store.get_record(table, record_id, columns or "all", entries)

    def table(self, table: str, columns: Optional[List[str]], entries: str) -> Any:
        return self.store.get_table(table, columns or "all", entries)

    def next_id(self, table: str) -> int:
        return self.store.next_id(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbjson-inspect",
        description="Inspect dbjson replica documents",
    )
    parser.add_argument("--data-dir", help="Directory holding the replica documents")
    parser.add_argument("--local-file", help="Local replica file name")
    parser.add_argument("--remote-file", help="Remote replica file name")
    parser.add_argument("--indent", type=int, default=2, help="JSON output indent")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    index_parser = subparsers.add_parser("index", help="List child keys under a path")
    index_parser.add_argument("path", nargs="?", default="", help="Dotted path")

    item_parser = subparsers.add_parser("item", help="Show the merged subtree at a path")
    item_parser.add_argument("path", nargs="?", default="", help="Dotted path")

    record_parser = subparsers.add_parser("record", help="Show one record's history")
    record_parser.add_argument("table", help="Table name")
    record_parser.add_argument("id", type=int, help="Record id")
    record_parser.add_argument("--columns", nargs="+", help="Columns (default: all)")
    record_parser.add_argument("--entries", default="1", help="History window: N or 'all'")

    table_parser = subparsers.add_parser("table", help="Show every record of a table")
    table_parser.add_argument("table", help="Table name")
    table_parser.add_argument("--columns", nargs="+", help="Columns (default: all)")
    table_parser.add_argument("--entries", default="1", help="History window: N or 'all'")

    next_id_parser = subparsers.add_parser("next-id", help="Show the id the next record would get")
    next_id_parser.add_argument("table", help="Table name")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    env = StorageConfig.from_env()
    storage = StorageConfig(
        data_dir=args.data_dir or env.data_dir,
        local_file=args.local_file or env.local_file,
        remote_file=args.remote_file or env.remote_file,
        root_key=env.root_key,
    )

    try:
        cli = InspectCLI(storage)
        if args.command == "index":
            output = cli.index(args.path)
        elif args.command == "item":
            output = cli.item(args.path)
        elif args.command == "record":
            output = cli.record(args.table, args.id, args.columns, args.entries)
        elif args.command == "table":
            output = cli.table(args.table, args.columns, args.entries)
        else:
            output = cli.next_id(args.table)
    except DbJsonError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=args.indent or None, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
