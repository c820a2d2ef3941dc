"""CLI for archiving execution files."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path

from botocore.exceptions import BotoCoreError
from loguru import logger

from logstore.exceptions import ConfigurationError, StorageError
from logstore.logging_config import setup_logging
from logstore.settings import Settings, StorageSettings
from logstore.storage import ExecutionFileStorage
from logstore.storage.local import LocalLogFileStorage
from logstore.storage.s3 import S3LogFileStorage

EXIT_OK = 0
EXIT_ABSENT = 1
EXIT_CONFIGURATION = 2
EXIT_STORAGE = 3
EXIT_IO = 4


def _context_pair(value: str) -> tuple[str, str]:
    name, separator, content = value.partition("=")
    if not separator or not name.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return name.strip(), content


def open_storage(
    settings: StorageSettings,
    context: Mapping[str, str],
    local_root: Path | None = None,
) -> ExecutionFileStorage:
    if local_root is not None:
        return LocalLogFileStorage(local_root, settings.path, context)
    return S3LogFileStorage.from_settings(settings, context)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="logstore", description="Archive execution logs to object storage")
    parser.add_argument("--config", type=Path, help="YAML configuration file (default: $LOGSTORE_CONFIG or config/default.yaml)")
    parser.add_argument(
        "--context",
        type=_context_pair,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Execution context entry, e.g. execid=42 (repeatable)",
    )
    parser.add_argument("--filetype", default="rdlog", help="Execution file type (default: rdlog)")
    parser.add_argument("--local-root", type=Path, help="Use a local directory instead of S3")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("probe", help="Check whether the file is stored")
    store = commands.add_parser("store", help="Upload a local file")
    store.add_argument("file", type=Path, help="File to upload")
    retrieve = commands.add_parser("retrieve", help="Download the stored file")
    retrieve.add_argument("--output", "-o", type=Path, help="Destination file (default: stdout)")
    commands.add_parser("delete", help="Remove the stored file")
    return parser


def _retrieve_to_file(storage: ExecutionFileStorage, filetype: str, destination: Path) -> None:
    # an existing destination is only replaced once the download is complete
    partial = destination.with_name(destination.name + ".part")
    try:
        with partial.open("wb") as output:
            storage.retrieve(filetype, output)
        os.replace(partial, destination)
    finally:
        partial.unlink(missing_ok=True)


def run(args: argparse.Namespace, storage: ExecutionFileStorage) -> int:
    filetype = args.filetype
    if args.command == "probe":
        present = storage.probe(filetype)
        print("present" if present else "absent")
        return EXIT_OK if present else EXIT_ABSENT

    if args.command == "store":
        stat = args.file.stat()
        last_modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        with args.file.open("rb") as source:
            storage.store(filetype, source, stat.st_size, last_modified)
        return EXIT_OK

    if args.command == "retrieve":
        if args.output is None:
            storage.retrieve(filetype, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            _retrieve_to_file(storage, filetype, args.output)
        return EXIT_OK

    storage.delete(filetype)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.load(args.config)
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return EXIT_CONFIGURATION

    setup_logging(settings.logging)

    context = dict(args.context)
    try:
        storage = open_storage(settings.storage, context, args.local_root)
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return EXIT_CONFIGURATION

    try:
        return run(args, storage)
    except StorageError as exc:
        logger.error(f"Storage error: {exc}")
        return EXIT_STORAGE
    except (OSError, BotoCoreError) as exc:
        # failures while streaming an opened object or file
        logger.error(f"I/O error: {exc}")
        return EXIT_IO


if __name__ == "__main__":
    sys.exit(main())
