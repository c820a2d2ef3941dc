from __future__ import annotations

import json
import os
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO

from logstore.exceptions import StorageError
from logstore.logging_config import get_logger
from logstore.storage import ExecutionSession, build_user_metadata, copy_stream

METADATA_SUFFIX = ".meta.json"
PARTIAL_SUFFIX = ".part"


class LocalLogFileStorage:
    """Execution file storage below a local directory, using the S3 key layout.

    Files are written next to their final name and renamed into place once
    complete, so an interrupted ``store`` never leaves a file that ``probe``
    reports as present.
    """

    def __init__(self, root: Path, path_template: str, context: Mapping[str, str]) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.session = ExecutionSession.create(path_template, context)

    def key_for(self, filetype: str) -> str:
        return self.session.key_for(filetype)

    def _path(self, filetype: str) -> Path:
        return self.root / self.key_for(filetype)

    @staticmethod
    def _metadata_path(path: Path) -> Path:
        return path.with_name(path.name + METADATA_SUFFIX)

    def _log(self, operation: str, path: Path) -> Any:
        return get_logger(__name__, root=str(self.root), path=str(path), operation=operation)

    def _failure(self, operation: str, path: Path, exc: Exception) -> StorageError:
        self._log(operation, path).error(f"Local {operation} failed for {path}: {exc}")
        return StorageError(str(exc), {"root": str(self.root), "path": str(path), "operation": operation})

    def probe(self, filetype: str) -> bool:
        return self._path(filetype).is_file()

    def store(
        self,
        filetype: str,
        stream: BinaryIO,
        content_length: int,
        last_modified: datetime | None,
    ) -> bool:
        path = self._path(filetype)
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        metadata = {
            "content_length": content_length,
            "last_modified": last_modified.isoformat() if last_modified else None,
            "metadata": build_user_metadata(self.session.context),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as target:
                copy_stream(stream, target)
            if last_modified is not None:
                timestamp = last_modified.timestamp()
                os.utime(partial, (timestamp, timestamp))
            self._metadata_path(path).write_text(json.dumps(metadata), encoding="utf-8")
            os.replace(partial, path)
        except OSError as exc:
            raise self._failure("store", path, exc) from exc
        finally:
            partial.unlink(missing_ok=True)
        self._log("store", path).info(f"Stored {path} ({content_length} bytes)")
        return True

    def retrieve(self, filetype: str, output: BinaryIO) -> bool:
        path = self._path(filetype)
        try:
            source = path.open("rb")
        except OSError as exc:
            raise self._failure("retrieve", path, exc) from exc

        with source:
            copied = copy_stream(source, output)
        self._log("retrieve", path).info(f"Retrieved {path} ({copied} bytes)")
        return True

    def delete(self, filetype: str) -> bool:
        path = self._path(filetype)
        try:
            path.unlink(missing_ok=True)
            self._metadata_path(path).unlink(missing_ok=True)
        except OSError as exc:
            raise self._failure("delete", path, exc) from exc
        self._log("delete", path).info(f"Deleted {path}")
        return True


__all__ = ["LocalLogFileStorage"]
