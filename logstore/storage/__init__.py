"""Storage abstraction for execution files (S3 or local filesystem fallback)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import BinaryIO, Protocol

from logstore.paths import expand_path, is_directory_template, key_for_filetype

METADATA_PREFIX = "rundeck."
METADATA_CONTEXT_KEYS = ("execid", "project", "url", "serverUrl", "serverUUID")
COPY_BUFFER_SIZE = 64 * 1024


class ExecutionFileStorage(Protocol):
    def probe(self, filetype: str) -> bool:  # True if the file is stored
        ...

    def store(
        self,
        filetype: str,
        stream: BinaryIO,
        content_length: int,
        last_modified: datetime | None,
    ) -> bool:
        ...

    def retrieve(self, filetype: str, output: BinaryIO) -> bool:
        ...

    def delete(self, filetype: str) -> bool:
        ...


@dataclass(frozen=True)
class ExecutionSession:
    """Per-execution state captured once when a storage backend is built."""

    context: Mapping[str, str]
    base_key: str
    directory: bool

    @classmethod
    def create(cls, path_template: str, context: Mapping[str, str]) -> "ExecutionSession":
        frozen = MappingProxyType(dict(context))
        return cls(
            context=frozen,
            base_key=expand_path(path_template, frozen),
            directory=is_directory_template(path_template),
        )

    def key_for(self, filetype: str) -> str:
        return key_for_filetype(self.base_key, filetype, directory=self.directory)


def copy_stream(source: BinaryIO, destination: BinaryIO, buffer_size: int = COPY_BUFFER_SIZE) -> int:
    """Copy ``source`` into ``destination`` chunk by chunk; returns the byte count.

    Neither stream is closed. Errors from either side propagate unchanged.
    """
    copied = 0
    while True:
        chunk = source.read(buffer_size)
        if not chunk:
            return copied
        destination.write(chunk)
        copied += len(chunk)


def build_user_metadata(context: Mapping[str, str]) -> dict[str, str]:
    """Object metadata describing which execution a stored file belongs to."""
    return {
        f"{METADATA_PREFIX}{name}": str(context[name])
        for name in METADATA_CONTEXT_KEYS
        if context.get(name) is not None
    }


__all__ = [
    "ExecutionFileStorage",
    "ExecutionSession",
    "METADATA_CONTEXT_KEYS",
    "COPY_BUFFER_SIZE",
    "copy_stream",
    "build_user_metadata",
]
