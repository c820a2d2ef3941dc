"""Resolve the AWS credentials configured for the log store."""

from __future__ import annotations

import string
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from logstore.exceptions import ConfigurationError
from logstore.settings import StorageSettings

ACCESS_KEY_PROPERTY = "accessKey"
SECRET_KEY_PROPERTY = "secretKey"

_SEPARATORS = "=:"
_WHITESPACE = " \t\f"
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


@dataclass(frozen=True)
class StaticCredentials:
    access_key_id: str
    secret_access_key: str

    def __repr__(self) -> str:
        return f"StaticCredentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


def _logical_lines(text: str) -> Iterator[str]:
    """Join continued lines; drop blank and comment lines."""
    pending: str | None = None
    for natural in text.splitlines():
        line = natural.lstrip(_WHITESPACE)
        if pending is None and (not line or line[0] in "#!"):
            continue
        # an odd number of trailing backslashes continues the line
        if (len(line) - len(line.rstrip("\\"))) % 2:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    chars: list[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        index += 1
        if char != "\\" or index == len(text):
            chars.append(char)
            continue
        char = text[index]
        index += 1
        if char == "u":
            digits = text[index : index + 4]
            if len(digits) != 4 or any(digit not in string.hexdigits for digit in digits):
                raise ValueError(f"Malformed \\uxxxx escape: \\u{digits}")
            chars.append(chr(int(digits, 16)))
            index += 4
        else:
            chars.append(_ESCAPES.get(char, char))
    return "".join(chars)


def _split_entry(line: str) -> tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in _SEPARATORS or char in _WHITESPACE:
            break
        index += 1
    key, rest = line[:index], line[index:].lstrip(_WHITESPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_WHITESPACE)
    return _unescape(key), _unescape(rest)


def read_properties(path: Path) -> dict[str, str]:
    """Read a Java properties file.

    Keys end at the first unescaped ``=``, ``:`` or whitespace. Lines ending
    in a backslash continue on the next line, ``\\t``/``\\n``/``\\uXXXX`` style
    escapes are decoded, and ``#``/``!`` start a comment line.

    Raises:
        ValueError: On a malformed ``\\uXXXX`` escape.
    """
    properties: dict[str, str] = {}
    for line in _logical_lines(path.read_text(encoding="utf-8")):
        key, value = _split_entry(line)
        properties[key] = value
    return properties


def load_credentials_file(path: Path) -> StaticCredentials:
    if not path.is_file():
        raise ConfigurationError(
            f"Credentials file does not exist or cannot be read: {path}", {"path": str(path)}
        )
    try:
        properties = read_properties(path)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(
            f"Credentials file does not exist or cannot be read: {path}", {"path": str(path)}
        ) from exc

    access_key = properties.get(ACCESS_KEY_PROPERTY)
    secret_key = properties.get(SECRET_KEY_PROPERTY)
    if not access_key or not secret_key:
        raise ConfigurationError(
            f"Credentials file {path} doesn't contain the expected properties "
            f"'{ACCESS_KEY_PROPERTY}' and '{SECRET_KEY_PROPERTY}'.",
            {"path": str(path)},
        )
    return StaticCredentials(access_key, secret_key)


def resolve_credentials(settings: StorageSettings) -> StaticCredentials | None:
    """Pick the credentials for ``settings``.

    Explicit keys win over a credentials file. ``None`` means boto3's default
    credential chain (environment, shared config, instance profile) applies.
    """
    access_key = settings.access_key_id
    secret_key = settings.secret_access_key
    if access_key or secret_key:
        if not (access_key and secret_key):
            raise ConfigurationError(
                "access_key_id and secret_access_key must both be configured."
            )
        return StaticCredentials(access_key, secret_key)

    if settings.credentials_file is not None:
        return load_credentials_file(settings.credentials_file)

    return None


__all__ = [
    "StaticCredentials",
    "read_properties",
    "load_credentials_file",
    "resolve_credentials",
]
