"""Storage key templating.

A path template is a slash separated string with ``${job.<name>}``
placeholders, e.g. ``project/${job.project}/${job.execid}``. Each placeholder
is replaced by ``context[<name>]`` for the execution being archived.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

EXECID_PLACEHOLDER = "${job.execid}"
DEFAULT_PATH_FORMAT = "project/${job.project}/" + EXECID_PLACEHOLDER

_PLACEHOLDER_RE = re.compile(r"\$\{job\.([^}]+)\}")
_SLASH_RUN_RE = re.compile(r"/{2,}")


def expand_path(template: str, context: Mapping[str, str]) -> str:
    """Expand ``template`` into a storage key using ``context``.

    Unknown placeholders expand to nothing, and the separator they leave
    behind is folded into its neighbour, so the result never starts with a
    slash and never contains ``//``.
    """

    def _lookup(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        return "" if value is None else str(value)

    expanded = _PLACEHOLDER_RE.sub(_lookup, template.lstrip("/"))
    return _SLASH_RUN_RE.sub("/", expanded).lstrip("/")


def validate_path_template(path: str | None) -> str:
    """Check the structural rules of a path template and return it.

    Raises ValueError with a user facing message when the template is unusable.
    """
    if path is None or not path.strip():
        raise ValueError("path was not set")
    has_execid = EXECID_PLACEHOLDER in path
    if not has_execid and not path.endswith("/"):
        raise ValueError(f"path must contain {EXECID_PLACEHOLDER} or end with /")
    if has_execid and path.endswith("/"):
        raise ValueError(f"path must not end with / when it contains {EXECID_PLACEHOLDER}")
    return path


def is_directory_template(path: str) -> bool:
    return path.endswith("/")


def key_for_filetype(base_key: str, filetype: str, *, directory: bool) -> str:
    """Build the key of one artifact below an already expanded base key."""
    if directory:
        return f"{base_key}{filetype}"
    return f"{base_key}.{filetype}"


__all__ = [
    "DEFAULT_PATH_FORMAT",
    "EXECID_PLACEHOLDER",
    "expand_path",
    "validate_path_template",
    "is_directory_template",
    "key_for_filetype",
]
