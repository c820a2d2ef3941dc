"""loguru sinks for logstore.

Storage backends log through :func:`get_logger`, binding the bucket (or root),
key and operation of the request. In JSON mode those bound fields become
top-level keys of each line, next to the fields of the ``StorageError`` raised
for the same failure.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger

from logstore.settings import LoggingSettings

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | "
    "<level>{message}</level>"
)

# extra keys starting with an underscore are internal to the formatters
_SERIALIZED = "_json"


def _json_format(record: dict[str, Any]) -> str:
    payload: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "source": f"{record['name']}:{record['function']}:{record['line']}",
    }
    for name, value in record["extra"].items():
        if not name.startswith("_"):
            payload[name] = value if isinstance(value, (int, float, bool)) or value is None else str(value)
    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "value": str(exc_value) if exc_value else None,
        }
    # the returned string is a format template, so the JSON goes through extra
    record["extra"][_SERIALIZED] = json.dumps(payload, ensure_ascii=False)
    return "{extra[" + _SERIALIZED + "]}\n"


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Replace loguru's default sink with the configured ones.

    Console output goes to stderr so ``logstore retrieve`` can stream the
    stored file to stdout. ``settings.log_file`` adds a rotating file sink.
    """
    settings = settings or LoggingSettings()
    formatter: Any = _json_format if settings.json_format else TEXT_FORMAT

    logger.remove()
    logger.configure(extra={"component": "logstore"})
    logger.add(sys.stderr, format=formatter, level=settings.level, colorize=not settings.json_format)

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            format=formatter,
            level=settings.level,
            colorize=False,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )


def get_logger(component: str, **fields: Any) -> Any:
    """Logger bound to ``component`` and any request fields (bucket, key, ...)."""
    return logger.bind(component=component, **fields)


__all__ = ["TEXT_FORMAT", "setup_logging", "get_logger"]
