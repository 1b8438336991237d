"""Structured key=value logging for the help assistant."""

import logging
import sys
from typing import Any

ROOT_LOGGER_NAME = "help_assistant"

# Request context promoted from `extra` and rendered right after the message
CONTEXT_FIELDS = ("session_id", "user_id", "stage")


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return "[" + ",".join(str(v) for v in value) + "]"
    text = str(value)
    if " " in text or "=" in text:
        return f'"{text}"'
    return text


class StructuredFormatter(logging.Formatter):
    """Fixed fields, then request context, then any extra_data, as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"timestamp={self.formatTime(record, self.datefmt)}",
            f"level={record.levelname}",
            f"logger={record.name}",
            f"function={record.funcName}",
            f"message={record.getMessage()}",
        ]

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                parts.append(f"{field}={_format_value(value)}")

        for key, value in getattr(record, "extra_data", {}).items():
            parts.append(f"{key}={_format_value(value)}")

        if record.exc_info:
            trace = self.formatException(record.exc_info).replace("\n", " | ")
            parts.append(f"exception={_format_value(trace)}")

        return " ".join(parts)


def _configure_root() -> None:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)

    try:
        from help_assistant.core.config import get_settings

        dev = get_settings().ASSISTANT_ENV == "dev"
    except Exception:
        # Settings unavailable (missing env vars at import time)
        dev = False
    root.setLevel(logging.DEBUG if dev else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the help_assistant hierarchy.

    The single stdout handler lives on the "help_assistant" logger; names
    outside the package (scripts, __main__) are nested under it so they
    share that handler and level.

    Args:
        name: Logger name (typically __name__)
    """
    _configure_root()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with request context and arbitrary fields.

    session_id, user_id and stage are promoted to dedicated record
    attributes; everything else goes to extra_data.
    """
    extra: dict[str, Any] = {field: kwargs.pop(field) for field in CONTEXT_FIELDS if field in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
