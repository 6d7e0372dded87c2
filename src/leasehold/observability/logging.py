"""Structured logging for leasehold.

Every controller runs its refresh loop inside a ``LogContext`` carrying
the election group and the member identity, so log lines from several
controllers in one process can be told apart.

Usage:
    from leasehold.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="INFO")

    with LogContext(group="scheduler", identity="pod-a"):
        logger.info("Starting election")
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

import orjson

group_var: contextvars.ContextVar[str] = contextvars.ContextVar("group", default="")
identity_var: contextvars.ContextVar[str] = contextvars.ContextVar("identity", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "group": group_var,
    "identity": identity_var,
}

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

# Libraries whose INFO output drowns the election logs
_QUIET_LOGGERS = ("redis", "asyncio")


def election_context() -> dict[str, str]:
    """Group and identity of the current context, empty values omitted."""
    return {key: value for key, var in _CONTEXT_VARS.items() if (value := var.get())}


def _jsonable(value: Any) -> Any:
    try:
        orjson.dumps(value)
    except TypeError:
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Example:
        {"timestamp": "2026-01-10T12:34:56.789+00:00", "level": "INFO",
         "logger": "leasehold.election.controller",
         "message": "Member[pod-a] Leadership acquired",
         "group": "scheduler", "identity": "pod-a"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(election_context())

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update(
            (key, _jsonable(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Single-line output for terminals.

    2026-01-10 12:34:56 | INFO     | leasehold.election.controller | Leadership acquired | group=jobs
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        if not self.use_colors:
            return level
        return f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, self.datefmt),
            self._level(record),
            record.name,
            record.getMessage(),
        ]
        group = group_var.get()
        if group:
            parts.append(f"group={group}")
        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Replace the root handlers with a single leasehold handler.

    Args:
        json_format: Emit JSON lines instead of console lines
        level: Root log level name, case-insensitive
        use_colors: Colorize levels when writing to a terminal
        stream: Destination, stderr by default
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """Bind election context for the duration of a ``with`` block.

    Tasks created inside the block inherit the context.
    """

    def __init__(self, **context: str) -> None:
        self.context = {key: value for key, value in context.items() if key in _CONTEXT_VARS}
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.context.items():
            var = _CONTEXT_VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *exc: object) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
