"""Logging setup for Charon.

Human-readable console lines and optional JSON lines, both tagged with the
correlation ID of the command being processed and any structured context
passed through ``extra``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from charon.const import YES_ANSWER
from charon.correlation import get_correlation_id

__all__ = [
    "CharonLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "configure_foreign_loggers",
    "get_logger",
    "set_global_level",
]

_loggers: dict[str, CharonLogger] = {}


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``timestamp level [module:line] [corr-id] > message | key=value``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        formatted = super().format(record)
        context = _context_of(record)
        if context:
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


class CharonLogger:
    """Thin wrapper over :class:`logging.Logger` taking structured ``extra`` context."""

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        level: int = logging.INFO,
    ) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(level)
        if not self.logger.handlers:
            self._configure_handlers(log_format, json_file)

    def _configure_handlers(self, log_format: str, json_file: str | Path | None) -> None:
        if log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                self.logger.addHandler(json_handler)

        if log_format in ("human", "both") or not self.logger.handlers:
            human_handler = logging.StreamHandler(sys.stdout)
            human_handler.setFormatter(HumanReadableFormatter())
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra, stacklevel=2)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(name: str) -> CharonLogger:
    """Get or create the CharonLogger for ``name``.

    Output format comes from ``CHARON_LOG_FORMAT`` (``human``, ``json`` or
    ``both``) and ``CHARON_LOG_JSON_FILE``; ``CHARON_DEBUG`` lowers the level
    to DEBUG.
    """
    if name in _loggers:
        return _loggers[name]
    debug = os.environ.get("CHARON_DEBUG", "0").casefold() in YES_ANSWER
    logger = CharonLogger(
        name=name,
        log_format=os.environ.get("CHARON_LOG_FORMAT", "human"),
        json_file=os.environ.get("CHARON_LOG_JSON_FILE") or None,
        level=logging.DEBUG if debug else logging.INFO,
    )
    _loggers[name] = logger
    return logger


def set_global_level(level: int) -> None:
    """Apply ``level`` to every Charon logger created so far (used by ``--debug``)."""
    for logger in _loggers.values():
        logger.set_level(level)


def configure_foreign_loggers() -> None:
    """Route uvicorn and aiomqtt logs through one plain stdout handler."""
    foreign_handler = logging.StreamHandler(sys.stdout)
    foreign_handler.setLevel(logging.INFO)
    foreign_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s.%(msecs)03d %(levelname)s (%(name)s) > %(message)s",
            "%m/%d/%y %H:%M:%S",
        ),
    )
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "aiomqtt"):
        foreign_logger = logging.getLogger(name)
        foreign_logger.setLevel(logging.INFO)
        foreign_logger.propagate = False
        foreign_logger.handlers = [foreign_handler]
