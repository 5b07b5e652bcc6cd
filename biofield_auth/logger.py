"""
Session Logging.

JSON-lines logging for the session core.  Every lifecycle event is
emitted with ``extra={"event": ...}`` and lands under the ``"extra"`` key
of the JSON entry, next to the other structured fields of the call.

Credentials never reach a sink: fields named like a token or password are
masked by :class:`JSONFormatter` before serialization.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

# Keys whose values are masked in every entry.
REDACTED_FIELDS: frozenset[str] = frozenset({
    "password",
    "current_password",
    "new_password",
    "token",
    "id_token",
    "refresh_token",
    "access_token",
})

_MASK: str = "***"

_RESERVED: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object.

    Keys: ``timestamp`` (UTC ISO-8601), ``level``, ``logger_name``,
    ``message``, plus ``extra`` for caller fields and ``exception`` for a
    formatted traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra: dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _RESERVED:
                continue
            extra[key] = _MASK if key in REDACTED_FIELDS else _json_value(value)
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable wrapper over a named ``logging.Logger``.

    Handlers are attached once per logger name: a console handler on
    *stream* (stdout by default) and, unless the resolved log file is
    empty, a rotating file handler.  Sizes and the file path default to
    ``LOG_MAX_BYTES``, ``LOG_BACKUP_COUNT`` and ``LOG_FILE`` from the
    application config.

    Usage::

        log = StructuredLogger(name="session")
        log.info("Session restored", extra={"event": "SESSION_RESTORED"})
    """

    def __init__(
        self,
        name: str = "biofield",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if self._logger.handlers:
            return

        # Deferred: config imports the logging module for its own warnings.
        from biofield_auth.config import get_config
        cfg = get_config()

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        path = cfg.LOG_FILE if log_file is None else log_file
        if path:
            self._attach_file(
                path,
                formatter,
                max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
            )

    def _attach_file(
        self,
        path: str,
        formatter: logging.Formatter,
        max_bytes: int,
        backup_count: int,
    ) -> None:
        try:
            log_path = Path(path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); logging to console only.", path, exc,
            )
            return
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "biofield") -> StructuredLogger:
    """Return a ``StructuredLogger`` for *name* with config defaults."""
    return StructuredLogger(name=name)
