"""
Structured JSON Logging Module.

Every session component writes one JSON object per line through a
``StructuredLogger``.  Credentials travel through the same code paths
as ordinary data (login bodies, bearer headers, token responses), so
the formatter scrubs them before anything reaches stdout or the
rotating log file:

- ``extra`` keys naming a secret (``password``, ``access_token``,
  ``Authorization`` ...) are replaced by ``REDACTED``, at any depth;
- ``Bearer <token>`` fragments are masked in messages, string values
  and exception text.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Optional, TextIO, Union

if TYPE_CHECKING:
    from taskdesk.config import AppConfig

REDACTED: str = "***"

# Compared case-insensitively, with dashes folded to underscores.
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password",
    "confirm_password",
    "current_password",
    "new_password",
    "access_token",
    "refresh_token",
    "token",
    "authorization",
})

_BEARER_RE = re.compile(r"(\bBearer\s+)[^\s\"',;]+", re.IGNORECASE)


def is_sensitive_key(key: str) -> bool:
    return key.lower().replace("-", "_") in SENSITIVE_KEYS


def mask_bearer(text: str) -> str:
    """Replace the credential part of any ``Bearer <token>`` in *text*."""
    return _BEARER_RE.sub(rf"\g<1>{REDACTED}", text)


def redact(value: object) -> object:
    """Return a JSON-ready copy of *value* with secrets removed."""
    if isinstance(value, dict):
        return {
            str(key): REDACTED if is_sensitive_key(str(key)) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    if isinstance(value, str):
        return mask_bearer(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return mask_bearer(str(value))


class JSONFormatter(logging.Formatter):
    """Formats log records as redacted JSON objects.

    Each log entry contains:
        - timestamp  (ISO-8601, UTC)
        - level      (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - logger_name
        - message
        - extra      (fields passed via the `extra` kwarg, secrets masked)
        - exception  (formatted traceback, when one is attached)
    """

    # Standard LogRecord attribute names, computed once.
    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": mask_bearer(record.getMessage()),
        }

        extra_fields = redact({
            key: value
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        })
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = mask_bearer(record.exc_text)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger:
    """Injectable logger factory.

    Instantiate this class and pass the resulting object wherever a logger
    is needed.  The underlying ``logging.Logger`` is exposed via the
    ``.logger`` attribute and standard convenience methods are delegated
    directly.

    Usage::

        log = StructuredLogger(name="taskdesk.session", config=config)
        log.info("User logged in", extra={"event": "LOGIN", "user_id": 7})

    File name, rotation size and backup count come from *config* (or the
    cached ``get_config()`` when none is injected) unless given here.
    """

    def __init__(
        self,
        name: str = "taskdesk",
        level: int = logging.INFO,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        config: Optional["AppConfig"] = None,
    ) -> None:
        if config is None:
            # Lazy import: config -> models -> utils.audit imports this module.
            from taskdesk.config import get_config
            config = get_config()

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)

        # Prevent duplicate handlers when the same name is reused.
        if self._logger.handlers:
            return

        formatter = JSONFormatter()

        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        resolved_log_file: str = log_file or config.LOG_FILE
        try:
            log_path = Path(resolved_log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes if max_bytes is not None else config.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else config.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self._logger.addHandler(file_handler)
        except OSError as exc:
            self._logger.warning(
                "Could not create log file '%s': %s. "
                "Continuing with console logging only.",
                resolved_log_file,
                exc,
            )

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying ``logging.Logger`` directly."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "taskdesk", config: Optional["AppConfig"] = None) -> StructuredLogger:
    """Return a ``StructuredLogger`` called *name*, configured from *config*."""
    return StructuredLogger(name=name, config=config)
