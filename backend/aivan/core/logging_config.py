"""
Logging setup for the Aivan backend.

Two sinks, both optional:
- console: one colored line per record, with the user of the record (if
  any) appended as ``[user=...]``
- file: rotating JSON lines carrying the record's ``extra_fields``

Structured fields are passed as ``extra={"extra_fields": {...}}``. Before a
record reaches the file, credentials are masked, inline base64 payloads
(attachments, generated images) are replaced by their size and user
emails are partially hidden.
"""

import copy
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

SENSITIVE_KEYS = ('password', 'secret', 'authorization', 'api_key', 'api-key')
PAYLOAD_KEYS = ('data', 'image', 'attachment')
EMAIL_KEYS = ('user', 'email', 'useremail')
MAX_PAYLOAD_CHARS = 256

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PLAIN_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def mask_email(value: str) -> str:
    """``dana@example.com`` -> ``d***@example.com``."""
    local, sep, domain = value.partition("@")
    if not sep or not local:
        return value
    return f"{local[0]}***@{domain}"


def _key_matches(key: Any, candidates: Iterable[str]) -> bool:
    lowered = str(key).lower()
    return any(candidate in lowered for candidate in candidates)


def filter_sensitive_data(data: Any, sensitive_keys: Optional[Iterable[str]] = None) -> Any:
    """
    Copy of ``data`` that is safe to write to a log file.

    - values under credential-like keys become "***FILTERED***"
    - long strings under payload keys become "<N chars>"
    - values under user/email keys are masked with ``mask_email``
    """
    sensitive_keys = tuple(sensitive_keys or SENSITIVE_KEYS)

    if isinstance(data, list):
        return [filter_sensitive_data(item, sensitive_keys) for item in data]
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if _key_matches(key, sensitive_keys):
            filtered[key] = "***FILTERED***"
        elif isinstance(value, str) and len(value) > MAX_PAYLOAD_CHARS and str(key).lower() in PAYLOAD_KEYS:
            filtered[key] = f"<{len(value)} chars>"
        elif isinstance(value, str) and str(key).lower() in EMAIL_KEYS:
            filtered[key] = mask_email(value)
        else:
            filtered[key] = filter_sensitive_data(value, sensitive_keys)
    return filtered


def truncate_large_data(data: str, max_length: int = 5000) -> str:
    """Cut long strings (model replies, base64 payloads) before logging them."""
    if len(data) <= max_length:
        return data
    return data[:max_length] + f"... (truncated, total length: {len(data)})"


class ColoredFormatter(logging.Formatter):
    """Console formatter: colored level name and the record's user."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Records are shared between handlers; never mutate the original.
        record = copy.copy(record)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname:8s}{self.RESET}"
        line = super().format(record)

        user = (getattr(record, 'extra_fields', None) or {}).get('user')
        if user:
            line += f" [user={mask_email(str(user))}]"
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            entry.update(filter_sensitive_data(extra_fields))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(config: Any, level: int) -> logging.Handler:
    log_path = Path(config.log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # 10 MB per file, 5 backups
    handler = logging.handlers.RotatingFileHandler(
        filename=log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    if config.log_json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(config: Any) -> None:
    """
    Configure the root logger from the ``log_*`` settings.

    Safe to call more than once; previous handlers are replaced.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    if config.log_console_enabled:
        root_logger.addHandler(_console_handler(level))
    if config.log_file_enabled:
        root_logger.addHandler(_file_handler(config, level))

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized: level={config.log_level.upper()}, "
        f"console={config.log_console_enabled}, file={config.log_file_enabled}"
    )


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adds fixed context (usually the user) to every record's ``extra_fields``.

    Fields passed on the call win over the adapter's context.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.setdefault('extra', {})
        extra['extra_fields'] = {**self.extra, **extra.get('extra_fields', {})}
        return msg, kwargs
