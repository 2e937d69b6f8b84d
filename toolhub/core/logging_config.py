"""
Logging for toolhub.

One ``toolhub`` root logger, configured once by ``configure_logging``.
Every entry carries two request-scoped values held in context variables:

- correlationId: the x-correlation-id header, or a fresh uuid4
- operation: the operation id being served ("pdf.merge"), empty otherwise

Both survive ``asyncio.to_thread``, so handler threads log with the
request's values. Production writes one JSON object per line, development
a tab-separated line. Passwords sent to the protect tool and bearer tokens
are redacted before formatting.

Usage:
    from toolhub.core.logging_config import get_logger
    logger = get_logger(__name__)
"""

import json
import logging
import os
import re
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

ROOT_LOGGER = "toolhub"
CORRELATION_HEADER = "x-correlation-id"

# Third-party loggers that are chatty at DEBUG/INFO while decoding uploads.
QUIET_LOGGERS = ("PIL", "multipart", "python_multipart", "fitz")

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")


def get_correlation_id() -> str:
    """Current correlation ID, or empty string outside a request."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> None:
    _correlation_id.set(cid)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_operation() -> str:
    return _operation.get()


def set_operation(operation_id: str) -> None:
    """Tag every log entry of the current request with an operation id."""
    _operation.set(operation_id)


def short_id(value: str, length: int = 8) -> str:
    """Abbreviate grant and directory ids for log lines.

    Grant ids are download capabilities; logs never carry them whole.
    """
    return value if len(value) <= length else f"{value[:length]}…"


def app_env() -> str:
    """APP_ENV, lower-cased; "development" when unset."""
    return (os.environ.get("APP_ENV") or "development").strip().lower()


def is_production() -> bool:
    return app_env() == "production"


def is_development() -> bool:
    return app_env() in {"development", "dev", "local"}


# Values the protect tool receives, plus API tokens should one ever reach a log.
_SECRET_PATTERNS = (
    # userPassword=..., owner_password: ..., "password": "..."
    re.compile(r"((?:user|owner)?_?password['\"]?\s*[:=]\s*)['\"]?[^\s'\",}&]+['\"]?", re.IGNORECASE),
    re.compile(r"((?:token|secret)['\"]?\s*[:=]\s*)['\"]?[\w\-]{10,}['\"]?", re.IGNORECASE),
    re.compile(r"(Bearer\s+)[\w\-\.]{10,}", re.IGNORECASE),
)


def redact_secrets(message: str) -> str:
    """Replace password and token values in a log message with [REDACTED]."""
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(r"\1[REDACTED]", message)
    return message


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "context": record.name,
        "correlationId": get_correlation_id() or None,
        "operation": get_operation() or None,
    }


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per record.

    Fields: timestamp, level, service, context, correlationId, operation,
    message, plus stackTrace when exc_info is set and data when the call
    passed ``extra={"data": {...}}``.
    """

    LEVEL_NAMES = {"WARNING": "warn", "CRITICAL": "fatal"}

    def __init__(self, service: str = ROOT_LOGGER):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = _context_fields(record)
        entry["level"] = self.LEVEL_NAMES.get(record.levelname, record.levelname.lower())
        entry["service"] = self.service
        entry["message"] = redact_secrets(record.getMessage())

        if record.exc_info and record.exc_info[1] is not None:
            entry["stackTrace"] = redact_secrets(self.formatException(record.exc_info))

        data = getattr(record, "data", None)
        if isinstance(data, dict):
            entry["data"] = data

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """LEVEL  time  logger [cid op]  message"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        tags = " ".join(t for t in (get_correlation_id()[:8], get_operation()) if t)
        tag_str = f" [{tags}]" if tags else ""
        line = f"{record.levelname}:\t{ts}\t{record.name}{tag_str}\t{redact_secrets(record.getMessage())}"

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + redact_secrets(self.formatException(record.exc_info))
        return line


LOG_FILE = Path(os.environ.get("LOG_DIR", "logs")) / "app.log"
LOG_MAX_AGE_SECONDS = 48 * 3600


class RetentionFileHandler(logging.FileHandler):
    """JSON lines in logs/app.log, emptied once the file is older than ``max_age``.

    Entries name uploaded files, so nothing is kept past 48 hours. The
    file's age is looked at no more than once per ``check_interval``.
    """

    check_interval = 3600

    def __init__(self, path: Path = LOG_FILE, max_age: float = LOG_MAX_AGE_SECONDS):
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.max_age = max_age
        self._checked_at = float("-inf")
        super().__init__(path, mode="a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        now = time.time()
        if now - self._checked_at >= self.check_interval:
            self._checked_at = now
            self._truncate_if_expired(now)
        super().emit(record)

    def _truncate_if_expired(self, now: float) -> None:
        if self.path.exists() and now - self.path.stat().st_mtime > self.max_age:
            self.acquire()
            try:
                if self.stream is not None:
                    self.stream.seek(0)
                    self.stream.truncate()
            finally:
                self.release()


_configured = False


def configure_logging(
    log_level: str = "INFO",
    service: str = ROOT_LOGGER,
    enable_file_logging: bool = False,
) -> None:
    """Install handlers on the ``toolhub`` root logger.

    Called once by main.py; calling again replaces the handlers.

    Args:
        log_level: Level name; unknown names fall back to INFO.
        service: Service name written into structured entries.
        enable_file_logging: Also write JSON lines to logs/app.log.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO))
    root.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredJsonFormatter(service) if is_production() else DevelopmentFormatter())
    root.addHandler(console)

    if enable_file_logging:
        try:
            file_handler = RetentionFileHandler()
        except OSError as exc:
            root.warning(f"File logging disabled: {exc}")
        else:
            file_handler.setFormatter(StructuredJsonFormatter(service))
            root.addHandler(file_handler)

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Child of the ``toolhub`` logger: "toolhub.pipeline.store" and "middleware" both work."""
    if not _configured:
        configure_logging()
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
