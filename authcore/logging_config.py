"""
Logging setup for authcore.

Records carry the current request id and pass through a scrubbing filter
before any handler formats them: secret-looking extras are masked and
address fields are cut down to a recognisable stub. Production output is
one JSON object per line; development output is a single readable line.

    logger = get_logger(__name__)
    logger.info("Session opened", extra={"user_id": str(user.id)})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

MASK = "***"

# Extras whose value is an address
ADDRESS_FIELDS = frozenset(("email", "to"))

# Substrings that mark an extra as secret
SECRET_MARKERS = ("password", "token", "secret", "authorization")

# Attributes every LogRecord has; anything else arrived through extra=
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
}

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def redact_email(email: str) -> str:
    """Keep the first two characters of the local part and the domain."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}{MASK}@{domain}"


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}


class ScrubbingFilter(logging.Filter):
    """Attach the request id and scrub sensitive extras in place."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        for key, value in extra_fields(record).items():
            lowered = key.lower()
            if lowered in ADDRESS_FIELDS and isinstance(value, str):
                setattr(record, key, redact_email(value))
            elif any(marker in lowered for marker in SECRET_MARKERS):
                setattr(record, key, MASK)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        req_id = getattr(record, "request_id", "-")
        if req_id != "-":
            log_obj["request_id"] = req_id
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in extra_fields(record).items():
            if value is None:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            log_obj[key] = value
        return json.dumps(log_obj)


class ConsoleFormatter(logging.Formatter):
    """One line per record with the extras appended as key=value."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "request_id"):
            record.request_id = "-"  # type: ignore[attr-defined]
        line = super().format(record)
        extras = " ".join(f"{k}={v}" for k, v in extra_fields(record).items() if v is not None)
        return f"{line} {extras}" if extras else line


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install a single stderr handler on the root logger.

    Args:
        log_level: Level name; unknown names fall back to INFO
        environment: 'production' selects JSON output
        debug: Force DEBUG regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ScrubbingFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else ConsoleFormatter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
