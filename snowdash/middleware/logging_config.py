"""
Structured logging configuration.

- DEBUG / TESTING: one coloured line per record on stderr
- otherwise: one JSON object per record (log aggregator friendly)
- LOG_LEVEL and LOG_FORMAT ("json" | "readable") env vars override both

Session tokens and ServiceNow credentials are never passed to a logger;
``CredentialFilter`` masks any Authorization value that slips into
a message anyway (e.g. inside a requests exception string).
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone

# Request-context extras copied into JSON records when present.
_EXTRA_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "username",
    "table",
    "upstream_status",
)

_AUTH_VALUE_RE = re.compile(r"\b(Basic|Bearer)\s+[A-Za-z0-9._~+/=-]+")
_SECRET_PARAM_RE = re.compile(r"\b(password|client_secret|refresh_token|access_token)=[^&\s]+")


class CredentialFilter(logging.Filter):
    """Mask Authorization header values and secret form fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _SECRET_PARAM_RE.sub(r"\1=***", _AUTH_VALUE_RE.sub(r"\1 ***", message))
        if masked != message:
            record.msg, record.args = masked, None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        entry.update(
            (key, getattr(record, key)) for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message (user) #request-id``, coloured by level."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (f"{self.COLORS.get(record.levelname, '')}{stamp} {record.levelname:<8}"
                f"{self.RESET} {record.name}: {record.getMessage()}")
        username = getattr(record, "username", None)
        if username:
            line += f" ({username})"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f" #{request_id}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    use_json = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower() == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.addFilter(CredentialFilter())
    handler.setLevel(level)

    # cleared first: create_app runs more than once per test session
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # urllib3 logs full request URLs, including encoded queries
    for noisy in ("urllib3", "werkzeug"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if use_json else "readable")
