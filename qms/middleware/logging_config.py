"""
Logging configuration.

Inside a request, every record carries request_id plus the caller's
organization_id / user_id (CallerContextFilter), so a service line such as
"NonConformity transitioned id=7 RESOLVED → CLOSED" can be traced back to
who did it without each service passing the caller to the logger.

- Production: one JSON object per line
- Development / testing: coloured single line, caller context appended
- Level: LOG_LEVEL env var, else app config, else INFO (prod) / DEBUG
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context, has_request_context

_CONTEXT_FIELDS = ("request_id", "organization_id", "user_id")
_REQUEST_FIELDS = ("method", "path", "status", "duration_ms")


class CallerContextFilter(logging.Filter):
    """Copy request id and caller identity from flask.g onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context() and has_app_context():
            caller = getattr(g, "caller", None)
            values = {
                "request_id": getattr(g, "request_id", None),
                "organization_id": caller.organization_id if caller else None,
                "user_id": caller.user_id if caller else None,
            }
            for key, value in values.items():
                if getattr(record, key, None) is None:
                    setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS + _REQUEST_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        org, user = getattr(record, "organization_id", None), getattr(record, "user_id", None)
        if org is not None:
            line += f" [org={org} user={user}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(app, is_prod: bool) -> str:
    name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    return name.upper()


def configure_logging(app):
    """Install one stderr handler on the root logger for *app*."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    level_name = _resolve_level(app, is_prod)
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(CallerContextFilter())

    root = logging.getLogger()
    # create_app may run more than once per process (tests)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")
