"""
Logging setup for the engine.

Two output shapes, picked by ``LOG_FORMAT`` (falls back to ``text`` when
DEBUG or TESTING, ``json`` otherwise):

    text   one colored line per record, engine context appended as k=v
    json   one JSON object per record for log shippers

Service loggers pass graph context through ``extra=`` (``workflow_id``,
``project_id``, ``strategy`` ...).  ``RequestContextFilter`` stamps the
request id and caller onto every record emitted while a request is active,
so a sync's log lines can be tied back to the HTTP call that started it.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "workspace_id",
    "workflow_id",
    "project_id",
    "strategy",
    "method",
    "path",
    "status",
    "duration_ms",
)

_NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "flask_limiter")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class RequestContextFilter(logging.Filter):
    """Copy request id and caller onto records that don't carry them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                record.user_id = request.headers.get("X-User-Id")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        ctx = " ".join(f"{k}={v}" for k, v in _context(record).items())
        line = f"{stamp} {color}{record.levelname[:4]}{self.RESET} [{record.name}] {record.getMessage()}"
        if ctx:
            line += f"  ({ctx})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app) -> None:
    """Install one stderr handler on the root logger according to app config."""
    verbose = app.config.get("DEBUG", False) or app.config.get("TESTING", False)
    fmt = (app.config.get("LOG_FORMAT") or ("text" if verbose else "json")).lower()
    level_name = app.config.get("LOG_LEVEL") or ("DEBUG" if verbose else "INFO")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    logger = logging.getLogger(__name__)
    logger.debug("Logging ready level=%s format=%s", logging.getLevelName(level), fmt)
