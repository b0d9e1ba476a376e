"""
Per-request id and duration.

Every response carries ``X-Request-ID`` (echoed from the caller when sent)
and ``X-Request-Duration-Ms``.  Requests slower than ``SLOW_REQUEST_MS``
log a warning; 5xx responses log an error; the rest log at DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/api/v1/health"})


def _level_for(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask) -> None:
    @app.before_request
    def _begin():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        g.started_at = time.perf_counter()

    @app.after_request
    def _finish(response):
        started = g.pop("started_at", None)
        if started is None:
            return response
        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path not in _QUIET_PATHS:
            args = request.view_args or {}
            logger.log(
                _level_for(response.status_code, elapsed),
                "%s %s -> %d in %.0fms",
                request.method, request.path, response.status_code, elapsed,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": round(elapsed, 1),
                    "workflow_id": args.get("workflow_id"),
                    "project_id": args.get("project_id"),
                },
            )
        return response
