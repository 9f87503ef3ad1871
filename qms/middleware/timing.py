"""
Request timing middleware.

Stamps every request with an id (X-Request-ID, honoured when the client
sends one) and every response with its duration. Slow requests and 5xx
responses are logged; caller identity is attached by CallerContextFilter.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

# Probes are too frequent to log
_QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready"})


def _log_level_for(status: int, duration_ms: float, slow_ms: int):
    if duration_ms > slow_ms:
        return logging.WARNING, "Slow request"
    if status >= 500:
        return logging.ERROR, "Server error"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    """Register the before/after hooks on *app*."""

    @app.before_request
    def _stamp_request():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path in _QUIET_PATHS:
            return response

        level, label = _log_level_for(
            response.status_code, duration_ms, current_app.config.get("SLOW_REQUEST_MS", 1000)
        )
        logger.log(
            level, "%s: %s %s %d", label, request.method, request.path, response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
