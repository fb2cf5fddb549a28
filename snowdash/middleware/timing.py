"""
Request timing middleware.

Every response gets X-Request-ID (echoed from the caller or generated) and
X-Request-Duration-Ms. One log line per API call, tagged with the
ServiceNow username and, for proxy calls, the table read.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probe endpoints are hit every few seconds by orchestrators.
_QUIET_PATHS = frozenset({"/api/health/live", "/api/health/ready"})

SLOW_THRESHOLD_MS = 1000


def _level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register the before/after hooks."""

    @app.before_request
    def _start_clock():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_response(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path in _QUIET_PATHS:
            return response

        logger.log(
            _level_for(response.status_code, elapsed),
            "%s %s -> %d in %.0fms",
            request.method, request.path, response.status_code, elapsed,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
                "request_id": g.request_id,
                "username": getattr(g, "current_username", None),
                "table": (request.view_args or {}).get("table"),
            },
        )
        return response
