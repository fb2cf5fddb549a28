"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in snowdash/__init__.py with no default
limits; this module applies granular limits per route category.

Every limited call is also a ServiceNow call made as the signed-in user, so
limits are keyed by ServiceNow username when a session is present and by
remote IP otherwise.

Usage:
    from snowdash.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

from snowdash.auth import load_session

logger = logging.getLogger(__name__)

LOGIN_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """ServiceNow username if the request carries a valid session, else remote IP.

    Limits are checked before the view runs, so the session is decoded here.
    """
    info = load_session()
    if info is not None and info.username:
        return f"user:{info.username}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Auth endpoints:        10/minute  (password guessing)
        - RITM workflow:         60/minute  (PATCH / send-email)
        - Dashboards / widgets:  60/minute
        - Table proxy:           200/minute (GET, polled by the UI)
        - Health check:          exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(LOGIN_LIMIT, key_func=lambda: flask_request.remote_addr or "unknown")(bp)

    for bp_name in ("ritms", "dashboards", "dashboard_config", "widgets"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("servicenow")
    if bp:
        limiter.limit(READ_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: auth: %s, write: %s, read: %s",
        LOGIN_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
