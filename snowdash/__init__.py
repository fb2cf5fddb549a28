"""
ServiceNow Dashboard
Flask Application Factory.

Usage:
    from snowdash import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from snowdash.config import config
from snowdash.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    ServiceNowError,
    ValidationError,
)
from snowdash.middleware.diagnostics import run_startup_diagnostics
from snowdash.middleware.logging_config import configure_logging
from snowdash.middleware.rate_limiter import init_rate_limits
from snowdash.middleware.security_headers import init_security_headers
from snowdash.middleware.timing import init_request_timing
from snowdash.utils.errors import E, api_error

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are set per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(e):
        return api_error(E.VALIDATION_INVALID, e.message, details=e.details or None)

    @app.errorhandler(NotFoundError)
    def not_found_error(e):
        return api_error(E.NOT_FOUND, e.message)

    @app.errorhandler(ServiceNowError)
    def servicenow_error(e):
        logger.error("Unhandled ServiceNow failure on %s status=%s: %s",
                     request.path, e.status_code, e.message,
                     extra={"upstream_status": e.status_code})
        return api_error(E.UPSTREAM, "ServiceNow request failed", details={"details": e.message})

    @app.errorhandler(ConfigurationError)
    def configuration_error(e):
        logger.error("Configuration error on %s: %s", request.path, e)
        return api_error(E.CONFIGURATION, str(e) or "ServiceNow instance URL not configured")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return {"error": "Internal server error"}, 500


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.get_data(cache=True) and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Blueprints ───────────────────────────────────────────────────────
    from snowdash.blueprints.auth_bp import auth_bp
    from snowdash.blueprints.dashboard_bp import dashboard_bp, dashboard_config_bp
    from snowdash.blueprints.health_bp import health_bp
    from snowdash.blueprints.ritm_bp import ritm_bp
    from snowdash.blueprints.servicenow_bp import servicenow_bp
    from snowdash.blueprints.widget_bp import widget_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(ritm_bp)
    # dashboards before the proxy so /api/servicenow/dashboards is never a table name
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(dashboard_config_bp)
    app.register_blueprint(servicenow_bp)
    app.register_blueprint(widget_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
