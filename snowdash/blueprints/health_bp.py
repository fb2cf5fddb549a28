"""
Health check blueprint.

Endpoints:
    GET /api/health/ready  — simple 200 for load balancers
    GET /api/health/live   — configuration status and limiter storage

Neither endpoint calls the ServiceNow instance.
"""

import logging
import time

import redis
from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with configuration status."""
    checks = {}
    overall = True

    # ── ServiceNow configuration ─────────────────────────────────────
    instance_url = current_app.config.get("SERVICENOW_INSTANCE_URL") or ""
    checks["servicenow"] = {
        "status": "ok" if instance_url else "error",
        "instanceConfigured": bool(instance_url),
        "oauthConfigured": bool(current_app.config.get("SERVICENOW_CLIENT_ID")
                                and current_app.config.get("SERVICENOW_CLIENT_SECRET")),
    }
    if not instance_url:
        overall = False

    # ── Redis (rate limiter storage) ─────────────────────────────────
    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url and redis_url.startswith("redis"):
        try:
            t0 = time.perf_counter()
            redis.from_url(redis_url, socket_timeout=2).ping()
            redis_ms = (time.perf_counter() - t0) * 1000
            checks["redis"] = {"status": "ok", "latency_ms": round(redis_ms, 1)}
        except redis.RedisError as exc:
            checks["redis"] = {"status": "error", "detail": str(exc)}
            logger.error("Health check: redis failed: %s", exc)
            # Redis only backs the rate limiter; don't fail overall health
    else:
        checks["redis"] = {"status": "skipped", "detail": "in-memory limiter storage"}

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "ServiceNow Dashboard",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "demoMode": bool(current_app.config.get("DISCOVERY_DEMO_MODE")),
    }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
