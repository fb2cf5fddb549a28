"""
Startup diagnostics — runs once when the Flask app starts.

Checks configuration the dashboard cannot work without and logs a summary
banner. Nothing here calls the ServiceNow instance: every upstream call is
made with a user's credential, and there is none at startup.
"""

import logging
import sys

import redis
from flask import Flask

logger = logging.getLogger(__name__)


def _redis_status(redis_url: str, issues: list[str]) -> str:
    if not redis_url or not redis_url.startswith("redis"):
        return "not configured (in-memory limiter)"
    try:
        redis.from_url(redis_url, socket_timeout=2).ping()
    except redis.RedisError:
        issues.append("Redis unreachable — rate limiter storage will fail")
        return "unreachable"
    return "ok"


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

    instance_url = app.config.get("SERVICENOW_INSTANCE_URL") or ""
    if not instance_url:
        issues.append("SERVICENOW_INSTANCE_URL not set — every API call will fail")
    elif not instance_url.startswith("https://"):
        issues.append("SERVICENOW_INSTANCE_URL is not https — credentials travel in clear text")

    oauth = bool(app.config.get("SERVICENOW_CLIENT_ID") and app.config.get("SERVICENOW_CLIENT_SECRET"))
    if oauth and not app.config.get("SERVICENOW_OAUTH_REDIRECT_URI"):
        issues.append("OAuth client set but SERVICENOW_OAUTH_REDIRECT_URI missing — callback flow disabled")

    encryption = "ENCRYPTION_KEY" if app.config.get("ENCRYPTION_KEY") else "derived from SECRET_KEY"
    redis_status = _redis_status(app.config.get("REDIS_URL", ""), issues)
    demo = "ON" if app.config.get("DISCOVERY_DEMO_MODE") else "off"

    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  ServiceNow Dashboard — Startup Diagnostics                  ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Instance    : {(instance_url or 'NOT SET')[:46]:<46s}║
║  Auth        : {'OAuth + Basic' if oauth else 'Basic only':<46s}║
║  Cred key    : {encryption:<46s}║
║  Redis       : {redis_status:<46s}║
║  Demo mode   : {demo:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
    logger.info(banner)

    if issues:
        logger.warning("Startup issues detected:")
        for issue in issues:
            logger.warning("  ⚠ %s", issue)
    else:
        logger.info("✅ All startup checks passed")
