"""
ServiceNow Dashboard
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets


# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    # Signs session tokens; SECRET_KEY when unset.
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    DEBUG = False
    TESTING = False

    # Fernet key for the ServiceNow credential carried in the session token.
    # When unset it is derived from SECRET_KEY (see utils/crypto.py).
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")

    # ServiceNow instance
    SERVICENOW_INSTANCE_URL = os.getenv("SERVICENOW_INSTANCE_URL", "").rstrip("/")
    SERVICENOW_CLIENT_ID = os.getenv("SERVICENOW_CLIENT_ID")
    SERVICENOW_CLIENT_SECRET = os.getenv("SERVICENOW_CLIENT_SECRET")
    SERVICENOW_OAUTH_REDIRECT_URI = os.getenv("SERVICENOW_OAUTH_REDIRECT_URI")
    SERVICENOW_TIMEOUT = int(os.getenv("SERVICENOW_TIMEOUT", "30"))

    # Session token (signed JWT in an httpOnly cookie)
    SESSION_EXPIRES = int(os.getenv("SESSION_EXPIRES", str(8 * 3600)))
    SESSION_COOKIE_NAME_SN = os.getenv("SESSION_COOKIE", "snowdash_session")
    SESSION_COOKIE_SECURE = _env_flag("SESSION_COOKIE_SECURE")

    # Redis (rate limiter storage)
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Discovery onboarding
    DISCOVERY_DEMO_MODE = _env_flag("DISCOVERY_DEMO_MODE")
    RITM_POLL_SECONDS = int(os.getenv("RITM_POLL_SECONDS", "45"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SECRET_KEY = "test-secret-key"
    ENCRYPTION_KEY = None
    SERVICENOW_INSTANCE_URL = "https://test.service-now.com"
    SERVICENOW_CLIENT_ID = None
    SERVICENOW_CLIENT_SECRET = None
    DISCOVERY_DEMO_MODE = False
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    SESSION_COOKIE_SECURE = True

    def __init__(self):
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not self.SERVICENOW_INSTANCE_URL:
            raise RuntimeError("SERVICENOW_INSTANCE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
