"""
Contractor Delivery Portal
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is configured
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'portal_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_flag(name, default):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # Identity provider tokens (verified with PyJWT)
    IDENTITY_TOKEN_SECRET = os.getenv("IDENTITY_TOKEN_SECRET")
    IDENTITY_TOKEN_ALGORITHMS = [
        a.strip() for a in os.getenv("IDENTITY_TOKEN_ALGORITHMS", "HS256").split(",") if a.strip()
    ]
    IDENTITY_TOKEN_AUDIENCE = os.getenv("IDENTITY_TOKEN_AUDIENCE")

    # Delivery workflow policy
    REVIEW_REQUIRES_ATTACHMENT = _env_flag("REVIEW_REQUIRES_ATTACHMENT", "true")
    NOTIFICATION_BATCH_ATOMIC = _env_flag("NOTIFICATION_BATCH_ATOMIC", "true")
    CASCADE_CHUNK_SIZE = int(os.getenv("CASCADE_CHUNK_SIZE", "200"))

    # Listing
    PAGE_SIZE = int(os.getenv("PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "200"))

    # Live subscriptions: records loaded per scope and held per collection
    SUBSCRIPTION_SNAPSHOT_LIMIT = int(os.getenv("SUBSCRIPTION_SNAPSHOT_LIMIT", "500"))

    # Rate limiter storage (Redis in production, memory for dev)
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SECRET_KEY = "testing-secret-key-0123456789abcdef"
    IDENTITY_TOKEN_SECRET = "testing-identity-secret-0123456789abcdef"
    IDENTITY_TOKEN_ALGORITHMS = ["HS256"]
    IDENTITY_TOKEN_AUDIENCE = None
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    REVIEW_REQUIRES_ATTACHMENT = True
    NOTIFICATION_BATCH_ATOMIC = True
    CASCADE_CHUNK_SIZE = 2
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
