"""
Settings for the workflow engine, one class per ``APP_ENV``.

The engine tunables (canvas layout, status matching, sync rate limit) are
read by the reconciliation service through ``current_app.config``.
"""

import os
import secrets

_INSTANCE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "instance")


def _database_url(env_var: str, fallback: str | None) -> str | None:
    url = os.getenv(env_var)
    if not url:
        return fallback
    # SQLAlchemy 2 no longer accepts the legacy postgres:// scheme
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Config:
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging: LOG_FORMAT "text" | "json"; unset picks text under DEBUG/TESTING
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")
    SLOW_REQUEST_MS = _env_int("SLOW_REQUEST_MS", 1000)

    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    SYNC_RATE_LIMIT = os.getenv("SYNC_RATE_LIMIT", "30 per minute")

    # Where reconciliation places statuses it adds to a workflow canvas
    WORKFLOW_CANVAS_ORIGIN = _env_int("WORKFLOW_CANVAS_ORIGIN", 100)
    WORKFLOW_CANVAS_STEP_X = _env_int("WORKFLOW_CANVAS_STEP_X", 250)
    WORKFLOW_CANVAS_STEP_Y = _env_int("WORKFLOW_CANVAS_STEP_Y", 150)

    # "normalized" (key or name) | "key_only"
    WORKFLOW_STATUS_MATCHING = os.getenv("WORKFLOW_STATUS_MATCHING", "normalized")

    @classmethod
    def validate(cls) -> None:
        """Hook for environments with mandatory settings."""


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "DATABASE_URL", f"sqlite:///{os.path.join(_INSTANCE_DIR, 'workflow_engine.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL", None)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_timeout": 20,
    }

    @classmethod
    def validate(cls) -> None:
        missing = [
            name for name, value in (
                ("DATABASE_URL", cls.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
                ("CORS_ORIGINS", cls.CORS_ORIGINS),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
