from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    # Core
    database_url: str
    app_env: str
    log_level: str
    log_format: str
    log_redact_fields: list[str]

    # Web/API
    cors_allow_origins: list[str]
    login_rate_limit_attempts: int
    login_rate_limit_window_seconds: int
    default_page_limit: int
    max_page_limit: int

    # DB runtime
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout_seconds: int
    db_pool_recycle_seconds: int
    db_connect_timeout_seconds: int
    db_statement_timeout_ms: int

    # Edit permission workflow
    permission_grant_ttl_hours: int
    permission_sweep_interval_seconds: int
    seed_default_users: bool

    # Secrets
    jwt_secret: str
    jwt_exp_hours: int

    @property
    def permission_grant_ttl(self) -> timedelta:
        return timedelta(hours=self.permission_grant_ttl_hours)

    @property
    def is_production(self) -> bool:
        return self.app_env in {"prod", "production"}


def _parse_csv(value: str | None) -> list[str]:
    """Parses a comma-separated string into a list of strings."""
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def get_settings() -> Settings:
    """Loads settings from environment variables with defaults."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required (postgresql://... or sqlite:///...)")
    app_env = os.getenv("APP_ENV", "dev").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "text").lower()
    log_redact_fields = _parse_csv(
        os.getenv(
            "LOG_REDACT_FIELDS",
            "password,token,access_token,secret,authorization,jwt_secret,password_hash",
        )
    )

    cors = _parse_csv(os.getenv("CORS_ALLOW_ORIGINS"))
    if not cors:
        cors = ["http://localhost:5173", "http://127.0.0.1:5173"]

    login_rate_limit_attempts = int(os.getenv("LOGIN_RATE_LIMIT_ATTEMPTS", "10"))
    login_rate_limit_window_seconds = int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "60"))
    default_page_limit = int(os.getenv("DEFAULT_PAGE_LIMIT", "10"))
    max_page_limit = int(os.getenv("MAX_PAGE_LIMIT", "100"))

    db_pool_size = int(os.getenv("DB_POOL_SIZE", "10"))
    db_max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    db_pool_timeout_seconds = int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30"))
    db_pool_recycle_seconds = int(os.getenv("DB_POOL_RECYCLE_SECONDS", "1800"))
    db_connect_timeout_seconds = int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "10"))
    db_statement_timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))

    permission_grant_ttl_hours = int(os.getenv("PERMISSION_GRANT_TTL_HOURS", "24"))
    permission_sweep_interval_seconds = int(os.getenv("PERMISSION_SWEEP_INTERVAL_SECONDS", "300"))
    seed_default_users = _parse_bool(
        os.getenv("SEED_DEFAULT_USERS"),
        app_env not in {"prod", "production"},
    )

    jwt_secret = os.getenv("JWT_SECRET", "dev-secret")
    jwt_exp_hours = int(os.getenv("JWT_EXP_HOURS", "24"))

    if app_env in {"prod", "production"} and jwt_secret == "dev-secret":
        raise RuntimeError("JWT_SECRET must be set to a non-default value in production")
    if permission_grant_ttl_hours < 1:
        raise RuntimeError("PERMISSION_GRANT_TTL_HOURS must be at least 1")

    return Settings(
        database_url=database_url,
        app_env=app_env,
        log_level=log_level,
        log_format=log_format,
        log_redact_fields=log_redact_fields,
        cors_allow_origins=cors,
        login_rate_limit_attempts=login_rate_limit_attempts,
        login_rate_limit_window_seconds=login_rate_limit_window_seconds,
        default_page_limit=default_page_limit,
        max_page_limit=max_page_limit,
        db_pool_size=db_pool_size,
        db_max_overflow=db_max_overflow,
        db_pool_timeout_seconds=db_pool_timeout_seconds,
        db_pool_recycle_seconds=db_pool_recycle_seconds,
        db_connect_timeout_seconds=db_connect_timeout_seconds,
        db_statement_timeout_ms=db_statement_timeout_ms,
        permission_grant_ttl_hours=permission_grant_ttl_hours,
        permission_sweep_interval_seconds=permission_sweep_interval_seconds,
        seed_default_users=seed_default_users,
        jwt_secret=jwt_secret,
        jwt_exp_hours=jwt_exp_hours,
    )
