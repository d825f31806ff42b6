"""Environment-driven settings shared by the application modules."""

from __future__ import annotations

import logging
import os
import re

LOGGER = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
REQUIRE_POSTGRES_ENV = "REQUIRE_POSTGRES"
POOL_SIZE_ENV = "DATABASE_POOL_SIZE"
POOL_MAX_OVERFLOW_ENV = "DATABASE_MAX_OVERFLOW"
POOL_TIMEOUT_ENV = "DATABASE_POOL_TIMEOUT"
POOL_RECYCLE_ENV = "DATABASE_POOL_RECYCLE"
CONNECT_TIMEOUT_ENV = "DATABASE_CONNECT_TIMEOUT"

RUN_MIGRATIONS_ENV = "RUN_MIGRATIONS_ON_STARTUP"
MIGRATION_LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"

ALLOWED_ORIGINS_ENV = "BACKEND_ALLOWED_ORIGINS"

JWT_SECRET_ENV = "AUTH_JWT_SECRET"
ACCESS_TOKEN_EXPIRE_MINUTES_ENV = "ACCESS_TOKEN_EXPIRE_MINUTES"
SUPERUSER_EMAILS_ENV = "SUPERUSER_EMAILS"


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def read_float_env(name: str, default: float) -> float:
    """Return a positive float, falling back to ``default`` on bad input."""

    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; falling back to %.1f", name, raw, default)
        return default
    if value <= 0:
        LOGGER.warning("%s must be positive; using %.1f", name, default)
        return default
    return value


def read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def split_list_value(raw_value: str) -> list[str]:
    """Split a raw setting using commas or whitespace as separators."""

    return [item for item in re.split(r"[\s,]+", raw_value) if item]


def read_list_env(name: str) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return []
    return split_list_value(raw)
