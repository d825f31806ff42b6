"""Expose the storefront FastAPI app and enforce local development CORS defaults."""

import logging
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import ALLOWED_ORIGINS_ENV, RUN_MIGRATIONS_ENV, read_bool_env, read_list_env
from .migrations import run_database_migrations
from .routers import auth_router, dashboard_router, goals_router, products_router

LOGGER = logging.getLogger(__name__)

LOCAL_DEVELOPMENT_ORIGINS = {
    "http://localhost:5174",
    "http://localhost:5173",
}
LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"

DEFAULT_ALLOWED_ORIGINS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    *LOCAL_DEVELOPMENT_ORIGINS,
    "http://127.0.0.1:5174",
    "http://localhost:4173",
    "http://127.0.0.1:4173",
}


def _normalize_origin(origin: str) -> str | None:
    stripped = origin.strip()
    if not stripped:
        return None
    return stripped.rstrip("/")


def _read_allowed_origins(raw_origins: Iterable[str]) -> list[str]:
    normalized = {_normalize_origin(origin) for origin in raw_origins}
    return sorted({origin for origin in normalized if origin})


def _resolve_allowed_origins() -> list[str]:
    env_origins = _read_allowed_origins(read_list_env(ALLOWED_ORIGINS_ENV))
    if env_origins:
        origins = list(env_origins)
    else:
        origins = _read_allowed_origins(DEFAULT_ALLOWED_ORIGINS)

    missing_dev_origins = [
        origin for origin in LOCAL_DEVELOPMENT_ORIGINS if origin not in origins
    ]
    if missing_dev_origins:
        # The Vite dev server origins stay allowed whatever the environment says.
        origins = _read_allowed_origins([*origins, *missing_dev_origins])

    return origins


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not read_bool_env(RUN_MIGRATIONS_ENV, True):
        LOGGER.info("Skipping database migrations (%s disabled)", RUN_MIGRATIONS_ENV)
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    yield


app = FastAPI(title="Storefront Ops API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_allowed_origins(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])
app.include_router(goals_router, prefix="/goals", tags=["goals"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}
