"""Routers package."""

from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .goals import router as goals_router
from .products import router as products_router

__all__ = [
    "auth_router",
    "dashboard_router",
    "goals_router",
    "products_router",
]
