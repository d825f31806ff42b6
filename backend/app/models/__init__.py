"""Expose SQLAlchemy models for convenient imports."""

from .goal import Goal, GoalType
from .operational_metric import OperationalMetricEvent
from .product import Product, SaleRecord, SourcingStatus
from .user import User, UserRole

__all__ = [
    "Goal",
    "GoalType",
    "OperationalMetricEvent",
    "Product",
    "SaleRecord",
    "SourcingStatus",
    "User",
    "UserRole",
]
