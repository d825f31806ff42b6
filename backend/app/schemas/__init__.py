"""Expose Pydantic schemas for convenient imports."""

from .auth import LoginRequest, TokenResponse, UserRead, UserRegisterRequest
from .dashboard import (
    DashboardSnapshot,
    DashboardStats,
    GoalSummaries,
    GoalSummary,
    PeriodMetrics,
    PeriodWindow,
    ProductCounts,
    SalesDataPoint,
    TopProduct,
    Trend,
)
from .goal import (
    GoalBase,
    GoalCreate,
    GoalProgressUpdate,
    GoalRead,
    GoalStatus,
    GoalSyncRequest,
    GoalSyncResponse,
    GoalUpdate,
    GoalWithProgress,
)
from .product import (
    ProductBase,
    ProductCreate,
    PaginatedResponse,
    ProductListResponse,
    ProductRead,
    ProductUpdate,
    SaleRecordCreate,
    SaleRecordRead,
    SaleRecordUpdate,
)

__all__ = [
    "DashboardSnapshot",
    "DashboardStats",
    "GoalBase",
    "GoalCreate",
    "GoalProgressUpdate",
    "GoalRead",
    "GoalStatus",
    "GoalSummaries",
    "GoalSummary",
    "GoalSyncRequest",
    "GoalSyncResponse",
    "GoalUpdate",
    "GoalWithProgress",
    "LoginRequest",
    "PaginatedResponse",
    "PeriodMetrics",
    "PeriodWindow",
    "ProductBase",
    "ProductCounts",
    "ProductCreate",
    "ProductListResponse",
    "ProductRead",
    "ProductUpdate",
    "SaleRecordCreate",
    "SaleRecordRead",
    "SaleRecordUpdate",
    "SalesDataPoint",
    "TokenResponse",
    "TopProduct",
    "Trend",
    "UserRead",
    "UserRegisterRequest",
]
