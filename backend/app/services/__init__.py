"""Service layer encapsulating business logic for API routers."""

from .dashboard import DashboardService
from .goals import GoalProgress, GoalService, GoalServiceError, GoalSyncResult, StoreTotals
from .observability import MetricOutcome, ObservabilityService
from .periods import PeriodResolver, ResolvedPeriod, Timeframe
from .products import ProductService, ProductServiceError, resolve_sale_record
from .users import UserService, UserServiceError

__all__ = [
    "DashboardService",
    "GoalProgress",
    "GoalService",
    "GoalServiceError",
    "GoalSyncResult",
    "MetricOutcome",
    "ObservabilityService",
    "PeriodResolver",
    "ProductService",
    "ProductServiceError",
    "ResolvedPeriod",
    "StoreTotals",
    "Timeframe",
    "UserService",
    "UserServiceError",
    "resolve_sale_record",
]
