from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Trend(str, enum.Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class SalesDataPoint(BaseModel):
    """One chart bucket. ``date`` is a display label, ``timestamp`` its identity."""

    date: str
    timestamp: datetime
    revenue: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")


class TopProduct(BaseModel):
    id: str
    name: str
    revenue: Decimal
    profit: Decimal


class DashboardSnapshot(BaseModel):
    """Rollup of sales for a timeframe compared with the preceding one.

    ``*_change`` is ``None`` when the previous period has no data for the
    metric; it is never coerced to zero.
    """

    timeframe: str
    period_start: datetime
    period_end: datetime
    total_revenue: Decimal
    total_profit: Decimal
    units_sold: int = Field(..., ge=0)
    revenue_change: Optional[int] = None
    profit_change: Optional[int] = None
    units_change: Optional[int] = None
    revenue_trend: Trend = Trend.NEUTRAL
    profit_trend: Trend = Trend.NEUTRAL
    units_trend: Trend = Trend.NEUTRAL
    sales_data: List[SalesDataPoint] = Field(default_factory=list)
    product_count: int = Field(default=0, ge=0)
    top_products: List[TopProduct] = Field(default_factory=list)


class PeriodWindow(BaseModel):
    start: datetime
    end: datetime


class PeriodMetrics(BaseModel):
    revenue: Decimal
    profit: Decimal
    units_sold: int
    profit_margin: Decimal
    average_order_value: Decimal


class ProductCounts(BaseModel):
    total: int
    by_status: Dict[str, int] = Field(default_factory=dict)


class GoalSummary(BaseModel):
    goal: Optional[Decimal] = None
    current: Decimal
    progress: Optional[Decimal] = None


class GoalSummaries(BaseModel):
    revenue: GoalSummary
    sales: GoalSummary


class DashboardStats(BaseModel):
    timeframe: str
    period: PeriodWindow
    metrics: PeriodMetrics
    products: ProductCounts
    goals: GoalSummaries
