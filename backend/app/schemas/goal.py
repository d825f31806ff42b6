from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.goal import GoalType


class GoalStatus(str, enum.Enum):
    """Progress bucket a goal falls into."""

    COMPLETED = "completed"
    ON_TRACK = "on-track"
    IN_PROGRESS = "in-progress"
    AT_RISK = "at-risk"


class GoalBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: GoalType
    target_amount: Decimal = Field(..., gt=0)
    start_date: date
    end_date: date
    product_id: Optional[str] = None
    is_product_specific: bool = False


class GoalCreate(GoalBase):
    """New goal; product-specific goals must name their product."""

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @model_validator(mode="after")
    def _check_scope_and_window(self) -> "GoalCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.is_product_specific and not self.product_id:
            raise ValueError("product_id is required for product-specific goals")
        if not self.is_product_specific:
            self.product_id = None
        return self


class GoalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[GoalType] = None
    target_amount: Optional[Decimal] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    product_id: Optional[str] = None
    is_product_specific: Optional[bool] = None


class GoalProgressUpdate(BaseModel):
    """Manual override of a goal's cached progress value."""

    current_amount: Decimal


class GoalRead(GoalBase):
    id: str
    current_amount: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GoalWithProgress(GoalRead):
    progress_percentage: Decimal
    status: GoalStatus


class GoalSyncRequest(BaseModel):
    """Totals taken from a dashboard snapshot."""

    total_revenue: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    units_sold: int = Field(default=0, ge=0)


class GoalSyncResponse(BaseModel):
    goals: List[GoalRead]
    updated: bool
    failed: List[str] = Field(default_factory=list)
