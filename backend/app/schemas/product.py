from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.product import SourcingStatus

T = TypeVar("T")


def _coerce_sale_datetime(value: Any) -> Any:
    """Accept ``YYYY-MM-DD`` or ``date`` values as midnight UTC."""

    if isinstance(value, str):
        stripped = value.strip()
        if len(stripped) == 10:
            try:
                value = date.fromisoformat(stripped)
            except ValueError:
                return stripped
        else:
            return stripped
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    unit_cost: Decimal = Field(..., ge=0)
    base_price: Decimal = Field(..., ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    variant: Optional[str] = Field(default=None, max_length=120)
    supplier: Optional[str] = Field(default=None, max_length=200)
    sourcing_status: SourcingStatus = SourcingStatus.IN_PROGRESS

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("variant", "supplier")
    @classmethod
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class ProductCreate(ProductBase):
    """Payload for a new product; ``units_sold`` seeds an initial sale entry."""

    units_sold: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    """Editable product fields. Sales totals are derived and not accepted here."""

    name: Optional[str] = Field(default=None, max_length=200)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    fees: Optional[Decimal] = Field(default=None, ge=0)
    variant: Optional[str] = Field(default=None, max_length=120)
    supplier: Optional[str] = Field(default=None, max_length=200)
    sourcing_status: Optional[SourcingStatus] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("variant", "supplier", mode="before")
    @classmethod
    def _strip_updatable(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class SaleRecordBase(BaseModel):
    date: datetime
    units_sold: int = Field(..., ge=1)
    revenue: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value: Any) -> Any:
        return _coerce_sale_datetime(value)

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class SaleRecordCreate(SaleRecordBase):
    transaction_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("transaction_id")
    @classmethod
    def _strip_transaction(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class SaleRecordUpdate(SaleRecordBase):
    """Replacement values for an existing entry; identifiers are preserved."""


class SaleRecordRead(SaleRecordBase):
    id: str
    transaction_id: str

    model_config = ConfigDict(from_attributes=True)


class ProductRead(ProductBase):
    id: str
    owner_id: str
    units_sold: int
    total_sales: Decimal
    profit_margin: Decimal
    created_at: datetime
    updated_at: datetime
    sales_history: List[SaleRecordRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard shape for paginated listings."""

    items: List[T]
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    skip: int = Field(..., ge=0)


class ProductListResponse(PaginatedResponse[ProductRead]):
    pass
