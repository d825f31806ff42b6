"""Models for catalog products and their embedded sales history."""

from __future__ import annotations

import enum
import time
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, UTCDateTime


class SourcingStatus(str, enum.Enum):
    """Where the owner stands in sourcing a product."""

    IN_PROGRESS = "in progress"
    NEGOTIATION = "negotiation"
    COMPLETE = "complete"
    MOQ_REQUIRED = "MOQ required"
    PRICE = "price"
    FAILED = "failed"


SOURCING_STATUS_ENUM = SAEnum(
    SourcingStatus,
    name="sourcing_status_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


def _default_transaction_id() -> str:
    return str(int(time.time() * 1000))


class Product(Base):
    """A sellable item with pricing and cached sales totals.

    ``units_sold``, ``total_sales`` and ``profit_margin`` are derived from
    ``sales_history`` and are only written by ``ProductService``.
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("unit_cost >= 0", name="ck_products_unit_cost_non_negative"),
        CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
        CheckConstraint("fees >= 0", name="ck_products_fees_non_negative"),
    )

    id = Column("product_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(
        GUID(),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(String(200), nullable=False)
    variant = Column(String(120), nullable=True)
    supplier = Column(String(200), nullable=True)
    sourcing_status = Column(
        SOURCING_STATUS_ENUM,
        nullable=False,
        default=SourcingStatus.IN_PROGRESS,
    )
    unit_cost = Column(Numeric(12, 2), nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    fees = Column(Numeric(12, 2), nullable=False, default=0)
    units_sold = Column(Integer, nullable=False, default=0)
    total_sales = Column(Numeric(14, 2), nullable=False, default=0)
    profit_margin = Column(Numeric(12, 4), nullable=False, default=0)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    owner = relationship("User", back_populates="products")
    sales_history = relationship(
        "SaleRecord",
        back_populates="product",
        order_by="SaleRecord.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    goals = relationship("Goal", back_populates="product")


Index("products_owner_name_idx", Product.owner_id, Product.name)


class SaleRecord(Base):
    """One historical sale entry owned by a product."""

    __tablename__ = "sale_records"
    __table_args__ = (
        CheckConstraint("units_sold > 0", name="ck_sale_records_units_positive"),
        CheckConstraint("revenue >= 0", name="ck_sale_records_revenue_non_negative"),
    )

    id = Column("sale_record_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(
        GUID(),
        ForeignKey("products.product_id", ondelete="CASCADE"),
        nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)
    transaction_id = Column(String(64), nullable=False, default=_default_transaction_id)
    date = Column("sale_date", UTCDateTime(), nullable=False)
    units_sold = Column(Integer, nullable=False)
    revenue = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)

    product = relationship("Product", back_populates="sales_history")


Index("sale_records_product_idx", SaleRecord.product_id)
Index("sale_records_transaction_idx", SaleRecord.transaction_id)
