"""Models for store-wide and product-specific goals."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, UTCDateTime


class GoalType(str, enum.Enum):
    """Metric a goal measures; the unit of ``target_amount`` follows it."""

    REVENUE = "revenue"
    SALES = "sales"
    PROFIT = "profit"
    PROFIT_MARGIN = "profit_margin"


GOAL_TYPE_ENUM = SAEnum(
    GoalType,
    name="goal_type_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class Goal(Base):
    """A target for one metric over a date window."""

    __tablename__ = "goals"
    __table_args__ = (
        CheckConstraint("target_amount > 0", name="ck_goals_target_positive"),
        CheckConstraint("end_date >= start_date", name="ck_goals_dates_ordered"),
    )

    id = Column("goal_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(
        GUID(),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id = Column(
        GUID(),
        ForeignKey("products.product_id", ondelete="SET NULL"),
        nullable=True,
    )
    name = Column(String(200), nullable=False)
    type = Column("goal_type", GOAL_TYPE_ENUM, nullable=False)
    target_amount = Column(Numeric(14, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    current_amount = Column(Numeric(14, 4), nullable=False, default=0)
    is_product_specific = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    owner = relationship("User", back_populates="goals")
    product = relationship("Product", back_populates="goals")


Index("goals_owner_end_date_idx", Goal.owner_id, Goal.end_date)
Index("goals_product_idx", Goal.product_id)
