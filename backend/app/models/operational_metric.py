"""Structured operational events recorded by the dashboard and goal flows."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, Numeric, String, func
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON

from ..database import Base
from ..db_types import GUID, UTCDateTime


class OperationalMetricEvent(Base):
    """One recorded outcome such as a goal sync pass or a rejected sale."""

    __tablename__ = "operational_metric_events"

    id = Column("event_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String(120), nullable=False, index=True)
    outcome = Column(String(32), nullable=False, index=True)
    owner_id = Column(GUID(), nullable=True, index=True)
    duration_ms = Column(Numeric(14, 3), nullable=True)
    tags = Column("labels", JSON().with_variant(SQLiteJSON(), "sqlite"), nullable=False, default=dict)
    details = Column(JSON().with_variant(SQLiteJSON(), "sqlite"), nullable=True)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False, index=True)
