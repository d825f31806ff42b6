"""Router exposing dashboard rollups."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import get_current_user, get_effective_owner_id
from ..services import DashboardService

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/", response_model=schemas.DashboardSnapshot)
def read_dashboard(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
    timeframe: Optional[str] = Query(
        None,
        description="day, week, month, quarter or year; anything else reports the month",
    ),
) -> schemas.DashboardSnapshot:
    """Return totals, period-over-period changes and the chart series."""

    return DashboardService.build_snapshot(db, owner_id, timeframe)


@router.get("/stats/{timeframe}", response_model=schemas.DashboardStats)
def read_dashboard_stats(
    timeframe: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.DashboardStats:
    return DashboardService.build_stats(db, owner_id, timeframe)
