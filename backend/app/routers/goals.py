"""Router exposing goal tracking and dashboard synchronisation."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import get_current_user, get_effective_owner_id
from ..services import GoalService, GoalServiceError

router = APIRouter(dependencies=[Depends(get_current_user)])


def _get_owned_goal(db: Session, owner_id: str, goal_id: str) -> models.Goal:
    goal = GoalService.get_goal(db, owner_id, goal_id)
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    return goal


@router.get("/", response_model=List[schemas.GoalRead])
def list_goals(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
    is_product_specific: Optional[bool] = Query(None, description="Filter by goal scope"),
) -> List[schemas.GoalRead]:
    return GoalService.list_goals(db, owner_id, is_product_specific=is_product_specific)


@router.get("/store", response_model=List[schemas.GoalRead])
def list_store_goals(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> List[schemas.GoalRead]:
    return GoalService.list_store_goals(db, owner_id)


@router.get("/status", response_model=List[schemas.GoalWithProgress])
def list_goal_status(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> List[schemas.GoalWithProgress]:
    """Return every goal with progress computed from current product totals."""

    return GoalService.goals_with_progress(db, owner_id)


@router.get("/products/{product_id}", response_model=List[schemas.GoalRead])
def list_product_goals(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> List[schemas.GoalRead]:
    try:
        return GoalService.product_goals(db, owner_id, product_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except GoalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/products/{product_id}/refresh", response_model=List[schemas.GoalRead])
def refresh_product_goals(
    product_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> List[schemas.GoalRead]:
    try:
        return GoalService.refresh_product_goals(db, owner_id, product_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except GoalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/sync", response_model=schemas.GoalSyncResponse)
def sync_goals(
    payload: schemas.GoalSyncRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.GoalSyncResponse:
    """Write dashboard totals into store-wide goals whose progress changed."""

    goals = GoalService.list_goals(db, owner_id)
    result = GoalService.sync_with_dashboard(db, goals, payload, owner_id=owner_id)
    return schemas.GoalSyncResponse(goals=result.goals, updated=result.updated, failed=result.failed)


@router.post("/", response_model=schemas.GoalRead, status_code=status.HTTP_201_CREATED)
def create_goal(
    goal_in: schemas.GoalCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.GoalRead:
    try:
        return GoalService.create_goal(db, owner_id, goal_in)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except GoalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.put("/{goal_id}", response_model=schemas.GoalRead)
def update_goal(
    goal_id: str,
    goal_in: schemas.GoalUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.GoalRead:
    goal = _get_owned_goal(db, owner_id, goal_id)
    try:
        return GoalService.update_goal(db, goal, goal_in)
    except (ValueError, GoalServiceError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.put("/{goal_id}/progress", response_model=schemas.GoalRead)
def update_goal_progress(
    goal_id: str,
    payload: schemas.GoalProgressUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> schemas.GoalRead:
    goal = _get_owned_goal(db, owner_id, goal_id)
    try:
        return GoalService.update_progress(db, goal, payload.current_amount)
    except GoalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(
    goal_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_effective_owner_id),
) -> None:
    goal = _get_owned_goal(db, owner_id, goal_id)
    try:
        GoalService.delete_goal(db, goal)
    except GoalServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
