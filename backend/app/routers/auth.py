"""Authentication endpoints for store owners."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import create_access_token, get_current_user
from ..services import UserService, UserServiceError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: schemas.UserRegisterRequest,
    db: Session = Depends(get_db),
) -> schemas.UserRead:
    try:
        return UserService.register(db, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except UserServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/token", response_model=schemas.TokenResponse)
def obtain_access_token(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    """Authenticate a user and return an access token."""

    user = UserService.authenticate(db, payload.email, payload.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.TokenResponse(access_token=create_access_token(user))


@router.get("/me", response_model=schemas.UserRead)
def read_current_user(current_user: models.User = Depends(get_current_user)) -> schemas.UserRead:
    return current_user


@router.get("/users", response_model=List[schemas.UserRead])
def list_users(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[schemas.UserRead]:
    """Accounts a superuser can impersonate."""

    if not current_user.is_superuser:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Superuser access required")
    return UserService.list_users(db)
