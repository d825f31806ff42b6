"""Account registration and credential checks."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..security import generate_password_hash, superuser_emails, verify_password

LOGGER = logging.getLogger(__name__)


class UserServiceError(RuntimeError):
    """Raised when user accounts cannot be persisted."""


class UserService:
    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[models.User]:
        return db.query(models.User).filter(models.User.email == email.strip().lower()).first()

    @staticmethod
    def list_users(db: Session) -> List[models.User]:
        return db.query(models.User).order_by(models.User.created_at.asc(), models.User.email.asc()).all()

    @staticmethod
    def register(db: Session, data: schemas.UserRegisterRequest) -> models.User:
        if UserService.get_by_email(db, data.email) is not None:
            raise ValueError("A user with this email already exists")

        role = models.UserRole.SUPERUSER if data.email in superuser_emails() else models.UserRole.USER
        user = models.User(
            email=data.email,
            name=data.name.strip(),
            password_hash=generate_password_hash(data.password),
            role=role,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ValueError("A user with this email already exists") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise UserServiceError("Unable to register user at this time.") from exc
        db.refresh(user)
        LOGGER.info("Registered user %s with role %s", user.id, role.value)
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
        user = UserService.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user
