"""Accounts that own products and goals."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import Column, Enum as SAEnum, String, func
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, UTCDateTime


class UserRole(str, enum.Enum):
    USER = "user"
    SUPERUSER = "superuser"


USER_ROLE_ENUM = SAEnum(
    UserRole,
    name="user_role_enum",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    native_enum=False,
    validate_strings=True,
)


class User(Base):
    """A store owner able to sign in and manage their own catalog."""

    __tablename__ = "users"

    id = Column("user_id", GUID(), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(USER_ROLE_ENUM, nullable=False, default=UserRole.USER)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)

    products = relationship(
        "Product",
        back_populates="owner",
        cascade="all, delete-orphan",
    )
    goals = relationship(
        "Goal",
        back_populates="owner",
        cascade="all, delete-orphan",
    )

    @property
    def is_superuser(self) -> bool:
        return self.role == UserRole.SUPERUSER
