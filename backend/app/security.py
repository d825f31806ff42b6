"""Password hashing, bearer tokens and owner resolution for API requests."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from . import models
from .config import (
    ACCESS_TOKEN_EXPIRE_MINUTES_ENV,
    JWT_SECRET_ENV,
    SUPERUSER_EMAILS_ENV,
    read_list_env,
)
from .database import get_db
from .db_types import is_guid

LOGGER = logging.getLogger(__name__)

PBKDF2_DEFAULT_ITERATIONS = 390_000
IMPERSONATION_HEADER = "X-Impersonate-User-Id"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class SecurityConfigurationError(RuntimeError):
    """Raised when mandatory security settings are missing or invalid."""


def _read_env_var(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise SecurityConfigurationError(f"Environment variable '{name}' is required")
    return value


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def generate_password_hash(password: str, *, iterations: int = PBKDF2_DEFAULT_ITERATIONS) -> str:
    """Return a PBKDF2-based password hash string."""

    if not password:
        raise ValueError("password must not be empty")
    salt = secrets.token_bytes(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    components = (
        str(iterations),
        base64.urlsafe_b64encode(salt).decode("ascii"),
        base64.urlsafe_b64encode(derived).decode("ascii"),
    )
    return "$".join(components)


def _split_password_hash(stored_hash: str) -> tuple[int, bytes, bytes]:
    try:
        iterations_str, salt_b64, hash_b64 = stored_hash.split("$")
        iterations = int(iterations_str)
        salt = base64.urlsafe_b64decode(salt_b64)
        digest = base64.urlsafe_b64decode(hash_b64)
    except (ValueError, binascii.Error) as exc:  # pragma: no cover - defensive branch
        raise SecurityConfigurationError("Stored password hash is invalid") from exc
    return iterations, salt, digest


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against a stored PBKDF2 hash."""

    iterations, salt, digest = _split_password_hash(stored_hash)
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(candidate, digest)


def superuser_emails() -> set[str]:
    return {email.lower() for email in read_list_env(SUPERUSER_EMAILS_ENV)}


@lru_cache(maxsize=1)
def _load_jwt_key() -> bytes:
    raw_secret = _read_env_var(JWT_SECRET_ENV)
    try:
        return base64.urlsafe_b64decode(raw_secret)
    except (ValueError, binascii.Error):
        return raw_secret.encode("utf-8")


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _encode_jwt(payload: dict[str, Any], key: bytes) -> str:
    header = {"typ": "JWT", "alg": "HS256"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    signature_b64 = _b64url_encode(signature)
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def _decode_jwt(token: str, key: bytes) -> dict[str, Any]:
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
        signature = _b64url_decode(signature_b64)
    except (ValueError, binascii.Error) as exc:
        raise _unauthorized("Invalid token") from exc

    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    expected_signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(signature, expected_signature):
        raise _unauthorized("Invalid token")

    try:
        payload_data = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise _unauthorized("Invalid token") from exc
    if not isinstance(payload_data, dict) or payload_data.get("exp") is None:
        raise _unauthorized("Invalid token")
    exp = int(payload_data["exp"])
    if datetime.now(timezone.utc) >= datetime.fromtimestamp(exp, tz=timezone.utc):
        raise _unauthorized("Token expired")
    return payload_data


def _resolve_access_token_expiry() -> timedelta:
    raw = os.getenv(ACCESS_TOKEN_EXPIRE_MINUTES_ENV)
    if not raw:
        return timedelta(minutes=30)
    try:
        minutes = int(raw)
    except ValueError as exc:  # pragma: no cover - defensive branch
        raise SecurityConfigurationError("ACCESS_TOKEN_EXPIRE_MINUTES must be an integer") from exc
    if minutes <= 0:
        raise SecurityConfigurationError("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")
    return timedelta(minutes=minutes)


def create_access_token(user: models.User) -> str:
    key = _load_jwt_key()
    expiry = datetime.now(timezone.utc) + _resolve_access_token_expiry()
    role = getattr(user.role, "value", user.role)
    payload: dict[str, Any] = {
        "sub": str(user.id),
        "role": role,
        "exp": int(expiry.timestamp()),
    }
    return _encode_jwt(payload, key)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    payload = _decode_jwt(token, _load_jwt_key())
    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not is_guid(user_id):
        raise _unauthorized("Invalid token")
    user = db.get(models.User, user_id)
    if user is None:
        raise _unauthorized("Invalid token")
    return user


def get_effective_owner_id(
    current_user: models.User = Depends(get_current_user),
    impersonate_user_id: Optional[str] = Header(default=None, alias=IMPERSONATION_HEADER),
    db: Session = Depends(get_db),
) -> str:
    """Return the id whose data the request acts on.

    Superusers may act on behalf of another account through the
    impersonation header; the header is ignored for everyone else.
    """

    target = (impersonate_user_id or "").strip()
    if not target or not current_user.is_superuser:
        return str(current_user.id)
    if target == str(current_user.id):
        return target

    impersonated = db.get(models.User, target) if is_guid(target) else None
    if impersonated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Impersonated user not found")
    LOGGER.info("User %s acting as %s", current_user.id, target)
    return str(impersonated.id)
