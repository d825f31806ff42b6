from datetime import datetime, timedelta, timezone

import pytest

from backend.app import models
from backend.app.security import (
    _encode_jwt,
    _load_jwt_key,
    create_access_token,
    generate_password_hash,
    verify_password,
)


def test_password_hash_round_trip():
    stored = generate_password_hash("correct horse", iterations=1_000)

    assert stored.startswith("1000$")
    assert verify_password("correct horse", stored)
    assert not verify_password("wrong horse", stored)


def test_empty_password_is_rejected():
    with pytest.raises(ValueError):
        generate_password_hash("")


def test_register_then_login(anonymous_client):
    response = anonymous_client.post(
        "/auth/register",
        json={"email": "  New.Owner@Example.com ", "name": "New Owner", "password": "Str0ngPass!"},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["email"] == "new.owner@example.com"
    assert body["role"] == "user"
    assert "password_hash" not in body

    token = anonymous_client.post(
        "/auth/token",
        json={"email": "new.owner@example.com", "password": "Str0ngPass!"},
    )
    assert token.status_code == 200
    assert token.json()["token_type"] == "bearer"

    me = anonymous_client.get(
        "/auth/me",
        headers={"Authorization": f"Bearer {token.json()['access_token']}"},
    )
    assert me.status_code == 200
    assert me.json()["id"] == body["id"]


def test_duplicate_registration_is_rejected(anonymous_client, owner):
    response = anonymous_client.post(
        "/auth/register",
        json={"email": owner.email, "name": "Again", "password": "Str0ngPass!"},
    )

    assert response.status_code == 400


def test_registration_promotes_configured_superusers(anonymous_client, monkeypatch):
    monkeypatch.setenv("SUPERUSER_EMAILS", "boss@example.com, other-boss@example.com")

    response = anonymous_client.post(
        "/auth/register",
        json={"email": "Boss@example.com", "name": "Boss", "password": "Str0ngPass!"},
    )

    assert response.status_code == 201
    assert response.json()["role"] == "superuser"


def test_wrong_password_is_unauthorized(anonymous_client, owner):
    response = anonymous_client.post(
        "/auth/token",
        json={"email": owner.email, "password": "not-the-password"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_tampered_token_is_rejected(anonymous_client, owner):
    token = create_access_token(owner)
    header, payload, _ = token.split(".")

    response = anonymous_client.get("/auth/me", headers={"Authorization": f"Bearer {header}.{payload}.AAAA"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_expired_token_is_rejected(anonymous_client, owner):
    expired = datetime.now(timezone.utc) - timedelta(minutes=1)
    token = _encode_jwt({"sub": owner.id, "role": "user", "exp": int(expired.timestamp())}, _load_jwt_key())

    response = anonymous_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"


def test_token_for_deleted_user_is_rejected(anonymous_client, db_session, make_user):
    user = make_user("gone@example.com")
    token = create_access_token(user)
    db_session.delete(user)
    db_session.commit()

    response = anonymous_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_user_listing_requires_superuser(client, superuser, login_as):
    assert client.get("/auth/users").status_code == 403

    response = client.get("/auth/users", headers=login_as(superuser.email))

    assert response.status_code == 200
    emails = {user["email"] for user in response.json()}
    assert {"owner@example.com", "admin@example.com"} <= emails


def test_impersonating_unknown_user_is_not_found(anonymous_client, superuser, login_as):
    headers = login_as(superuser.email)
    headers["X-Impersonate-User-Id"] = "00000000-0000-0000-0000-000000000000"

    response = anonymous_client.get("/products/", headers=headers)

    assert response.status_code == 404


def test_superuser_creates_products_for_impersonated_owner(anonymous_client, superuser, owner, login_as, db_session):
    headers = {**login_as(superuser.email), "X-Impersonate-User-Id": owner.id}

    response = anonymous_client.post(
        "/products/",
        headers=headers,
        json={"name": "Proxy Item", "unit_cost": "1", "base_price": "2"},
    )

    assert response.status_code == 201
    assert response.json()["owner_id"] == owner.id
    stored = db_session.get(models.Product, response.json()["id"])
    assert stored.owner_id == owner.id

