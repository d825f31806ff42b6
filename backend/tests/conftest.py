from __future__ import annotations

import base64
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator

import pytest

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"
os.environ["AUTH_JWT_SECRET"] = base64.urlsafe_b64encode(b"\x02" * 32).decode()
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "60"

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.app import models  # noqa: E402
from backend.app.database import Base, get_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.security import generate_password_hash  # noqa: E402
from backend.app.services.products import recompute_sales_totals  # noqa: E402

TEST_PASSWORD = "Sup3rSecret!"
# Cheap hashes keep the suite fast; verification reads the iteration count back.
TEST_HASH_ITERATIONS = 1_000

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., models.User]:
    def _make_user(
        email: str,
        *,
        name: str = "Store Owner",
        role: models.UserRole = models.UserRole.USER,
    ) -> models.User:
        user = models.User(
            email=email,
            name=name,
            password_hash=generate_password_hash(TEST_PASSWORD, iterations=TEST_HASH_ITERATIONS),
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def owner(make_user) -> models.User:
    return make_user("owner@example.com", name="Olivia Owner")


@pytest.fixture
def other_user(make_user) -> models.User:
    return make_user("other@example.com", name="Oscar Other")


@pytest.fixture
def superuser(make_user) -> models.User:
    return make_user("admin@example.com", name="Ada Admin", role=models.UserRole.SUPERUSER)


def login(test_client: TestClient, email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
    response = test_client.post("/auth/token", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def anonymous_client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def client(anonymous_client: TestClient, owner: models.User) -> TestClient:
    anonymous_client.headers.update(login(anonymous_client, owner.email))
    return anonymous_client


def add_product(
    db: Session,
    owner_id: str,
    *,
    name: str,
    unit_cost: str = "4.00",
    base_price: str = "10.00",
    fees: str = "1.00",
    sales: tuple[tuple[datetime, int, str], ...] = (),
    sourcing_status: models.SourcingStatus = models.SourcingStatus.COMPLETE,
) -> models.Product:
    """Persist a product whose cached totals match the given sales."""

    product = models.Product(
        owner_id=owner_id,
        name=name,
        unit_cost=Decimal(unit_cost),
        base_price=Decimal(base_price),
        fees=Decimal(fees),
        sourcing_status=sourcing_status,
    )
    for index, (sold_at, units, revenue) in enumerate(sales):
        product.sales_history.append(
            models.SaleRecord(
                transaction_id=f"{1700000000000 + index}",
                date=sold_at,
                units_sold=units,
                revenue=Decimal(revenue),
            )
        )
    recompute_sales_totals(product)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def seeded_products(db_session: Session, owner: models.User, other_user: models.User) -> dict:
    now = datetime.now(timezone.utc)
    mug = add_product(
        db_session,
        owner.id,
        name="Ceramic Mug",
        sales=(
            (now - timedelta(days=2), 5, "50.00"),
            (now - timedelta(days=10), 3, "30.00"),
        ),
    )
    poster = add_product(
        db_session,
        owner.id,
        name="Art Poster",
        unit_cost="2.00",
        base_price="8.00",
        fees="0.50",
        sales=((now - timedelta(days=40), 4, "32.00"),),
        sourcing_status=models.SourcingStatus.NEGOTIATION,
    )
    foreign = add_product(
        db_session,
        other_user.id,
        name="Other Store Lamp",
        sales=((now - timedelta(days=1), 100, "1000.00"),),
    )
    return {"mug": mug, "poster": poster, "foreign": foreign}


@pytest.fixture
def product_factory(db_session: Session) -> Callable[..., models.Product]:
    def _factory(owner_id: str, **kwargs) -> models.Product:
        return add_product(db_session, owner_id, **kwargs)

    return _factory


@pytest.fixture
def login_as(anonymous_client: TestClient) -> Callable[[str], dict[str, str]]:
    """Return bearer headers for an existing account."""

    def _login(email: str) -> dict[str, str]:
        return login(anonymous_client, email)

    return _login
