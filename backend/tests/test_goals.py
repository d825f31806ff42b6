from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from backend.app import models
from backend.app.services.goals import GoalService, StoreTotals, _add_months


def _goal(
    goal_id: str,
    goal_type: models.GoalType,
    target: str,
    *,
    current: str = "0",
    product_id: str | None = None,
) -> models.Goal:
    return models.Goal(
        id=goal_id,
        owner_id="owner-1",
        name=f"{goal_type.value} goal",
        type=goal_type,
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        product_id=product_id,
        is_product_specific=product_id is not None,
    )


class _FlakySession:
    """Stands in for a session whose commits fail for selected goals."""

    def __init__(self, goals, failing_ids=()):
        self.stored = {goal.id: goal.current_amount for goal in goals}
        self.failing_ids = set(failing_ids)
        self.commits: list[str] = []
        self.rollbacks = 0
        self._pending = None

    def add(self, goal):
        self._pending = goal

    def commit(self):
        goal = self._pending
        if goal.id in self.failing_ids:
            raise OperationalError("UPDATE goals", {}, Exception("database is locked"))
        self.stored[goal.id] = goal.current_amount
        self.commits.append(goal.id)

    def rollback(self):
        self.rollbacks += 1
        self._pending.current_amount = self.stored[self._pending.id]

    def refresh(self, goal):
        return None

    def get_bind(self):
        raise RuntimeError("no database available")


@pytest.mark.parametrize(
    ("current", "expected_progress", "expected_status"),
    [
        ("150", Decimal("100.00"), "completed"),
        ("100", Decimal("100.00"), "completed"),
        ("75", Decimal("75.00"), "on-track"),
        ("50", Decimal("50.00"), "in-progress"),
        ("49.99", Decimal("49.99"), "at-risk"),
        ("-20", Decimal("0.00"), "at-risk"),
    ],
)
def test_progress_is_clamped_and_bucketed(current, expected_progress, expected_status):
    goal = _goal("g1", models.GoalType.REVENUE, "100")

    progress = GoalService.compute_progress(goal, StoreTotals(revenue=Decimal(current)))

    assert progress.progress_percentage == expected_progress
    assert progress.status == expected_status


def test_store_metrics_per_goal_type():
    totals = StoreTotals(revenue=Decimal("200"), profit=Decimal("50"), units=12)

    assert GoalService.compute_progress(_goal("a", models.GoalType.SALES, "24"), totals).current_amount == 12
    assert GoalService.compute_progress(_goal("b", models.GoalType.PROFIT, "100"), totals).current_amount == 50
    margin = GoalService.compute_progress(_goal("c", models.GoalType.PROFIT_MARGIN, "50"), totals)
    assert margin.current_amount == Decimal("25")
    assert margin.progress_percentage == Decimal("50.00")
    assert StoreTotals().profit_margin == 0


def test_product_metrics_use_unit_margin():
    product = models.Product(
        id="p1",
        unit_cost=Decimal("4"),
        base_price=Decimal("10"),
        fees=Decimal("1"),
        units_sold=20,
        total_sales=Decimal("190"),
    )

    def current(goal_type):
        goal = _goal("g", goal_type, "1000", product_id="p1")
        return GoalService.compute_progress(goal, product).current_amount

    assert current(models.GoalType.REVENUE) == Decimal("190")
    assert current(models.GoalType.SALES) == 20
    assert current(models.GoalType.PROFIT) == Decimal("100")
    assert current(models.GoalType.PROFIT_MARGIN) == Decimal("50")

    product.base_price = Decimal("0")
    assert current(models.GoalType.PROFIT_MARGIN) == 0


def test_product_goal_without_product_has_zero_progress():
    goal = _goal("g", models.GoalType.REVENUE, "100", product_id="gone")

    progress = GoalService.compute_progress(goal, None)

    assert progress.current_amount == 0
    assert progress.status == "at-risk"


def test_store_totals_from_products_sum_cached_fields():
    products = [
        models.Product(unit_cost=Decimal("2"), fees=Decimal("1"), units_sold=5, total_sales=Decimal("50")),
        models.Product(unit_cost=Decimal("1"), fees=Decimal("0"), units_sold=2, total_sales=Decimal("20")),
    ]

    totals = StoreTotals.from_products(products)

    assert totals.revenue == Decimal("70")
    assert totals.units == 7
    assert totals.profit == Decimal("53")


def test_sync_never_touches_product_specific_goals():
    store_goal = _goal("store", models.GoalType.REVENUE, "1000", current="10")
    product_goal = _goal("product", models.GoalType.REVENUE, "1000", current="10", product_id="p1")
    session = _FlakySession([store_goal, product_goal])
    snapshot = StoreTotals(revenue=Decimal("500"), profit=Decimal("100"), units=5)

    result = GoalService.sync_with_dashboard(
        session,
        [store_goal, product_goal],
        _SnapshotTotals(snapshot),
    )

    assert result.updated is True
    assert session.commits == ["store"]
    assert store_goal.current_amount == Decimal("500")
    assert product_goal.current_amount == Decimal("10")
    assert [goal.id for goal in result.goals] == ["store", "product"]


def test_sync_skips_goals_within_tolerance():
    revenue_goal = _goal("revenue", models.GoalType.REVENUE, "1000", current="499.995")
    sales_goal = _goal("sales", models.GoalType.SALES, "100", current="5")
    session = _FlakySession([revenue_goal, sales_goal])

    result = GoalService.sync_with_dashboard(
        session,
        [revenue_goal, sales_goal],
        _SnapshotTotals(StoreTotals(revenue=Decimal("500"), profit=Decimal("0"), units=5)),
    )

    assert result.updated is False
    assert result.failed == []
    assert session.commits == []


def test_sync_isolates_failed_writes():
    first = _goal("first", models.GoalType.REVENUE, "1000", current="0")
    broken = _goal("broken", models.GoalType.PROFIT, "1000", current="1")
    last = _goal("last", models.GoalType.SALES, "100", current="0")
    session = _FlakySession([first, broken, last], failing_ids={"broken"})

    result = GoalService.sync_with_dashboard(
        session,
        [first, broken, last],
        _SnapshotTotals(StoreTotals(revenue=Decimal("300"), profit=Decimal("90"), units=30)),
    )

    assert result.updated is True
    assert result.failed == ["broken"]
    assert session.commits == ["first", "last"]
    assert session.rollbacks == 1
    assert broken.current_amount == Decimal("1")
    assert [goal.id for goal in result.goals] == ["first", "broken", "last"]


class _SnapshotTotals:
    """Minimal object shaped like a dashboard snapshot."""

    def __init__(self, totals: StoreTotals):
        self.total_revenue = totals.revenue
        self.total_profit = totals.profit
        self.units_sold = totals.units


def test_add_months_clamps_to_month_end():
    assert _add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert _add_months(date(2023, 12, 15), 1) == date(2024, 1, 15)


def _goal_payload(**overrides):
    payload = {
        "name": "Spring revenue",
        "type": "revenue",
        "target_amount": "1000",
        "start_date": "2024-03-01",
        "end_date": "2024-05-31",
        "is_product_specific": False,
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize(
    "overrides",
    [
        {"target_amount": "0"},
        {"target_amount": "-5"},
        {"target_amount": "lots"},
        {"type": "happiness"},
        {"end_date": "2024-02-01"},
        {"is_product_specific": True},
    ],
)
def test_create_goal_rejects_invalid_payloads(client, overrides):
    response = client.post("/goals/", json=_goal_payload(**overrides))

    assert response.status_code == 422


def test_create_store_goal_ignores_product_reference(client, seeded_products):
    response = client.post(
        "/goals/",
        json=_goal_payload(product_id=seeded_products["mug"].id),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["product_id"] is None
    assert Decimal(str(body["current_amount"])) == 0


def test_product_goal_requires_an_owned_product(client, seeded_products):
    response = client.post(
        "/goals/",
        json=_goal_payload(is_product_specific=True, product_id=seeded_products["foreign"].id),
    )

    assert response.status_code == 404


def test_product_goals_get_monthly_defaults_once(client, seeded_products, db_session):
    product_id = seeded_products["mug"].id

    first = client.get(f"/goals/products/{product_id}")
    assert first.status_code == 200
    goals = first.json()
    assert sorted(goal["name"] for goal in goals) == [
        "Monthly Profit Target",
        "Monthly Revenue Target",
        "Monthly Sales Target",
    ]
    targets = {goal["type"]: Decimal(str(goal["target_amount"])) for goal in goals}
    assert targets == {"revenue": Decimal("10000"), "sales": Decimal("1000"), "profit": Decimal("4000")}
    today = datetime.now(timezone.utc).date()
    assert all(goal["start_date"] == today.isoformat() for goal in goals)
    assert all(goal["is_product_specific"] for goal in goals)

    second = client.get(f"/goals/products/{product_id}")
    assert [goal["id"] for goal in second.json()] == [goal["id"] for goal in goals]
    assert db_session.query(models.Goal).filter(models.Goal.product_id == product_id).count() == 3


def test_product_goals_for_foreign_product_are_not_found(client, seeded_products):
    response = client.get(f"/goals/products/{seeded_products['foreign'].id}")

    assert response.status_code == 404


def test_refresh_product_goals_stores_product_metrics(client, seeded_products):
    mug = seeded_products["mug"]
    client.get(f"/goals/products/{mug.id}")

    response = client.post(f"/goals/products/{mug.id}/refresh")

    assert response.status_code == 200
    amounts = {goal["type"]: Decimal(str(goal["current_amount"])) for goal in response.json()}
    # Mug: 8 units, 80 revenue, unit margin 10 - 4 - 1 = 5.
    assert amounts == {"revenue": Decimal("80"), "sales": Decimal("8"), "profit": Decimal("40")}


def test_status_endpoint_reports_progress_for_every_goal(client, seeded_products):
    client.post("/goals/", json=_goal_payload(target_amount="100"))
    client.post("/goals/", json=_goal_payload(name="Units", type="sales", target_amount="6"))
    client.post(
        "/goals/",
        json=_goal_payload(
            name="Mug revenue",
            target_amount="160",
            is_product_specific=True,
            product_id=seeded_products["mug"].id,
        ),
    )

    response = client.get("/goals/status")

    assert response.status_code == 200
    by_name = {goal["name"]: goal for goal in response.json()}
    # Store: 80 + 32 revenue, 12 units.
    assert Decimal(str(by_name["Spring revenue"]["progress_percentage"])) == Decimal("100")
    assert by_name["Spring revenue"]["status"] == "completed"
    assert Decimal(str(by_name["Units"]["progress_percentage"])) == Decimal("100")
    assert Decimal(str(by_name["Mug revenue"]["current_amount"])) == Decimal("80")
    assert by_name["Mug revenue"]["status"] == "in-progress"


def test_sync_endpoint_is_change_gated(client, seeded_products):
    store_goal = client.post("/goals/", json=_goal_payload()).json()
    product_goal = client.post(
        "/goals/",
        json=_goal_payload(name="Mug", is_product_specific=True, product_id=seeded_products["mug"].id),
    ).json()
    totals = {"total_revenue": "80.00", "total_profit": "40.00", "units_sold": 8}

    first = client.post("/goals/sync", json=totals)
    assert first.status_code == 200
    body = first.json()
    assert body["updated"] is True
    assert body["failed"] == []
    amounts = {goal["id"]: Decimal(str(goal["current_amount"])) for goal in body["goals"]}
    assert amounts[store_goal["id"]] == Decimal("80")
    assert amounts[product_goal["id"]] == Decimal("0")

    second = client.post("/goals/sync", json=totals)
    assert second.json()["updated"] is False


def test_sync_records_operational_event(client, db_session, owner):
    client.post("/goals/", json=_goal_payload())

    client.post("/goals/sync", json={"total_revenue": "10", "total_profit": "1", "units_sold": 1})

    event = (
        db_session.query(models.OperationalMetricEvent)
        .filter(models.OperationalMetricEvent.event_type == "goals.sync")
        .one()
    )
    assert event.outcome == "success"
    assert event.owner_id == owner.id
    assert event.details["checked"] == 1


def test_goal_lists_are_scoped_and_filtered(client, seeded_products):
    client.post("/goals/", json=_goal_payload(end_date="2024-12-31"))
    client.post("/goals/", json=_goal_payload(name="Earlier", end_date="2024-04-30"))
    client.post(
        "/goals/",
        json=_goal_payload(name="Mug", is_product_specific=True, product_id=seeded_products["mug"].id),
    )

    everything = client.get("/goals/").json()
    assert [goal["name"] for goal in everything][:1] == ["Earlier"]
    assert len(everything) == 3

    store = client.get("/goals/store").json()
    assert {goal["name"] for goal in store} == {"Spring revenue", "Earlier"}

    product_only = client.get("/goals/", params={"is_product_specific": "true"}).json()
    assert [goal["name"] for goal in product_only] == ["Mug"]


def test_update_progress_and_delete_goal(client):
    goal = client.post("/goals/", json=_goal_payload()).json()

    response = client.put(f"/goals/{goal['id']}/progress", json={"current_amount": "250.5"})
    assert response.status_code == 200
    assert Decimal(str(response.json()["current_amount"])) == Decimal("250.5")

    updated = client.put(f"/goals/{goal['id']}", json={"target_amount": "2000", "name": "Bigger"})
    assert updated.status_code == 200
    assert updated.json()["name"] == "Bigger"
    assert Decimal(str(updated.json()["target_amount"])) == Decimal("2000")

    invalid = client.put(f"/goals/{goal['id']}", json={"end_date": "2024-01-01"})
    assert invalid.status_code == 400

    deleted = client.delete(f"/goals/{goal['id']}")
    assert deleted.status_code == 204
    assert client.put(f"/goals/{goal['id']}/progress", json={"current_amount": "1"}).status_code == 404


def test_other_users_goals_are_not_visible(client, other_user, login_as):
    goal = client.post("/goals/", json=_goal_payload()).json()

    headers = login_as(other_user.email)

    assert client.get("/goals/", headers=headers).json() == []
    assert client.delete(f"/goals/{goal['id']}", headers=headers).status_code == 404


def test_deleting_a_product_keeps_its_goals_without_reference(client, seeded_products, db_session):
    mug_id = seeded_products["mug"].id
    client.get(f"/goals/products/{mug_id}")

    assert client.delete(f"/products/{mug_id}").status_code == 204

    db_session.expire_all()
    remaining = db_session.query(models.Goal).filter(models.Goal.is_product_specific.is_(True)).all()
    assert len(remaining) == 3
    assert all(goal.product_id is None for goal in remaining)
    status_goals = client.get("/goals/status").json()
    assert all(Decimal(str(goal["current_amount"])) == 0 for goal in status_goals)
