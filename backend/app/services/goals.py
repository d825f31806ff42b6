"""Goal progress computation, dashboard synchronisation and goal CRUD."""

from __future__ import annotations

import calendar
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db_types import is_guid
from .dashboard import product_profit
from .observability import MetricOutcome, ObservabilityService

LOGGER = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_STEP = Decimal("0.01")
AMOUNT_STEP = Decimal("0.0001")
SYNC_TOLERANCE = Decimal("0.01")

DEFAULT_PRODUCT_GOALS = (
    ("Monthly Revenue Target", models.GoalType.REVENUE, Decimal("10000")),
    ("Monthly Sales Target", models.GoalType.SALES, Decimal("1000")),
    ("Monthly Profit Target", models.GoalType.PROFIT, Decimal("4000")),
)


class GoalServiceError(RuntimeError):
    """Raised when the goal service cannot persist changes."""


def _to_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class StoreTotals:
    """Store-wide figures a non product-specific goal is measured against."""

    revenue: Decimal = ZERO
    profit: Decimal = ZERO
    units: int = 0

    @property
    def profit_margin(self) -> Decimal:
        if self.revenue <= 0:
            return ZERO
        return self.profit / self.revenue * HUNDRED

    @classmethod
    def from_products(cls, products: Iterable[models.Product]) -> "StoreTotals":
        revenue = ZERO
        profit = ZERO
        units = 0
        for product in products:
            revenue += _to_decimal(product.total_sales)
            profit += product_profit(product)
            units += int(product.units_sold or 0)
        return cls(revenue=revenue, profit=profit, units=units)

    @classmethod
    def from_snapshot(cls, snapshot) -> "StoreTotals":
        """Accepts a dashboard snapshot or a sync request carrying its totals."""

        return cls(
            revenue=_to_decimal(snapshot.total_revenue),
            profit=_to_decimal(snapshot.total_profit),
            units=int(snapshot.units_sold or 0),
        )


@dataclass(frozen=True)
class GoalProgress:
    current_amount: Decimal
    progress_percentage: Decimal
    status: schemas.GoalStatus


@dataclass
class GoalSyncResult:
    goals: List[models.Goal] = field(default_factory=list)
    updated: bool = False
    failed: List[str] = field(default_factory=list)


ProgressSource = Union[StoreTotals, models.Product, None]


class GoalService:
    """Business rules for goals and their progress against sales data."""

    @staticmethod
    def status_for(progress: Decimal) -> schemas.GoalStatus:
        if progress >= 100:
            return schemas.GoalStatus.COMPLETED
        if progress >= 75:
            return schemas.GoalStatus.ON_TRACK
        if progress >= 50:
            return schemas.GoalStatus.IN_PROGRESS
        return schemas.GoalStatus.AT_RISK

    @staticmethod
    def _store_metric(goal_type: models.GoalType, totals: StoreTotals) -> Decimal:
        if goal_type == models.GoalType.REVENUE:
            return totals.revenue
        if goal_type == models.GoalType.SALES:
            return Decimal(totals.units)
        if goal_type == models.GoalType.PROFIT:
            return totals.profit
        return totals.profit_margin

    @staticmethod
    def _product_metric(goal_type: models.GoalType, product: models.Product) -> Decimal:
        units = int(product.units_sold or 0)
        base_price = _to_decimal(product.base_price)
        unit_margin = base_price - _to_decimal(product.unit_cost) - _to_decimal(product.fees)
        if goal_type == models.GoalType.REVENUE:
            return _to_decimal(product.total_sales)
        if goal_type == models.GoalType.SALES:
            return Decimal(units)
        if goal_type == models.GoalType.PROFIT:
            return unit_margin * units
        if base_price <= 0:
            return ZERO
        return unit_margin / base_price * HUNDRED

    @staticmethod
    def compute_progress(goal: models.Goal, source: ProgressSource) -> GoalProgress:
        """Measure ``goal`` against store totals or against its own product.

        Product-specific goals read the product handed in as ``source``; a
        missing product yields a current amount of zero. Store-wide goals
        require :class:`StoreTotals`.
        """

        if goal.is_product_specific:
            if isinstance(source, StoreTotals) or source is None:
                current = ZERO
            else:
                current = GoalService._product_metric(goal.type, source)
        else:
            totals = source if isinstance(source, StoreTotals) else StoreTotals()
            current = GoalService._store_metric(goal.type, totals)

        current = current.quantize(AMOUNT_STEP, rounding=ROUND_HALF_UP)
        target = _to_decimal(goal.target_amount)
        raw_progress = current / target * HUNDRED if target > 0 else ZERO
        progress = min(max(raw_progress, ZERO), HUNDRED).quantize(
            PERCENT_STEP, rounding=ROUND_HALF_UP
        )
        return GoalProgress(
            current_amount=current,
            progress_percentage=progress,
            status=GoalService.status_for(progress),
        )

    @staticmethod
    def _is_dirty(goal: models.Goal, new_amount: Decimal) -> bool:
        stored = _to_decimal(goal.current_amount)
        if goal.type == models.GoalType.SALES:
            return new_amount != stored
        return abs(new_amount - stored) > SYNC_TOLERANCE

    @staticmethod
    def sync_with_dashboard(
        db: Session,
        goals: Sequence[models.Goal],
        snapshot,
        *,
        owner_id: str | None = None,
    ) -> GoalSyncResult:
        """Write fresh store totals into store-wide goals whose value changed.

        Every dirty goal is committed on its own so one failed write leaves
        the others intact. Failed goals keep their stored value and are
        reported by id.
        """

        started = time.perf_counter()
        totals = StoreTotals.from_snapshot(snapshot)
        result = GoalSyncResult()
        checked = 0

        for goal in goals:
            if goal.is_product_specific:
                result.goals.append(goal)
                continue
            checked += 1
            progress = GoalService.compute_progress(goal, totals)
            if not GoalService._is_dirty(goal, progress.current_amount):
                result.goals.append(goal)
                continue

            goal_id = str(goal.id)
            try:
                goal.current_amount = progress.current_amount
                db.add(goal)
                db.commit()
                db.refresh(goal)
            except SQLAlchemyError:
                db.rollback()
                LOGGER.warning("Unable to sync goal %s with dashboard totals", goal_id, exc_info=True)
                result.failed.append(goal_id)
            else:
                result.updated = True
            result.goals.append(goal)

        if result.updated or result.failed:
            LOGGER.info(
                "Goal sync for %s: %s checked, %s failed, updated=%s",
                owner_id,
                checked,
                len(result.failed),
                result.updated,
            )
        ObservabilityService.record_event(
            db,
            "goals.sync",
            MetricOutcome.PARTIAL if result.failed else MetricOutcome.SUCCESS,
            owner_id=owner_id,
            duration_ms=ObservabilityService.elapsed_ms(started),
            tags={"updated": result.updated},
            metadata={"checked": checked, "failed": list(result.failed)},
        )
        return result

    @staticmethod
    def list_goals(
        db: Session,
        owner_id: str,
        *,
        is_product_specific: Optional[bool] = None,
    ) -> List[models.Goal]:
        query = db.query(models.Goal).filter(models.Goal.owner_id == owner_id)
        if is_product_specific is not None:
            query = query.filter(models.Goal.is_product_specific.is_(is_product_specific))
        return query.order_by(
            models.Goal.end_date.asc(),
            models.Goal.created_at.asc(),
            models.Goal.id.asc(),
        ).all()

    @staticmethod
    def list_store_goals(db: Session, owner_id: str) -> List[models.Goal]:
        return GoalService.list_goals(db, owner_id, is_product_specific=False)

    @staticmethod
    def get_goal(db: Session, owner_id: str, goal_id: str) -> Optional[models.Goal]:
        if not is_guid(goal_id):
            return None
        return (
            db.query(models.Goal)
            .filter(models.Goal.id == goal_id, models.Goal.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def _owned_product(db: Session, owner_id: str, product_id: str) -> Optional[models.Product]:
        if not is_guid(product_id):
            return None
        return (
            db.query(models.Product)
            .filter(models.Product.id == product_id, models.Product.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def goals_with_progress(db: Session, owner_id: str) -> List[schemas.GoalWithProgress]:
        goals = GoalService.list_goals(db, owner_id)
        products = db.query(models.Product).filter(models.Product.owner_id == owner_id).all()
        totals = StoreTotals.from_products(products)
        products_by_id: Dict[str, models.Product] = {str(item.id): item for item in products}

        results: List[schemas.GoalWithProgress] = []
        for goal in goals:
            if goal.is_product_specific:
                source: ProgressSource = products_by_id.get(str(goal.product_id)) if goal.product_id else None
            else:
                source = totals
            progress = GoalService.compute_progress(goal, source)
            payload = schemas.GoalRead.model_validate(goal).model_dump()
            payload.update(
                current_amount=progress.current_amount,
                progress_percentage=progress.progress_percentage,
                status=progress.status,
            )
            results.append(schemas.GoalWithProgress(**payload))
        return results

    @staticmethod
    def _commit(db: Session, message: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise GoalServiceError(message) from exc

    @staticmethod
    def create_goal(db: Session, owner_id: str, data: schemas.GoalCreate) -> models.Goal:
        if data.is_product_specific:
            if GoalService._owned_product(db, owner_id, data.product_id) is None:
                raise ValueError("Product not found")

        goal = models.Goal(
            owner_id=owner_id,
            name=data.name,
            type=data.type,
            target_amount=data.target_amount,
            start_date=data.start_date,
            end_date=data.end_date,
            current_amount=ZERO,
            product_id=data.product_id,
            is_product_specific=data.is_product_specific,
        )
        db.add(goal)
        GoalService._commit(db, "Unable to create goal at this time.")
        db.refresh(goal)
        return goal

    @staticmethod
    def update_goal(db: Session, goal: models.Goal, data: schemas.GoalUpdate) -> models.Goal:
        changes = data.model_dump(exclude_unset=True)
        for field_name in ("name", "type", "target_amount", "start_date", "end_date", "is_product_specific"):
            if changes.get(field_name) is None:
                changes.pop(field_name, None)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if not changes["name"]:
                raise ValueError("name must not be blank")

        start_date = changes.get("start_date", goal.start_date)
        end_date = changes.get("end_date", goal.end_date)
        if end_date < start_date:
            raise ValueError("end_date must be on or after start_date")

        is_product_specific = changes.get("is_product_specific", goal.is_product_specific)
        product_id = changes.get("product_id", goal.product_id) if is_product_specific else None
        if is_product_specific:
            if not product_id:
                raise ValueError("product_id is required for product-specific goals")
            if "product_id" in changes and GoalService._owned_product(db, goal.owner_id, product_id) is None:
                raise ValueError("Product not found")
        changes["product_id"] = product_id

        for key, value in changes.items():
            setattr(goal, key, value)
        db.add(goal)
        GoalService._commit(db, "Unable to update goal at this time.")
        db.refresh(goal)
        return goal

    @staticmethod
    def update_progress(db: Session, goal: models.Goal, current_amount: Decimal) -> models.Goal:
        goal.current_amount = current_amount
        db.add(goal)
        GoalService._commit(db, "Unable to update goal progress at this time.")
        db.refresh(goal)
        return goal

    @staticmethod
    def delete_goal(db: Session, goal: models.Goal) -> None:
        db.delete(goal)
        GoalService._commit(db, "Unable to delete goal at this time.")

    @staticmethod
    def _product_goals(db: Session, owner_id: str, product_id: str) -> List[models.Goal]:
        return (
            db.query(models.Goal)
            .filter(
                models.Goal.owner_id == owner_id,
                models.Goal.product_id == product_id,
                models.Goal.is_product_specific.is_(True),
            )
            .order_by(models.Goal.end_date.asc(), models.Goal.created_at.asc(), models.Goal.id.asc())
            .all()
        )

    @staticmethod
    def product_goals(
        db: Session,
        owner_id: str,
        product_id: str,
        *,
        today: date | None = None,
    ) -> List[models.Goal]:
        """Goals for one product, creating the monthly defaults on first view."""

        if GoalService._owned_product(db, owner_id, product_id) is None:
            raise ValueError("Product not found")

        goals = GoalService._product_goals(db, owner_id, product_id)
        if goals:
            return goals

        start = today or datetime.now(timezone.utc).date()
        end = _add_months(start, 1)
        for name, goal_type, target in DEFAULT_PRODUCT_GOALS:
            db.add(
                models.Goal(
                    owner_id=owner_id,
                    product_id=product_id,
                    name=name,
                    type=goal_type,
                    target_amount=target,
                    start_date=start,
                    end_date=end,
                    current_amount=ZERO,
                    is_product_specific=True,
                )
            )
        GoalService._commit(db, "Unable to create default product goals at this time.")
        LOGGER.info("Created default goals for product %s", product_id)
        return GoalService._product_goals(db, owner_id, product_id)

    @staticmethod
    def refresh_product_goals(db: Session, owner_id: str, product_id: str) -> List[models.Goal]:
        """Store the product's current metrics as each of its goals' progress."""

        product = GoalService._owned_product(db, owner_id, product_id)
        if product is None:
            raise ValueError("Product not found")

        goals = GoalService._product_goals(db, owner_id, product_id)
        for goal in goals:
            goal.current_amount = GoalService.compute_progress(goal, product).current_amount
            db.add(goal)
        if goals:
            GoalService._commit(db, "Unable to refresh product goals at this time.")
            for goal in goals:
                db.refresh(goal)
        return goals
