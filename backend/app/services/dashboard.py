"""Sales rollups that feed the dashboard cards, chart and goal sync."""

from __future__ import annotations

import logging
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_CEILING, ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from .observability import MetricOutcome, ObservabilityService
from .periods import PeriodResolver, ResolvedPeriod, coerce_timestamp

LOGGER = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
PROFIT_CAP_RATIO = Decimal("0.7")
RESCALE_TOLERANCE = Decimal("1")
TOP_PRODUCT_LIMIT = 5


def _to_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def product_profit(product: models.Product) -> Decimal:
    """Lifetime profit of ``product`` from its cached totals and current costs."""

    units = int(product.units_sold or 0)
    unit_cost = _to_decimal(product.unit_cost)
    fees = _to_decimal(product.fees)
    return _to_decimal(product.total_sales) - unit_cost * units - fees * units


@dataclass(frozen=True)
class _FlatSale:
    product_id: str
    timestamp: datetime
    revenue: Decimal
    profit: Decimal
    units: int


@dataclass
class _Totals:
    revenue: Decimal = ZERO
    profit: Decimal = ZERO
    units: int = 0

    def add(self, sale: _FlatSale) -> None:
        self.revenue += sale.revenue
        self.profit += sale.profit
        self.units += sale.units

    @property
    def has_history(self) -> bool:
        return self.revenue > 0 or self.profit > 0 or self.units > 0


@dataclass
class RollupResult:
    """A snapshot plus the bookkeeping reported to operational events."""

    snapshot: schemas.DashboardSnapshot
    skipped_records: int = 0
    synthesized: bool = False
    rescaled: bool = False
    current: _Totals = field(default_factory=_Totals)


class DashboardService:
    """Computes period rollups over a caller's products.

    The computations are pure and operate on whatever products they are
    handed; loading products for an owner and recording operational events
    happen only in :meth:`build_snapshot` and :meth:`build_stats`.
    """

    @staticmethod
    def flatten_sales(products: Iterable[models.Product]) -> Tuple[List[_FlatSale], int]:
        sales: List[_FlatSale] = []
        skipped = 0
        for product in products:
            unit_cost = _to_decimal(product.unit_cost)
            fees = _to_decimal(product.fees)
            for record in product.sales_history or []:
                timestamp = coerce_timestamp(getattr(record, "date", None))
                if timestamp is None:
                    skipped += 1
                    LOGGER.warning(
                        "Skipping sale record %s of product %s: unusable date %r",
                        getattr(record, "transaction_id", None),
                        product.id,
                        getattr(record, "date", None),
                    )
                    continue
                units = int(record.units_sold or 0)
                revenue = _to_decimal(record.revenue)
                sales.append(
                    _FlatSale(
                        product_id=str(product.id),
                        timestamp=timestamp,
                        revenue=revenue,
                        profit=revenue - unit_cost * units - fees * units,
                        units=units,
                    )
                )
        return sales, skipped

    @staticmethod
    def percent_change(current: Decimal | int, previous: Decimal | int) -> Optional[int]:
        """Whole-percent change, or ``None`` when there is no positive baseline."""

        previous_value = _to_decimal(previous)
        if previous_value <= 0:
            return None
        ratio = (_to_decimal(current) - previous_value) / previous_value * HUNDRED
        # Halves round toward positive infinity: -2.5 -> -2, 2.5 -> 3.
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_CEILING))

    @staticmethod
    def trend_for(change: Optional[int]) -> schemas.Trend:
        if change is None or change == 0:
            return schemas.Trend.NEUTRAL
        return schemas.Trend.UP if change > 0 else schemas.Trend.DOWN

    @staticmethod
    def _bucket_series(
        sales: Sequence[_FlatSale], period: ResolvedPeriod
    ) -> Dict[datetime, List[Decimal]]:
        buckets: Dict[datetime, List[Decimal]] = {
            start: [ZERO, ZERO] for start in period.bucket_starts()
        }
        for sale in sales:
            key = period.truncate(sale.timestamp)
            bucket = buckets.get(key)
            if bucket is None:
                LOGGER.debug("Adding bucket %s outside the planned range", key.isoformat())
                bucket = buckets[key] = [ZERO, ZERO]
            bucket[0] += sale.revenue
            bucket[1] += sale.profit
        return dict(sorted(buckets.items()))

    @staticmethod
    def _synthesize_series(
        keys: Sequence[datetime],
        totals: _Totals,
        rng: random.Random,
    ) -> Dict[datetime, List[Decimal]]:
        count = len(keys)
        average_revenue = totals.revenue / count
        average_profit = totals.profit / count
        series: Dict[datetime, List[Decimal]] = {}
        revenue_so_far = ZERO
        profit_so_far = ZERO
        for key in keys[:-1]:
            jitter = Decimal(str(0.85 + rng.random() * 0.3))
            revenue = _cents(average_revenue * jitter)
            profit = _cents(min(average_profit * jitter, revenue * PROFIT_CAP_RATIO))
            series[key] = [revenue, profit]
            revenue_so_far += revenue
            profit_so_far += profit
        series[keys[-1]] = [totals.revenue - revenue_so_far, totals.profit - profit_so_far]
        return series

    @staticmethod
    def _rescale_to_totals(
        series: Dict[datetime, List[Decimal]], totals: _Totals
    ) -> bool:
        keys = list(series)
        sums = [sum((bucket[index] for bucket in series.values()), ZERO) for index in (0, 1)]
        targets = [totals.revenue, totals.profit]
        if all(abs(sums[index] - targets[index]) <= RESCALE_TOLERANCE for index in (0, 1)):
            return False

        for index in (0, 1):
            scale = targets[index] / sums[index] if sums[index] != 0 else Decimal("1")
            running = ZERO
            for key in keys[:-1]:
                scaled = _cents(series[key][index] * scale)
                series[key][index] = scaled
                running += scaled
            series[keys[-1]][index] = targets[index] - running
        return True

    @staticmethod
    def _default_rng(period: ResolvedPeriod, totals: _Totals) -> random.Random:
        seed = f"{period.start.isoformat()}|{_cents(totals.revenue)}|{_cents(totals.profit)}"
        return random.Random(seed)

    @staticmethod
    def _top_products(products: Sequence[models.Product]) -> List[schemas.TopProduct]:
        ranked = sorted(products, key=lambda item: _to_decimal(item.total_sales), reverse=True)
        return [
            schemas.TopProduct(
                id=str(product.id),
                name=product.name,
                revenue=_cents(_to_decimal(product.total_sales)),
                profit=_cents(product_profit(product)),
            )
            for product in ranked[:TOP_PRODUCT_LIMIT]
        ]

    @staticmethod
    def compute(
        products: Sequence[models.Product],
        period: ResolvedPeriod,
        *,
        rng: random.Random | None = None,
    ) -> RollupResult:
        sales, skipped = DashboardService.flatten_sales(products)
        previous_period = period.previous()

        current = _Totals()
        previous = _Totals()
        in_period: List[_FlatSale] = []
        for sale in sales:
            if period.contains(sale.timestamp):
                current.add(sale)
                in_period.append(sale)
            elif previous_period.contains(sale.timestamp):
                previous.add(sale)

        changes: Dict[str, Optional[int]] = {"revenue": None, "profit": None, "units": None}
        if previous.has_history:
            changes["revenue"] = DashboardService.percent_change(current.revenue, previous.revenue)
            changes["profit"] = DashboardService.percent_change(current.profit, previous.profit)
            changes["units"] = DashboardService.percent_change(current.units, previous.units)

        series = DashboardService._bucket_series(in_period, period)
        synthesized = False
        all_empty = all(bucket[0] == 0 for bucket in series.values())
        if series and all_empty and (current.revenue != 0 or current.profit != 0):
            generator = rng or DashboardService._default_rng(period, current)
            series = DashboardService._synthesize_series(list(series), current, generator)
            synthesized = True
        rescaled = bool(series) and DashboardService._rescale_to_totals(series, current)

        snapshot = schemas.DashboardSnapshot(
            timeframe=period.timeframe.value,
            period_start=period.start,
            period_end=period.end,
            total_revenue=_cents(current.revenue),
            total_profit=_cents(current.profit),
            units_sold=current.units,
            revenue_change=changes["revenue"],
            profit_change=changes["profit"],
            units_change=changes["units"],
            revenue_trend=DashboardService.trend_for(changes["revenue"]),
            profit_trend=DashboardService.trend_for(changes["profit"]),
            units_trend=DashboardService.trend_for(changes["units"]),
            sales_data=[
                schemas.SalesDataPoint(
                    date=period.label(key),
                    timestamp=key,
                    revenue=_cents(values[0]),
                    profit=_cents(values[1]),
                )
                for key, values in series.items()
            ],
            product_count=len(products),
            top_products=DashboardService._top_products(products),
        )
        return RollupResult(
            snapshot=snapshot,
            skipped_records=skipped,
            synthesized=synthesized,
            rescaled=rescaled,
            current=current,
        )

    @staticmethod
    def rollup(
        products: Sequence[models.Product],
        period: ResolvedPeriod,
        *,
        rng: random.Random | None = None,
    ) -> schemas.DashboardSnapshot:
        return DashboardService.compute(products, period, rng=rng).snapshot

    @staticmethod
    def _goal_summary(
        goals: Sequence[models.Goal],
        goal_type: models.GoalType,
        current: Decimal,
        period: ResolvedPeriod,
    ) -> schemas.GoalSummary:
        period_start = period.start.date()
        goal = next(
            (
                item
                for item in goals
                if item.type == goal_type and item.end_date is not None and item.end_date >= period_start
            ),
            None,
        )
        if goal is None:
            return schemas.GoalSummary(goal=None, current=current, progress=None)
        target = _to_decimal(goal.target_amount)
        progress = min(current / target * HUNDRED, HUNDRED) if target > 0 else ZERO
        return schemas.GoalSummary(goal=target, current=current, progress=_cents(progress))

    @staticmethod
    def stats(
        products: Sequence[models.Product],
        goals: Sequence[models.Goal],
        period: ResolvedPeriod,
    ) -> schemas.DashboardStats:
        sales, _ = DashboardService.flatten_sales(products)
        totals = _Totals()
        for sale in sales:
            if period.contains(sale.timestamp):
                totals.add(sale)

        margin = totals.profit / totals.revenue * HUNDRED if totals.revenue > 0 else ZERO
        average_order = totals.revenue / totals.units if totals.units > 0 else ZERO
        by_status = Counter(
            getattr(product.sourcing_status, "value", product.sourcing_status) for product in products
        )

        return schemas.DashboardStats(
            timeframe=period.timeframe.value,
            period=schemas.PeriodWindow(start=period.start, end=period.end),
            metrics=schemas.PeriodMetrics(
                revenue=_cents(totals.revenue),
                profit=_cents(totals.profit),
                units_sold=totals.units,
                profit_margin=_cents(margin),
                average_order_value=_cents(average_order),
            ),
            products=schemas.ProductCounts(total=len(products), by_status=dict(by_status)),
            goals=schemas.GoalSummaries(
                revenue=DashboardService._goal_summary(
                    goals, models.GoalType.REVENUE, _cents(totals.revenue), period
                ),
                sales=DashboardService._goal_summary(
                    goals, models.GoalType.SALES, Decimal(totals.units), period
                ),
            ),
        )

    @staticmethod
    def _load_products(db: Session, owner_id: str) -> List[models.Product]:
        return (
            db.query(models.Product)
            .options(selectinload(models.Product.sales_history))
            .filter(models.Product.owner_id == owner_id)
            .order_by(models.Product.name.asc())
            .all()
        )

    @staticmethod
    def build_snapshot(
        db: Session,
        owner_id: str,
        timeframe: str | None,
        *,
        now: datetime | None = None,
    ) -> schemas.DashboardSnapshot:
        started = time.perf_counter()
        period = PeriodResolver.resolve(timeframe, now=now)
        products = DashboardService._load_products(db, owner_id)
        result = DashboardService.compute(products, period)

        outcome = MetricOutcome.PARTIAL if result.skipped_records else MetricOutcome.SUCCESS
        ObservabilityService.record_event(
            db,
            "dashboard.rollup",
            outcome,
            owner_id=owner_id,
            duration_ms=ObservabilityService.elapsed_ms(started),
            tags={"timeframe": period.timeframe.value},
            metadata={
                "skipped_records": result.skipped_records,
                "synthesized": result.synthesized,
                "rescaled": result.rescaled,
                "products": len(products),
            },
        )
        return result.snapshot

    @staticmethod
    def build_stats(
        db: Session,
        owner_id: str,
        timeframe: str | None,
        *,
        now: datetime | None = None,
    ) -> schemas.DashboardStats:
        period = PeriodResolver.resolve(timeframe, now=now)
        products = DashboardService._load_products(db, owner_id)
        goals = (
            db.query(models.Goal)
            .filter(models.Goal.owner_id == owner_id)
            .order_by(models.Goal.created_at.asc(), models.Goal.id.asc())
            .all()
        )
        return DashboardService.stats(products, goals, period)
