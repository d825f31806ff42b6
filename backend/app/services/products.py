"""Product catalog and sales-history management."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from ..db_types import is_guid
from .observability import MetricOutcome, ObservabilityService

LOGGER = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
MARGIN_STEP = Decimal("0.0001")
INITIAL_ENTRY_NOTE = "Initial entry"


class ProductServiceError(RuntimeError):
    """Raised when the product service cannot persist changes."""


def _to_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _parse_number(value: object) -> Optional[Decimal]:
    text = str(value).strip() if value is not None else ""
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def resolve_sale_record(
    records: Iterable[models.SaleRecord], identifier: str
) -> Optional[models.SaleRecord]:
    """Find the sale ``identifier`` refers to.

    The identifier is matched against the store id first, then against the
    client transaction id, and finally numerically against transaction ids
    so ``"1700000000000"`` and ``"1.7e12"`` resolve alike. Positions are
    never used.
    """

    records = list(records)
    for record in records:
        if record.id is not None and str(record.id) == identifier:
            return record
    for record in records:
        if record.transaction_id is not None and str(record.transaction_id) == identifier:
            return record

    wanted = _parse_number(identifier)
    if wanted is None:
        return None
    for record in records:
        candidate = _parse_number(record.transaction_id)
        if candidate is not None and candidate == wanted:
            return record
    return None


def recompute_sales_totals(product: models.Product) -> None:
    """Rebuild the cached totals of ``product`` from its full sales history."""

    units = 0
    revenue = ZERO
    for record in product.sales_history:
        units += int(record.units_sold or 0)
        revenue += _to_decimal(record.revenue)

    unit_cost = _to_decimal(product.unit_cost)
    fees = _to_decimal(product.fees)
    profit = revenue - unit_cost * units - fees * units

    product.units_sold = units
    product.total_sales = revenue.quantize(CENT, rounding=ROUND_HALF_UP)
    if revenue > 0:
        margin = (profit / revenue * Decimal("100")).quantize(MARGIN_STEP, rounding=ROUND_HALF_UP)
    else:
        margin = ZERO
    product.profit_margin = margin


class ProductService:
    """Owner-scoped product CRUD plus sales-history entry."""

    @staticmethod
    def _commit(db: Session, message: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise ProductServiceError(message) from exc

    @staticmethod
    def list_products(
        db: Session,
        owner_id: str,
        *,
        skip: int = 0,
        limit: int = 50,
        search: Optional[str] = None,
    ) -> Tuple[List[models.Product], int]:
        if skip < 0:
            raise ValueError("skip must be greater than or equal to zero")
        if limit <= 0:
            raise ValueError("limit must be a positive integer")

        query = db.query(models.Product).filter(models.Product.owner_id == owner_id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(func.lower(models.Product.name).like(pattern))

        total = query.count()
        items = (
            query.options(selectinload(models.Product.sales_history))
            .order_by(models.Product.name.asc(), models.Product.created_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_product(db: Session, owner_id: str, product_id: str) -> Optional[models.Product]:
        if not is_guid(product_id):
            return None
        return (
            db.query(models.Product)
            .options(selectinload(models.Product.sales_history))
            .filter(models.Product.id == product_id, models.Product.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def create_product(db: Session, owner_id: str, data: schemas.ProductCreate) -> models.Product:
        payload = data.model_dump(exclude={"units_sold"})
        product = models.Product(owner_id=owner_id, **payload)
        if data.units_sold > 0:
            product.sales_history.append(
                models.SaleRecord(
                    date=datetime.now(timezone.utc),
                    units_sold=data.units_sold,
                    revenue=(data.base_price * data.units_sold).quantize(CENT, rounding=ROUND_HALF_UP),
                    notes=INITIAL_ENTRY_NOTE,
                )
            )
        recompute_sales_totals(product)

        db.add(product)
        ProductService._commit(db, "Unable to create product at this time.")
        db.refresh(product)
        return product

    @staticmethod
    def update_product(
        db: Session, product: models.Product, data: schemas.ProductUpdate
    ) -> models.Product:
        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "unit_cost", "base_price", "fees", "sourcing_status"):
            if key in changes and changes[key] is None:
                changes.pop(key)

        for key, value in changes.items():
            setattr(product, key, value)
        # Margin depends on the cost fields.
        recompute_sales_totals(product)

        db.add(product)
        ProductService._commit(db, "Unable to update product at this time.")
        db.refresh(product)
        return product

    @staticmethod
    def delete_product(db: Session, product: models.Product) -> None:
        db.delete(product)
        ProductService._commit(db, "Unable to delete product at this time.")

    @staticmethod
    def list_sales(product: models.Product) -> List[models.SaleRecord]:
        return sorted(product.sales_history, key=lambda record: record.date, reverse=True)

    @staticmethod
    def add_sale(
        db: Session,
        product: models.Product,
        data: schemas.SaleRecordCreate,
    ) -> models.SaleRecord:
        started = time.perf_counter()
        tags = {"product_id": str(product.id)}
        record = models.SaleRecord(
            date=data.date,
            units_sold=data.units_sold,
            revenue=data.revenue,
            notes=data.notes,
        )
        if data.transaction_id:
            record.transaction_id = data.transaction_id
        product.sales_history.append(record)
        recompute_sales_totals(product)

        try:
            db.add(product)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            ObservabilityService.record_validation_result(
                db,
                "products.sale.validation_failed",
                outcome=MetricOutcome.ERROR,
                reason=str(exc),
                owner_id=str(product.owner_id),
                tags=tags,
                duration_ms=ObservabilityService.elapsed_ms(started),
            )
            raise ProductServiceError("Unable to record sale at this time.") from exc

        db.refresh(record)
        ObservabilityService.record_event(
            db,
            "products.sale.recorded",
            MetricOutcome.SUCCESS,
            owner_id=str(product.owner_id),
            duration_ms=ObservabilityService.elapsed_ms(started),
            tags=tags,
            metadata={"units_sold": record.units_sold, "revenue": str(record.revenue)},
        )
        return record

    @staticmethod
    def reject_sale(db: Session, owner_id: str, product_id: str, reason: str) -> None:
        """Record a sale entry that failed request validation."""

        ObservabilityService.record_validation_result(
            db,
            "products.sale.validation_failed",
            outcome=MetricOutcome.REJECTED,
            reason=reason,
            owner_id=owner_id,
            tags={"product_id": product_id},
        )

    @staticmethod
    def update_sale(
        db: Session,
        product: models.Product,
        identifier: str,
        data: schemas.SaleRecordUpdate,
    ) -> models.SaleRecord:
        record = resolve_sale_record(product.sales_history, identifier)
        if record is None:
            raise ValueError("Sales record not found")

        record.date = data.date
        record.units_sold = data.units_sold
        record.revenue = data.revenue
        record.notes = data.notes
        recompute_sales_totals(product)

        db.add(product)
        ProductService._commit(db, "Unable to update sale at this time.")
        db.refresh(record)
        return record

    @staticmethod
    def delete_sale(db: Session, product: models.Product, identifier: str) -> models.Product:
        record = resolve_sale_record(product.sales_history, identifier)
        if record is None:
            raise ValueError("Sales record not found")

        product.sales_history.remove(record)
        product.sales_history.reorder()
        recompute_sales_totals(product)

        db.add(product)
        ProductService._commit(db, "Unable to delete sale at this time.")
        db.refresh(product)
        return product
