"""Helpers to persist structured operational events for the dashboard flows."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from .. import models

LOGGER = logging.getLogger(__name__)


class MetricOutcome(str):
    SUCCESS = "success"
    PARTIAL = "partial"
    REJECTED = "rejected"
    ERROR = "error"


class ObservabilityService:
    """Records rollup, sync and sales-entry outcomes without affecting callers."""

    @staticmethod
    def record_event(
        db: Session,
        event_type: str,
        outcome: str,
        *,
        owner_id: str | None = None,
        duration_ms: float | None = None,
        tags: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        payload = models.OperationalMetricEvent(
            event_type=event_type,
            outcome=outcome,
            owner_id=owner_id,
            duration_ms=Decimal(str(round(duration_ms, 3))) if duration_ms is not None else None,
            tags=tags or {},
            details=metadata or None,
        )
        ObservabilityService._persist(db, payload)

    @staticmethod
    def record_validation_result(
        db: Session,
        event_type: str,
        *,
        outcome: str,
        reason: str,
        owner_id: str | None = None,
        tags: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        ObservabilityService.record_event(
            db,
            event_type,
            outcome,
            owner_id=owner_id,
            duration_ms=duration_ms,
            tags={"reason": reason, **(tags or {})},
            metadata={"rejection_reason": reason},
        )

    @staticmethod
    def elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    @staticmethod
    def _persist(db: Session, event: models.OperationalMetricEvent) -> None:
        try:
            bind = db.get_bind()
            with Session(bind=bind) as metrics_session:
                metrics_session.add(event)
                metrics_session.commit()
        except Exception:  # pragma: no cover - metrics failures should not break flows
            LOGGER.exception("Failed to persist operational metric event %s", event.event_type)
