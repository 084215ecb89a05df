# fieldpay_api/services/order_aggregation.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fieldpay_api.extensions import db
from fieldpay_api.models.order import Order, AGGREGATE_FIELDS
from fieldpay_api.models.work_session import WorkSession, WorkReport, SESSION_COMPLETED
from fieldpay_api.services.pay_calculator import D, money, ZERO

log = logging.getLogger(__name__)

SOURCE_SESSIONS = "sessions"
SOURCE_REPORTS = "reports"
SOURCES = (SOURCE_SESSIONS, SOURCE_REPORTS)


@dataclass
class OrderTotals:
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    calculated_amount: Decimal = ZERO
    car_usage_amount: Decimal = ZERO
    organization_payment: Decimal = ZERO
    regular_payment: Decimal = ZERO
    overtime_payment: Decimal = ZERO
    organization_regular_payment: Decimal = ZERO
    organization_overtime_payment: Decimal = ZERO
    profit: Decimal = ZERO
    session_count: int = 0

    def add(self, **amounts):
        for k, v in amounts.items():
            setattr(self, k, getattr(self, k) + D(v))

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: (float(getattr(self, f.name)) if f.name != "session_count" else self.session_count)
                for f in fields(self)}


@dataclass
class OrderAggregationResult:
    order_id: int
    success: bool
    error: Optional[str] = None
    totals: Optional[OrderTotals] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "success": self.success,
            "error": self.error,
            "totals": self.totals.as_dict() if self.totals else None,
        }


@dataclass
class AggregationSummary:
    source: str = SOURCE_SESSIONS
    results: List[OrderAggregationResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def updated(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "total": self.total,
            "updated": self.updated,
            "errors": self.errors,
            "results": [r.as_dict() for r in self.results],
        }


# ---------- pure summing ----------

def sum_sessions(sessions: Iterable) -> OrderTotals:
    """
    Sum completed sessions. Cancelled sessions contribute nothing.
    Exact Decimal addition, so the result does not depend on row order.
    """
    totals = OrderTotals()
    for s in sessions:
        if getattr(s, "status", SESSION_COMPLETED) != SESSION_COMPLETED:
            continue
        totals.add(**{k: getattr(s, k, None) for k in AGGREGATE_FIELDS})
        totals.session_count += 1
    return totals


def sum_legacy_reports(reports: Iterable) -> OrderTotals:
    """
    Legacy reports carry a single total_hours plus an is_overtime flag:
    every hour of a flagged report is overtime, every hour of the others regular.
    """
    totals = OrderTotals()
    for r in reports:
        hours = D(getattr(r, "total_hours", None))
        amount = D(getattr(r, "calculated_amount", None))
        org = D(getattr(r, "organization_payment", None))
        car = D(getattr(r, "car_usage_amount", None))
        if getattr(r, "is_overtime", False):
            totals.add(overtime_hours=hours, overtime_payment=amount, organization_overtime_payment=org)
        else:
            totals.add(regular_hours=hours, regular_payment=amount, organization_regular_payment=org)
        totals.add(calculated_amount=amount, organization_payment=org, car_usage_amount=car,
                   profit=org - amount - car)
        totals.session_count += 1
    return totals


# ---------- persistence ----------

def apply_totals(order: Order, totals: OrderTotals) -> Order:
    for k in AGGREGATE_FIELDS:
        setattr(order, k, money(getattr(totals, k)))
    return order


def _freeze_latest_rates(order: Order, sessions: Sequence[WorkSession]):
    done = [s for s in sessions if s.status == SESSION_COMPLETED]
    if not done:
        return
    last = max(done, key=lambda s: (s.work_date, s.id or 0))
    order.engineer_base_rate = last.engineer_base_rate
    order.engineer_overtime_rate = last.engineer_overtime_rate
    order.organization_base_rate = last.organization_base_rate
    order.organization_overtime_multiplier = last.organization_overtime_multiplier


def aggregate_order(order: Order, source: str = SOURCE_SESSIONS) -> OrderTotals:
    """Recompute one order's aggregate fields. Does not commit."""
    if source == SOURCE_REPORTS:
        totals = sum_legacy_reports(WorkReport.query.filter_by(order_id=order.id).all())
    else:
        sessions = WorkSession.query.filter_by(order_id=order.id).all()
        totals = sum_sessions(sessions)
        _freeze_latest_rates(order, sessions)
    apply_totals(order, totals)
    return totals


def aggregate_orders(order_ids: Optional[Sequence[int]] = None, source: str = SOURCE_SESSIONS) -> AggregationSummary:
    """
    Re-aggregate many orders, one at a time with one commit each.
    A failing order is rolled back, recorded in the summary, and the run continues.
    """
    if source not in SOURCES:
        raise ValueError(f"unknown source {source!r}")

    if order_ids:
        ids = sorted({int(i) for i in order_ids})
    else:
        ids = [row[0] for row in db.session.query(Order.id).order_by(Order.id.asc()).all()]

    summary = AggregationSummary(source=source)
    for oid in ids:
        try:
            order = db.session.get(Order, oid)
            if order is None:
                raise LookupError(f"order {oid} not found")
            totals = aggregate_order(order, source)
            db.session.commit()
            summary.results.append(OrderAggregationResult(order_id=oid, success=True, totals=totals))
            log.info("order %s aggregated from %s: %s rows, calculated=%s",
                     oid, source, totals.session_count, totals.calculated_amount)
        except Exception as e:
            db.session.rollback()
            log.warning("order %s aggregation failed: %s", oid, e)
            summary.results.append(OrderAggregationResult(order_id=oid, success=False, error=str(e)))

    log.info("aggregation finished (%s): %s updated, %s errors", source, summary.updated, summary.errors)
    return summary
