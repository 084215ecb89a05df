# fieldpay_api/services/balances.py
"""
Engineer salary balances.

    balance = sum(accrued salary calculations) - sum(completed payments)

Positive balance means the company owes the engineer, negative means the
engineer was overpaid. EngineerBalance rows are a cache of this figure and
are recomputed after every payment/calculation mutation, and on read when
older than BALANCE_STALE_SECONDS.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app

from fieldpay_api.common.errors import NotFoundError, StateTransitionError
from fieldpay_api.common.http import money as _f, iso
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.salary import (
    SalaryCalculation, SalaryPayment, EngineerBalance,
    CALC_CALCULATED, CALC_APPROVED, CALC_PAID,
    PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_CANCELLED,
)
from fieldpay_api.services.pay_calculator import D, money, ZERO

log = logging.getLogger(__name__)

# drafts never accrue
ACCRUAL_STATUSES = (CALC_CALCULATED, CALC_APPROVED, CALC_PAID)

PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_COMPLETED, PAYMENT_CANCELLED},
    PAYMENT_COMPLETED: set(),
    PAYMENT_CANCELLED: set(),
}

DEFAULT_STALE_SECONDS = 3600
RECENT_PAYMENTS = 10
RECENT_CALCULATIONS = 12


@dataclass(frozen=True)
class BalanceSnapshot:
    total_accrued: Decimal
    total_paid: Decimal
    balance: Decimal
    last_accrual_date: Optional[date] = None
    last_payment_date: Optional[date] = None

    @property
    def state(self) -> str:
        return balance_state(self.balance)


def accrual_date(calc) -> date:
    return date(int(calc.year), int(calc.month), 1)


def reconcile(accruals: Iterable, payments: Iterable) -> BalanceSnapshot:
    """
    Pure balance computation.
    accruals: salary-calculation-like objects (total_amount, month, year, status)
    payments: payment-like objects (amount, status, payment_date); only completed ones count,
              with or without a linked calculation.
    """
    total_accrued = ZERO
    last_accrual = None
    for c in accruals:
        if getattr(c, "status", CALC_CALCULATED) not in ACCRUAL_STATUSES:
            continue
        total_accrued += D(c.total_amount)
        d = accrual_date(c)
        if last_accrual is None or d > last_accrual:
            last_accrual = d

    total_paid = ZERO
    last_payment = None
    for p in payments:
        if getattr(p, "status", PAYMENT_COMPLETED) != PAYMENT_COMPLETED:
            continue
        total_paid += D(p.amount)
        d = getattr(p, "payment_date", None)
        if d is not None and (last_payment is None or d > last_payment):
            last_payment = d

    return BalanceSnapshot(
        total_accrued=total_accrued,
        total_paid=total_paid,
        balance=total_accrued - total_paid,
        last_accrual_date=last_accrual,
        last_payment_date=last_payment,
    )


def balance_state(balance) -> str:
    b = D(balance)
    if b > 0:
        return "owed"
    if b < 0:
        return "overpaid"
    return "settled"


# ---------- payment state machine ----------

def transition_payment(payment: SalaryPayment, new_status: str) -> bool:
    """Move a payment to new_status. Returns False when already there."""
    current = payment.status or PAYMENT_COMPLETED
    if new_status == current:
        return False
    if new_status not in PAYMENT_TRANSITIONS:
        raise StateTransitionError(f"Unknown payment status '{new_status}'")
    if new_status not in PAYMENT_TRANSITIONS.get(current, set()):
        raise StateTransitionError(
            f"Payment {payment.id} cannot move from {current} to {new_status}",
            payload={"from": current, "to": new_status},
        )
    payment.status = new_status
    return True


def paid_for_calculation(calculation_id: int) -> Decimal:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(SalaryPayment.amount), 0))
        .filter(SalaryPayment.salary_calculation_id == calculation_id,
                SalaryPayment.status == PAYMENT_COMPLETED)
        .scalar()
    )
    return D(total)


def sync_calculation_status(calculation: Optional[SalaryCalculation]) -> Optional[str]:
    """
    Completed payments covering the calculation total mark it paid;
    dropping below the total reverts a paid calculation to calculated.
    """
    if calculation is None:
        return None
    paid = paid_for_calculation(calculation.id)
    total = D(calculation.total_amount)
    if calculation.status in (CALC_CALCULATED, CALC_APPROVED) and total > 0 and paid >= total:
        calculation.status = CALC_PAID
        log.info("salary calculation %s fully paid (%s of %s)", calculation.id, paid, total)
    elif calculation.status == CALC_PAID and paid < total:
        calculation.status = CALC_CALCULATED
        log.info("salary calculation %s reverted to calculated (%s of %s)", calculation.id, paid, total)
    return calculation.status


# ---------- cached balances ----------

def recalculate_engineer_balance(engineer_id: int) -> EngineerBalance:
    """Recompute and store the engineer's balance row. Flushes, does not commit."""
    calcs = (
        SalaryCalculation.query
        .filter(SalaryCalculation.engineer_id == engineer_id,
                SalaryCalculation.status.in_(ACCRUAL_STATUSES))
        .all()
    )
    payments = SalaryPayment.query.filter(SalaryPayment.engineer_id == engineer_id).all()
    snap = reconcile(calcs, payments)

    row = EngineerBalance.query.filter_by(engineer_id=engineer_id).first()
    if row is None:
        row = EngineerBalance(engineer_id=engineer_id)
        db.session.add(row)
    row.total_accrued = money(snap.total_accrued)
    row.total_paid = money(snap.total_paid)
    row.balance = money(snap.balance)
    row.last_accrual_date = snap.last_accrual_date
    row.last_payment_date = snap.last_payment_date
    row.last_calculated_at = datetime.utcnow()
    db.session.flush()
    log.debug("engineer %s balance: accrued=%s paid=%s balance=%s",
              engineer_id, snap.total_accrued, snap.total_paid, snap.balance)
    return row


def _stale_after() -> timedelta:
    try:
        secs = int(current_app.config.get("BALANCE_STALE_SECONDS", DEFAULT_STALE_SECONDS))
    except (TypeError, ValueError):
        secs = DEFAULT_STALE_SECONDS
    return timedelta(seconds=secs)


def _require_engineer(engineer_id: int) -> Engineer:
    eng = db.session.get(Engineer, engineer_id)
    if not eng:
        raise NotFoundError("Engineer not found", payload={"engineer_id": engineer_id})
    return eng


def get_engineer_balance(engineer_id: int, now: Optional[datetime] = None) -> EngineerBalance:
    _require_engineer(engineer_id)
    now = now or datetime.utcnow()
    row = EngineerBalance.query.filter_by(engineer_id=engineer_id).first()
    if row is None or row.last_calculated_at is None or row.last_calculated_at < now - _stale_after():
        row = recalculate_engineer_balance(engineer_id)
        db.session.commit()
    return row


def all_engineer_balances() -> List[EngineerBalance]:
    engineers = Engineer.query.filter_by(is_active=True).order_by(Engineer.id.asc()).all()
    return [get_engineer_balance(e.id) for e in engineers]


# ---------- rows ----------

def balance_row(b: EngineerBalance) -> Dict[str, Any]:
    return {
        "id": b.id,
        "engineer_id": b.engineer_id,
        "engineer_name": b.engineer.full_name if b.engineer else None,
        "total_accrued": _f(b.total_accrued),
        "total_paid": _f(b.total_paid),
        "balance": _f(b.balance),
        "state": balance_state(b.balance),
        "last_accrual_date": iso(b.last_accrual_date),
        "last_payment_date": iso(b.last_payment_date),
        "last_calculated_at": iso(b.last_calculated_at),
    }


def payment_row(p: SalaryPayment) -> Dict[str, Any]:
    return {
        "id": p.id,
        "engineer_id": p.engineer_id,
        "engineer_name": p.engineer.full_name if p.engineer else None,
        "salary_calculation_id": p.salary_calculation_id,
        "month": p.month,
        "year": p.year,
        "amount": _f(p.amount),
        "type": p.type,
        "method": p.method,
        "status": p.status,
        "payment_date": iso(p.payment_date),
        "notes": p.notes,
        "paid_by_id": p.paid_by_id,
        "paid_by_name": p.paid_by.full_name if p.paid_by else None,
        "document_number": p.document_number,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def engineer_balance_detail(engineer_id: int) -> Dict[str, Any]:
    """Balance plus the latest payments and calculations with what is still unpaid on each."""
    out = balance_row(get_engineer_balance(engineer_id))

    payments = (
        SalaryPayment.query.filter_by(engineer_id=engineer_id)
        .order_by(SalaryPayment.payment_date.desc(), SalaryPayment.id.desc())
        .limit(RECENT_PAYMENTS).all()
    )
    calcs = (
        SalaryCalculation.query.filter_by(engineer_id=engineer_id)
        .order_by(SalaryCalculation.year.desc(), SalaryCalculation.month.desc())
        .limit(RECENT_CALCULATIONS).all()
    )

    recent_calcs = []
    for c in calcs:
        paid = paid_for_calculation(c.id)
        recent_calcs.append({
            "id": c.id,
            "month": c.month,
            "year": c.year,
            "total_amount": _f(c.total_amount),
            "status": c.status,
            "paid_amount": _f(paid),
            "remaining_amount": _f(D(c.total_amount) - paid),
        })

    out["recent_payments"] = [payment_row(p) for p in payments]
    out["recent_calculations"] = recent_calcs
    return out
