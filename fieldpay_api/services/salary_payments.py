# fieldpay_api/services/salary_payments.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fieldpay_api.common.errors import NotFoundError, ValidationError, StateTransitionError
from fieldpay_api.common.parse import to_date, to_decimal, to_int, clean_str
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.salary import (
    SalaryCalculation, SalaryPayment,
    PAYMENT_TYPES, PAYMENT_METHODS, PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_CANCELLED,
)
from fieldpay_api.services.balances import (
    transition_payment, sync_calculation_status, recalculate_engineer_balance,
)

log = logging.getLogger(__name__)

CREATE_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED)


def _amount(raw, ptype: str) -> Decimal:
    amt = to_decimal(raw)
    if amt is None or not amt.is_finite():
        raise ValidationError("amount must be a number")
    # adjustments may claw money back, everything else pays out
    if ptype == "adjustment":
        if amt == 0:
            raise ValidationError("adjustment amount must be non-zero")
    elif amt <= 0:
        raise ValidationError("amount must be > 0")
    return amt


def _choice(raw, allowed, field, default=None):
    v = (str(raw).strip().lower() if raw not in (None, "") else None) or default
    if v not in allowed:
        raise ValidationError(f"{field} must be one of {', '.join(allowed)}", payload={"field": field})
    return v


def _period(month, year):
    m, y = to_int(month), to_int(year)
    if month not in (None, "") and (m is None or not 1 <= m <= 12):
        raise ValidationError("month must be 1..12")
    if year not in (None, "") and (y is None or y < 2000):
        raise ValidationError("year is invalid")
    return m, y


def get_payment(payment_id: int) -> SalaryPayment:
    p = db.session.get(SalaryPayment, payment_id)
    if not p:
        raise NotFoundError("Payment not found", payload={"payment_id": payment_id})
    return p


def _after_change(engineer_id: int, calculation_ids):
    for cid in {c for c in calculation_ids if c}:
        sync_calculation_status(db.session.get(SalaryCalculation, cid))
    recalculate_engineer_balance(engineer_id)
    db.session.commit()


def create_payment(data: Dict[str, Any], paid_by_id: Optional[int] = None) -> SalaryPayment:
    eid = to_int(data.get("engineer_id"))
    if eid is None:
        raise ValidationError("engineer_id is required")
    engineer = db.session.get(Engineer, eid)
    if not engineer:
        raise NotFoundError("Engineer not found", payload={"engineer_id": eid})

    calc = None
    cid = to_int(data.get("salary_calculation_id"))
    if cid:
        calc = db.session.get(SalaryCalculation, cid)
        if not calc:
            raise NotFoundError("Salary calculation not found", payload={"salary_calculation_id": cid})
        if calc.engineer_id != eid:
            raise ValidationError("Salary calculation does not belong to this engineer")

    ptype = _choice(data.get("type"), PAYMENT_TYPES, "type", default="regular")
    method = _choice(data.get("method"), PAYMENT_METHODS, "method", default="bank_transfer")
    status = _choice(data.get("status"), CREATE_STATUSES, "status", default=PAYMENT_COMPLETED)
    amount = _amount(data.get("amount"), ptype)
    pay_date = to_date(data.get("payment_date"))
    if pay_date is None:
        raise ValidationError("payment_date is required (YYYY-MM-DD)")
    month, year = _period(data.get("month"), data.get("year"))

    p = SalaryPayment(
        engineer_id=eid,
        salary_calculation_id=calc.id if calc else None,
        month=month or (calc.month if calc else None),
        year=year or (calc.year if calc else None),
        amount=amount,
        type=ptype,
        method=method,
        status=status,
        payment_date=pay_date,
        notes=clean_str(data.get("notes")),
        paid_by_id=paid_by_id,
        document_number=clean_str(data.get("document_number")),
    )
    db.session.add(p)
    db.session.flush()
    _after_change(eid, [p.salary_calculation_id])
    log.info("payment %s created for engineer %s: %s %s (%s)", p.id, eid, ptype, amount, status)
    return p


def update_payment(payment_id: int, data: Dict[str, Any]) -> SalaryPayment:
    p = get_payment(payment_id)
    if p.status == PAYMENT_CANCELLED:
        raise StateTransitionError("Cancelled payments cannot be changed")

    old_calc = p.salary_calculation_id
    ptype = _choice(data["type"], PAYMENT_TYPES, "type") if "type" in data else p.type
    if "type" in data:
        p.type = ptype
    if "amount" in data or "type" in data:
        p.amount = _amount(data.get("amount", p.amount), ptype)
    if "method" in data:
        p.method = _choice(data["method"], PAYMENT_METHODS, "method")
    if "payment_date" in data:
        d = to_date(data["payment_date"])
        if d is None:
            raise ValidationError("payment_date must be YYYY-MM-DD")
        p.payment_date = d
    if "month" in data or "year" in data:
        m, y = _period(data.get("month", p.month), data.get("year", p.year))
        p.month, p.year = m, y
    if "notes" in data:
        p.notes = clean_str(data["notes"])
    if "document_number" in data:
        p.document_number = clean_str(data["document_number"])
    if "salary_calculation_id" in data:
        cid = to_int(data["salary_calculation_id"])
        if cid:
            calc = db.session.get(SalaryCalculation, cid)
            if not calc:
                raise NotFoundError("Salary calculation not found", payload={"salary_calculation_id": cid})
            if calc.engineer_id != p.engineer_id:
                raise ValidationError("Salary calculation does not belong to this engineer")
        p.salary_calculation_id = cid
    if data.get("status") not in (None, ""):
        transition_payment(p, str(data["status"]).strip().lower())

    db.session.flush()
    _after_change(p.engineer_id, [old_calc, p.salary_calculation_id])
    log.info("payment %s updated", p.id)
    return p


def set_payment_status(payment_id: int, status: str) -> SalaryPayment:
    p = get_payment(payment_id)
    if transition_payment(p, status):
        db.session.flush()
        _after_change(p.engineer_id, [p.salary_calculation_id])
        log.info("payment %s -> %s", p.id, status)
    return p


def delete_payment(payment_id: int) -> None:
    p = get_payment(payment_id)
    eid, cid = p.engineer_id, p.salary_calculation_id
    db.session.delete(p)
    db.session.flush()
    _after_change(eid, [cid])
    log.info("payment %s deleted", payment_id)


def engineer_payments_query(engineer_id: int, year=None, month=None, ptype=None, status=None):
    q = SalaryPayment.query.filter(SalaryPayment.engineer_id == engineer_id)
    if year:
        q = q.filter(SalaryPayment.year == int(year))
    if month:
        q = q.filter(SalaryPayment.month == int(month))
    if ptype:
        q = q.filter(SalaryPayment.type == ptype)
    if status:
        q = q.filter(SalaryPayment.status == status)
    return q.order_by(SalaryPayment.payment_date.desc(), SalaryPayment.id.desc())


def list_engineer_payments(engineer_id: int, year=None, month=None, ptype=None, limit=None) -> List[SalaryPayment]:
    q = engineer_payments_query(engineer_id, year=year, month=month, ptype=ptype)
    if limit:
        q = q.limit(int(limit))
    return q.all()


def list_calculation_payments(calculation_id: int) -> List[SalaryPayment]:
    return (
        SalaryPayment.query.filter_by(salary_calculation_id=calculation_id)
        .order_by(SalaryPayment.payment_date.desc(), SalaryPayment.id.desc())
        .all()
    )
