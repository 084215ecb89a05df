# fieldpay_api/services/salary_calculation.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from flask import current_app

from fieldpay_api.common.errors import NotFoundError, StateTransitionError, ValidationError
from fieldpay_api.common.http import money as _f, iso
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.salary import (
    SalaryCalculation, CALC_DRAFT, CALC_CALCULATED, CALC_APPROVED, CALC_PAID,
)
from fieldpay_api.models.work_session import WorkSession, SESSION_COMPLETED
from fieldpay_api.services.balances import recalculate_engineer_balance
from fieldpay_api.services.pay_calculator import D, money, ZERO

log = logging.getLogger(__name__)

DEFAULT_BONUS_RATES = {"staff": Decimal("700"), "remote": Decimal("650")}

# "paid" is set only by payment sync
CALC_TRANSITIONS = {
    CALC_DRAFT: {CALC_CALCULATED},
    CALC_CALCULATED: {CALC_APPROVED, CALC_DRAFT},
    CALC_APPROVED: {CALC_CALCULATED},
    CALC_PAID: set(),
}
LOCKED_STATUSES = (CALC_APPROVED, CALC_PAID)


@dataclass(frozen=True)
class MonthlySalary:
    planned_hours: int
    actual_hours: Decimal
    overtime_hours: Decimal
    base_amount: Decimal
    overtime_amount: Decimal
    bonus_amount: Decimal
    car_usage_amount: Decimal
    fixed_salary: Decimal
    fixed_car_amount: Decimal
    total_amount: Decimal
    client_revenue: Decimal
    profit_margin: Decimal


def month_bounds(month: int, year: int):
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be 1..12")
    start = date(int(year), int(month), 1)
    end = date(start.year + 1, 1, 1) if start.month == 12 else date(start.year, start.month + 1, 1)
    return start, end


def _bonus_rates() -> Dict[str, Decimal]:
    cfg = current_app.config.get("OVER_PLAN_BONUS_RATES") or DEFAULT_BONUS_RATES
    return {k: D(v) for k, v in cfg.items()}


def calculate_monthly_salary(engineer, sessions: Iterable, planned_hours=None,
                             bonus_rates: Optional[Dict[str, Decimal]] = None) -> MonthlySalary:
    """
    Pure monthly roll-up of one engineer's sessions.
    Hours above plan earn the engineer type's bonus rate; contract engineers get no bonus.
    """
    planned = int(planned_hours if planned_hours is not None else (engineer.plan_hours_month or 0))
    rates = bonus_rates if bonus_rates is not None else DEFAULT_BONUS_RATES

    actual = overtime = base = ot_amount = car = revenue = ZERO
    for s in sessions:
        if getattr(s, "status", SESSION_COMPLETED) != SESSION_COMPLETED:
            continue
        if not getattr(s, "can_be_invoiced", True):
            continue
        reg_h, ot_h = D(s.regular_hours), D(s.overtime_hours)
        actual += reg_h + ot_h
        overtime += ot_h
        base += D(s.regular_payment)
        ot_amount += D(s.overtime_payment)
        car += D(s.car_usage_amount)
        revenue += D(s.organization_payment)

    bonus = ZERO
    if engineer.type != "contract" and actual > planned:
        rate = D(rates.get(engineer.type))
        bonus = (actual - planned) * rate

    fixed_salary = D(getattr(engineer, "fixed_salary", None))
    fixed_car = D(getattr(engineer, "fixed_car_amount", None))
    total = base + ot_amount + bonus + car + fixed_salary + fixed_car

    return MonthlySalary(
        planned_hours=planned,
        actual_hours=actual,
        overtime_hours=overtime,
        base_amount=base,
        overtime_amount=ot_amount,
        bonus_amount=bonus,
        car_usage_amount=car,
        fixed_salary=fixed_salary,
        fixed_car_amount=fixed_car,
        total_amount=total,
        client_revenue=revenue,
        profit_margin=revenue - total,
    )


def calculate_engineer_salary(engineer: Engineer, month: int, year: int,
                              calculated_by_id: Optional[int] = None) -> SalaryCalculation:
    start, end = month_bounds(month, year)
    calc = SalaryCalculation.query.filter_by(engineer_id=engineer.id, month=month, year=year).first()
    if calc is not None and calc.status in LOCKED_STATUSES:
        raise StateTransitionError(
            f"Salary calculation for {month:02d}/{year} is {calc.status} and cannot be recalculated",
            payload={"salary_calculation_id": calc.id, "status": calc.status},
        )

    sessions = (
        WorkSession.query
        .filter(WorkSession.engineer_id == engineer.id,
                WorkSession.work_date >= start, WorkSession.work_date < end)
        .all()
    )
    result = calculate_monthly_salary(engineer, sessions, bonus_rates=_bonus_rates())

    if calc is None:
        calc = SalaryCalculation(engineer_id=engineer.id, month=month, year=year)
        db.session.add(calc)
    calc.planned_hours = result.planned_hours
    for k in ("actual_hours", "overtime_hours", "base_amount", "overtime_amount", "bonus_amount",
              "car_usage_amount", "fixed_salary", "fixed_car_amount", "total_amount",
              "client_revenue", "profit_margin"):
        setattr(calc, k, money(getattr(result, k)))
    calc.status = CALC_CALCULATED
    calc.calculated_by_id = calculated_by_id
    db.session.flush()
    recalculate_engineer_balance(engineer.id)
    db.session.commit()
    log.info("salary calculated for engineer %s %02d/%s: total=%s", engineer.id, month, year, result.total_amount)
    return calc


def calculate_salaries_for_month(month: int, year: int, calculated_by_id: Optional[int] = None) -> Dict[str, Any]:
    """Run every active engineer; one engineer failing does not stop the rest."""
    month_bounds(month, year)
    done, failed = [], []
    for eng in Engineer.query.filter_by(is_active=True).order_by(Engineer.id.asc()).all():
        try:
            calc = calculate_engineer_salary(eng, month, year, calculated_by_id=calculated_by_id)
            done.append(calc)
        except Exception as e:
            db.session.rollback()
            log.warning("salary calculation skipped for engineer %s %02d/%s: %s", eng.id, month, year, e)
            failed.append({"engineer_id": eng.id, "error": getattr(e, "message", None) or str(e)})
    return {"calculated": done, "failed": failed}


def get_calculation(calc_id: int) -> SalaryCalculation:
    calc = db.session.get(SalaryCalculation, calc_id)
    if not calc:
        raise NotFoundError("Salary calculation not found", payload={"salary_calculation_id": calc_id})
    return calc


def update_calculation_status(calc: SalaryCalculation, status: str) -> SalaryCalculation:
    status = (status or "").strip().lower()
    if status == calc.status:
        return calc
    if status not in CALC_TRANSITIONS:
        raise ValidationError(f"Unknown calculation status '{status}'")
    if status not in CALC_TRANSITIONS.get(calc.status, set()):
        raise StateTransitionError(
            f"Salary calculation {calc.id} cannot move from {calc.status} to {status}",
            payload={"from": calc.status, "to": status},
        )
    prev = calc.status
    calc.status = status
    db.session.flush()
    recalculate_engineer_balance(calc.engineer_id)
    db.session.commit()
    log.info("salary calculation %s: %s -> %s", calc.id, prev, status)
    return calc


def list_calculations_query(month=None, year=None, engineer_id=None, status=None):
    q = SalaryCalculation.query
    if month:
        q = q.filter(SalaryCalculation.month == int(month))
    if year:
        q = q.filter(SalaryCalculation.year == int(year))
    if engineer_id:
        q = q.filter(SalaryCalculation.engineer_id == int(engineer_id))
    if status:
        q = q.filter(SalaryCalculation.status == status)
    return q.order_by(SalaryCalculation.year.desc(), SalaryCalculation.month.desc(), SalaryCalculation.id.asc())


def calculation_row(c: SalaryCalculation) -> Dict[str, Any]:
    return {
        "id": c.id,
        "engineer_id": c.engineer_id,
        "engineer_name": c.engineer.full_name if c.engineer else None,
        "month": c.month,
        "year": c.year,
        "planned_hours": c.planned_hours,
        "actual_hours": _f(c.actual_hours),
        "overtime_hours": _f(c.overtime_hours),
        "base_amount": _f(c.base_amount),
        "overtime_amount": _f(c.overtime_amount),
        "bonus_amount": _f(c.bonus_amount),
        "car_usage_amount": _f(c.car_usage_amount),
        "fixed_salary": _f(c.fixed_salary),
        "fixed_car_amount": _f(c.fixed_car_amount),
        "total_amount": _f(c.total_amount),
        "client_revenue": _f(c.client_revenue),
        "profit_margin": _f(c.profit_margin),
        "status": c.status,
        "calculated_by_id": c.calculated_by_id,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }
