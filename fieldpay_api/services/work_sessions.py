# fieldpay_api/services/work_sessions.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import current_app

from fieldpay_api.common.errors import NotFoundError, StateTransitionError, ValidationError
from fieldpay_api.common.http import money as _f, iso
from fieldpay_api.common.parse import (
    require_decimal, optional_decimal, to_date, to_datetime, to_bool, clean_str,
)
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer, EngineerOrganizationRate
from fieldpay_api.models.order import Order, TERRITORY_TYPES
from fieldpay_api.models.work_session import WorkSession, SESSION_COMPLETED, SESSION_CANCELLED
from fieldpay_api.services.order_aggregation import aggregate_order
from fieldpay_api.services.pay_calculator import (
    EngineerRates, OrganizationRates, SessionPay,
    resolve_engineer_rates, resolve_organization_rates, calculate_session_pay,
    round_session_pay, freeze_rates, calculate_work_hours,
    calculate_car_usage, territory_type_for, money, DEFAULT_CONTRACT_KM_RATE,
)

log = logging.getLogger(__name__)

CLOSED_ORDER_STATUSES = ("completed", "cancelled")
PAY_FIELDS = (
    "regular_payment", "overtime_payment", "calculated_amount",
    "organization_regular_payment", "organization_overtime_payment", "organization_payment",
    "car_usage_amount", "profit",
)


def get_session(session_id: int) -> WorkSession:
    ws = db.session.get(WorkSession, session_id)
    if not ws:
        raise NotFoundError("Work session not found", payload={"work_session_id": session_id})
    return ws


def find_custom_rate(engineer_id: int, organization_id: int) -> Optional[EngineerOrganizationRate]:
    return (
        EngineerOrganizationRate.query
        .filter_by(engineer_id=engineer_id, organization_id=organization_id, is_active=True)
        .first()
    )


def _apply_pay(ws: WorkSession, pay: SessionPay):
    stored = round_session_pay(pay)
    for k in PAY_FIELDS:
        setattr(ws, k, getattr(stored, k))


def _territory(data: Dict[str, Any], distance, engineer: Engineer) -> Optional[str]:
    t = clean_str(data.get("territory_type"))
    if t:
        if t not in TERRITORY_TYPES:
            raise ValidationError(f"territory_type must be one of {', '.join(TERRITORY_TYPES)}")
        return t
    if distance is not None:
        return territory_type_for(distance, engineer.type)
    return None


def _car_payment(data: Dict[str, Any], engineer: Engineer, distance, rates: EngineerRates) -> Decimal:
    car = optional_decimal(data, "car_payment")
    if car is not None:
        return car
    if distance is None:
        return Decimal("0")
    cfg = current_app.config
    return calculate_car_usage(
        engineer, distance, rates,
        km_rate=cfg.get("CONTRACT_CAR_KM_RATE", DEFAULT_CONTRACT_KM_RATE),
        zone_extras=cfg.get("CAR_ZONE_EXTRAS"),
    )


def _hours(data: Dict[str, Any], default=None):
    """
    Regular/overtime hours from the body. Without explicit hours, a
    start_time/end_time pair is converted (rounded up to a quarter hour) and
    booked as regular, or as overtime when is_overtime is set.
    """
    start, end = to_datetime(data.get("start_time")), to_datetime(data.get("end_time"))
    if data.get("regular_hours") in (None, "") and data.get("overtime_hours") in (None, "") and start and end:
        try:
            elapsed = calculate_work_hours(start, end)
        except TypeError:
            raise ValidationError("start_time and end_time must both carry a timezone or neither")
        if to_bool(data.get("is_overtime")):
            regular, overtime = Decimal("0"), elapsed
        else:
            regular, overtime = elapsed, Decimal("0")
    else:
        regular = require_decimal(data, "regular_hours", default=default)
        overtime = require_decimal(data, "overtime_hours", default=Decimal("0"))
    # hours columns hold two decimals
    regular, overtime = money(regular), money(overtime)
    if regular + overtime <= 0:
        raise ValidationError("regular_hours + overtime_hours must be > 0")
    return regular, overtime


def record_work_session(order: Order, engineer: Engineer, data: Dict[str, Any]) -> WorkSession:
    """
    Log hours for the order's assigned engineer. Rates are resolved now and
    frozen on the session, then the order aggregates are recomputed.
    """
    if order.assigned_engineer_id != engineer.id:
        raise ValidationError("Engineer is not assigned to this order",
                              payload={"order_id": order.id, "engineer_id": engineer.id})
    if order.status in CLOSED_ORDER_STATUSES:
        raise StateTransitionError(f"Order {order.id} is {order.status}; work can no longer be logged")

    regular, overtime = _hours(data)
    work_date = to_date(data.get("work_date")) or date.today()
    distance = optional_decimal(data, "distance_km")

    custom = find_custom_rate(engineer.id, order.organization_id)
    eng_rates = resolve_engineer_rates(engineer, order.organization, custom)
    org_rates = resolve_organization_rates(order.organization)
    eng_rates, org_rates = freeze_rates(eng_rates, org_rates)
    car = _car_payment(data, engineer, distance, eng_rates)
    pay = calculate_session_pay(regular, overtime, eng_rates, org_rates, car)

    ws = WorkSession(
        order=order,
        engineer_id=engineer.id,
        work_date=work_date,
        regular_hours=regular,
        overtime_hours=overtime,
        engineer_base_rate=eng_rates.base_rate,
        engineer_overtime_rate=eng_rates.overtime_rate,
        organization_base_rate=org_rates.base_rate,
        organization_overtime_rate=org_rates.overtime_rate,
        organization_overtime_multiplier=org_rates.overtime_multiplier,
        distance_km=distance,
        territory_type=_territory(data, distance, engineer),
        notes=clean_str(data.get("notes")),
        photo_url=clean_str(data.get("photo_url")),
        can_be_invoiced=to_bool(data.get("can_be_invoiced"), default=True),
        status=SESSION_COMPLETED,
    )
    _apply_pay(ws, pay)
    db.session.add(ws)

    if order.status == "waiting":
        order.status = "processing"
    if order.actual_start_date is None:
        order.actual_start_date = datetime.utcnow()

    db.session.flush()
    aggregate_order(order)
    db.session.commit()
    log.info("work session %s recorded: order=%s engineer=%s hours=%s+%s amount=%s",
             ws.id, order.id, engineer.id, regular, overtime, ws.calculated_amount)
    return ws


def update_work_session(ws: WorkSession, data: Dict[str, Any]) -> WorkSession:
    """
    Administrative correction. Amounts are recomputed from the rates frozen
    on the session, never from the current rate tables.
    """
    if ws.status == SESSION_CANCELLED:
        raise StateTransitionError("Cancelled work sessions cannot be changed")

    recompute = False
    if "regular_hours" in data or "overtime_hours" in data:
        regular = money(require_decimal(data, "regular_hours", default=ws.regular_hours))
        overtime = money(require_decimal(data, "overtime_hours", default=ws.overtime_hours))
        if regular + overtime <= 0:
            raise ValidationError("regular_hours + overtime_hours must be > 0")
        ws.regular_hours, ws.overtime_hours = regular, overtime
        recompute = True
    if "car_payment" in data:
        ws.car_usage_amount = require_decimal(data, "car_payment", default=Decimal("0"))
        recompute = True
    if "work_date" in data:
        d = to_date(data["work_date"])
        if d is None:
            raise ValidationError("work_date must be YYYY-MM-DD")
        ws.work_date = d
    if "distance_km" in data:
        ws.distance_km = optional_decimal(data, "distance_km")
    if "territory_type" in data:
        ws.territory_type = _territory(data, None, ws.engineer)
    for k in ("notes", "photo_url"):
        if k in data:
            setattr(ws, k, clean_str(data[k]))
    if "can_be_invoiced" in data:
        ws.can_be_invoiced = to_bool(data["can_be_invoiced"], default=True)

    if recompute:
        eng_rates = EngineerRates(base_rate=ws.engineer_base_rate, overtime_rate=ws.engineer_overtime_rate)
        org_rates = OrganizationRates(base_rate=ws.organization_base_rate,
                                      overtime_rate=ws.organization_overtime_rate,
                                      overtime_multiplier=ws.organization_overtime_multiplier)
        pay = calculate_session_pay(ws.regular_hours, ws.overtime_hours, eng_rates, org_rates,
                                    ws.car_usage_amount)
        _apply_pay(ws, pay)

    db.session.flush()
    aggregate_order(ws.order)
    db.session.commit()
    log.info("work session %s updated (recomputed=%s)", ws.id, recompute)
    return ws


def cancel_work_session(ws: WorkSession) -> WorkSession:
    if ws.status == SESSION_CANCELLED:
        raise StateTransitionError("Work session is already cancelled")
    ws.status = SESSION_CANCELLED
    db.session.flush()
    aggregate_order(ws.order)
    db.session.commit()
    log.info("work session %s cancelled", ws.id)
    return ws


def delete_work_session(ws: WorkSession) -> None:
    order = ws.order
    sid = ws.id
    if ws in order.work_sessions:
        order.work_sessions.remove(ws)
    db.session.delete(ws)
    db.session.flush()
    aggregate_order(order)
    db.session.commit()
    log.info("work session %s deleted from order %s", sid, order.id)


def complete_order_work(order: Order, engineer: Engineer, data: Dict[str, Any]) -> Order:
    """Log the final (or an intermediate) session; a full completion closes the order."""
    record_work_session(order, engineer, data)

    distance = optional_decimal(data, "distance_km")
    if distance is not None:
        order.distance_km = distance
    territory = clean_str(data.get("territory_type"))
    if territory:
        order.territory_type = territory
    notes = clean_str(data.get("notes"))
    if notes:
        order.work_notes = notes

    if to_bool(data.get("is_fully_completed")):
        order.status = "completed"
        order.completion_date = datetime.utcnow()
    elif order.status in ("waiting", "processing"):
        order.status = "working"
    db.session.commit()
    log.info("order %s work reported by engineer %s (status=%s)", order.id, engineer.id, order.status)
    return order


def session_row(ws: WorkSession) -> Dict[str, Any]:
    return {
        "id": ws.id,
        "order_id": ws.order_id,
        "order_title": ws.order.title if ws.order else None,
        "organization_id": ws.order.organization_id if ws.order else None,
        "engineer_id": ws.engineer_id,
        "work_date": iso(ws.work_date),
        "regular_hours": _f(ws.regular_hours),
        "overtime_hours": _f(ws.overtime_hours),
        "regular_payment": _f(ws.regular_payment),
        "overtime_payment": _f(ws.overtime_payment),
        "calculated_amount": _f(ws.calculated_amount),
        "car_usage_amount": _f(ws.car_usage_amount),
        "organization_regular_payment": _f(ws.organization_regular_payment),
        "organization_overtime_payment": _f(ws.organization_overtime_payment),
        "organization_payment": _f(ws.organization_payment),
        "profit": _f(ws.profit),
        "engineer_base_rate": _f(ws.engineer_base_rate),
        "engineer_overtime_rate": _f(ws.engineer_overtime_rate),
        "organization_base_rate": _f(ws.organization_base_rate),
        "organization_overtime_rate": _f(ws.organization_overtime_rate),
        "organization_overtime_multiplier": _f(ws.organization_overtime_multiplier),
        "distance_km": _f(ws.distance_km),
        "territory_type": ws.territory_type,
        "notes": ws.notes,
        "photo_url": ws.photo_url,
        "status": ws.status,
        "can_be_invoiced": bool(ws.can_be_invoiced),
        "created_at": iso(ws.created_at),
        "updated_at": iso(ws.updated_at),
    }
