# fieldpay_api/blueprints/orders.py
from __future__ import annotations

from flask import Blueprint, request

from fieldpay_api.common.auth import requires_roles, current_user, current_user_id, is_staff
from fieldpay_api.common.http import ok, fail, money, iso
from fieldpay_api.common.paging import paginate, text_q
from fieldpay_api.common.parse import to_date, to_int, optional_decimal, clean_str
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.order import Order, ORDER_STATUSES, TERRITORY_TYPES, AGGREGATE_FIELDS
from fieldpay_api.models.organization import Organization
from fieldpay_api.models.work_session import WorkSession
from fieldpay_api.services.order_aggregation import aggregate_order, aggregate_orders, SOURCES
from fieldpay_api.services.work_sessions import record_work_session, complete_order_work, session_row

bp = Blueprint("orders", __name__, url_prefix="/api/v1/orders")


def _row(o: Order):
    return {
        "id": o.id,
        "title": o.title,
        "description": o.description,
        "location": o.location,
        "organization_id": o.organization_id,
        "organization_name": o.organization.name if o.organization else None,
        "assigned_engineer_id": o.assigned_engineer_id,
        "assigned_engineer_name": o.assigned_engineer.full_name if o.assigned_engineer else None,
        "status": o.status,
        "distance_km": money(o.distance_km),
        "territory_type": o.territory_type,
        "planned_start_date": iso(o.planned_start_date),
        "actual_start_date": iso(o.actual_start_date),
        "completion_date": iso(o.completion_date),
        "work_notes": o.work_notes,
        **{k: money(getattr(o, k)) for k in AGGREGATE_FIELDS},
        "engineer_base_rate": money(o.engineer_base_rate),
        "engineer_overtime_rate": money(o.engineer_overtime_rate),
        "organization_base_rate": money(o.organization_base_rate),
        "organization_overtime_multiplier": money(o.organization_overtime_multiplier),
        "created_at": iso(o.created_at),
        "updated_at": iso(o.updated_at),
    }


def _my_engineer():
    u = current_user()
    eid = u.engineer_id if u else None
    return db.session.get(Engineer, eid) if eid else None


def _get_visible(order_id: int):
    """(order, error_response). Engineers only see orders assigned to them."""
    o = db.session.get(Order, order_id)
    if not o:
        return None, fail("Order not found", 404)
    if not is_staff():
        eng = _my_engineer()
        if not eng or o.assigned_engineer_id != eng.id:
            return None, fail("Forbidden", 403)
    return o, None


def _acting_engineer(o: Order):
    """The engineer a session is logged for: the caller, or the assignee when staff logs on their behalf."""
    eng = _my_engineer()
    if eng is None and is_staff():
        eng = o.assigned_engineer
    return eng


def _apply(o: Order, j: dict):
    if "title" in j:
        title = clean_str(j.get("title"))
        if not title:
            return "title is required"
        o.title = title
    for k in ("description", "location", "work_notes"):
        if k in j:
            setattr(o, k, clean_str(j.get(k)))
    if "organization_id" in j:
        org = db.session.get(Organization, to_int(j.get("organization_id")) or 0)
        if not org:
            return "organization_id is invalid"
        o.organization_id = org.id
    if "distance_km" in j:
        o.distance_km = optional_decimal(j, "distance_km")
    if "territory_type" in j:
        t = clean_str(j.get("territory_type"))
        if t and t not in TERRITORY_TYPES:
            return f"territory_type must be one of {', '.join(TERRITORY_TYPES)}"
        o.territory_type = t
    if "planned_start_date" in j:
        o.planned_start_date = to_date(j.get("planned_start_date"))
    if "status" in j:
        st = (clean_str(j.get("status")) or "").lower()
        if st not in ORDER_STATUSES:
            return f"status must be one of {', '.join(ORDER_STATUSES)}"
        o.status = st
    return None


# ---------- CRUD ----------

@bp.get("")
@requires_roles("manager", "engineer")
def list_orders():
    qry = Order.query
    if not is_staff():
        eng = _my_engineer()
        if not eng:
            return ok([], page=1, size=0, total=0)
        qry = qry.filter(Order.assigned_engineer_id == eng.id)
    else:
        eid = to_int(request.args.get("engineer_id"))
        if eid:
            qry = qry.filter(Order.assigned_engineer_id == eid)
    st = request.args.get("status")
    if st:
        qry = qry.filter(Order.status == st)
    oid = to_int(request.args.get("organization_id"))
    if oid:
        qry = qry.filter(Order.organization_id == oid)
    s = text_q()
    if s:
        qry = qry.filter(Order.title.ilike(f"%{s}%"))
    rows, meta = paginate(qry.order_by(Order.id.desc()))
    return ok([_row(o) for o in rows], **meta)


@bp.get("/<int:order_id>")
@requires_roles("manager", "engineer")
def get_order(order_id: int):
    o, err = _get_visible(order_id)
    if err:
        return err
    return ok(_row(o))


@bp.post("")
@requires_roles("manager")
def create_order():
    j = request.get_json(silent=True) or {}
    if not clean_str(j.get("title")) or not j.get("organization_id"):
        return fail("title and organization_id are required", 422)
    o = Order(status="waiting", created_by_id=current_user_id())
    err = _apply(o, j)
    if err:
        return fail(err, 422)
    eid = to_int(j.get("assigned_engineer_id"))
    if eid:
        if not db.session.get(Engineer, eid):
            return fail("Engineer not found", 404)
        o.assigned_engineer_id = eid
    db.session.add(o)
    db.session.commit()
    return ok(_row(o), status=201)


@bp.patch("/<int:order_id>")
@requires_roles("manager")
def update_order(order_id: int):
    o = db.session.get(Order, order_id)
    if not o:
        return fail("Order not found", 404)
    err = _apply(o, request.get_json(silent=True) or {})
    if err:
        return fail(err, 422)
    db.session.commit()
    return ok(_row(o))


@bp.post("/<int:order_id>/assign")
@requires_roles("manager")
def assign_order(order_id: int):
    o = db.session.get(Order, order_id)
    if not o:
        return fail("Order not found", 404)
    j = request.get_json(silent=True) or {}
    eng = db.session.get(Engineer, to_int(j.get("engineer_id")) or 0)
    if not eng:
        return fail("Engineer not found", 404)
    if not eng.is_active:
        return fail("Engineer is not active", 422)
    if o.status in ("completed", "cancelled"):
        return fail(f"Order is {o.status}", 409, code="INVALID_STATE")
    o.assigned_engineer_id = eng.id
    db.session.commit()
    return ok(_row(o))


# ---------- work ----------

@bp.get("/<int:order_id>/work-sessions")
@requires_roles("manager", "engineer")
def list_order_sessions(order_id: int):
    o, err = _get_visible(order_id)
    if err:
        return err
    rows = (WorkSession.query.filter_by(order_id=o.id)
            .order_by(WorkSession.work_date.asc(), WorkSession.id.asc()).all())
    return ok([session_row(ws) for ws in rows])


@bp.post("/<int:order_id>/work-sessions")
@requires_roles("manager", "engineer")
def create_order_session(order_id: int):
    o, err = _get_visible(order_id)
    if err:
        return err
    eng = _acting_engineer(o)
    if not eng:
        return fail("No engineer to log work for", 422)
    ws = record_work_session(o, eng, request.get_json(silent=True) or {})
    return ok(session_row(ws), status=201)


@bp.post("/<int:order_id>/complete-work")
@requires_roles("manager", "engineer")
def complete_work(order_id: int):
    o, err = _get_visible(order_id)
    if err:
        return err
    eng = _acting_engineer(o)
    if not eng:
        return fail("No engineer to log work for", 422)
    o = complete_order_work(o, eng, request.get_json(silent=True) or {})
    return ok(_row(o))


# ---------- aggregation ----------

@bp.post("/<int:order_id>/aggregate")
@requires_roles("manager")
def aggregate_one(order_id: int):
    o = db.session.get(Order, order_id)
    if not o:
        return fail("Order not found", 404)
    totals = aggregate_order(o)
    db.session.commit()
    return ok({"order": _row(o), "totals": totals.as_dict()})


@bp.post("/aggregate")
@requires_roles("admin")
def aggregate_all():
    j = request.get_json(silent=True) or {}
    source = (j.get("source") or request.args.get("source") or "sessions").strip().lower()
    if source not in SOURCES:
        return fail(f"source must be one of {', '.join(SOURCES)}", 422)
    ids = j.get("order_ids") or None
    if ids is not None and (not isinstance(ids, list) or any(to_int(i) is None for i in ids)):
        return fail("order_ids must be a list of integers", 422)
    summary = aggregate_orders(order_ids=ids, source=source)
    return ok(summary.as_dict())
