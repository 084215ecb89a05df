# fieldpay_api/blueprints/work_sessions.py
from flask import Blueprint, request

from fieldpay_api.common.auth import requires_roles, current_user, is_staff
from fieldpay_api.common.http import ok, fail, money
from fieldpay_api.common.paging import paginate
from fieldpay_api.common.parse import to_date
from fieldpay_api.models.work_session import WorkSession, SESSION_COMPLETED
from fieldpay_api.services.work_sessions import (
    get_session, update_work_session, cancel_work_session, delete_work_session, session_row,
)

bp = Blueprint("work_sessions", __name__, url_prefix="/api/v1/work-sessions")


@bp.get("/my")
@requires_roles("engineer")
def my_sessions():
    u = current_user()
    eid = u.engineer_id if u else None
    if not eid:
        return fail("No engineer profile for this user", 404)

    qry = WorkSession.query.filter(WorkSession.engineer_id == eid)
    d_from = to_date(request.args.get("from"))
    d_to = to_date(request.args.get("to"))
    if d_from:
        qry = qry.filter(WorkSession.work_date >= d_from)
    if d_to:
        qry = qry.filter(WorkSession.work_date <= d_to)
    st = request.args.get("status")
    if st:
        qry = qry.filter(WorkSession.status == st)

    completed = [ws for ws in qry.all() if ws.status == SESSION_COMPLETED]
    summary = {
        "sessions": len(completed),
        "regular_hours": money(sum((ws.regular_hours for ws in completed), 0)),
        "overtime_hours": money(sum((ws.overtime_hours for ws in completed), 0)),
        "calculated_amount": money(sum((ws.calculated_amount for ws in completed), 0)),
        "car_usage_amount": money(sum((ws.car_usage_amount for ws in completed), 0)),
    }
    rows, meta = paginate(qry.order_by(WorkSession.work_date.desc(), WorkSession.id.desc()))
    return ok([session_row(ws) for ws in rows], summary=summary, **meta)


@bp.get("/<int:session_id>")
@requires_roles("manager", "engineer")
def get_work_session(session_id: int):
    ws = get_session(session_id)
    if not is_staff():
        u = current_user()
        if not u or ws.engineer_id != u.engineer_id:
            return fail("Forbidden", 403)
    return ok(session_row(ws))


@bp.patch("/<int:session_id>")
@requires_roles("manager")
def patch_work_session(session_id: int):
    ws = get_session(session_id)
    ws = update_work_session(ws, request.get_json(silent=True) or {})
    return ok(session_row(ws))


@bp.post("/<int:session_id>/cancel")
@requires_roles("manager")
def cancel_session(session_id: int):
    ws = cancel_work_session(get_session(session_id))
    return ok(session_row(ws))


@bp.delete("/<int:session_id>")
@requires_roles("admin")
def delete_session(session_id: int):
    ws = get_session(session_id)
    delete_work_session(ws)
    return ok({"id": session_id, "deleted": True})
