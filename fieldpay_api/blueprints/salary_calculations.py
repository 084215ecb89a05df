# fieldpay_api/blueprints/salary_calculations.py
from flask import Blueprint, request

from fieldpay_api.common.auth import requires_roles, current_user, current_user_id, is_staff
from fieldpay_api.common.http import ok, fail
from fieldpay_api.common.paging import paginate
from fieldpay_api.common.parse import to_int
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.services.salary_calculation import (
    calculate_engineer_salary, calculate_salaries_for_month, update_calculation_status,
    get_calculation, list_calculations_query, calculation_row,
)

bp = Blueprint("salary_calculations", __name__, url_prefix="/api/v1/salary-calculations")


@bp.get("")
@requires_roles("manager", "engineer")
def list_calculations():
    eid = to_int(request.args.get("engineer_id"))
    if not is_staff():
        u = current_user()
        eid = u.engineer_id if u else None
        if not eid:
            return ok([], page=1, size=0, total=0)
    qry = list_calculations_query(
        month=to_int(request.args.get("month")),
        year=to_int(request.args.get("year")),
        engineer_id=eid,
        status=request.args.get("status") or None,
    )
    rows, meta = paginate(qry)
    return ok([calculation_row(c) for c in rows], **meta)


@bp.get("/<int:calc_id>")
@requires_roles("manager", "engineer")
def get_one(calc_id: int):
    c = get_calculation(calc_id)
    if not is_staff():
        u = current_user()
        if not u or u.engineer_id != c.engineer_id:
            return fail("Forbidden", 403)
    return ok(calculation_row(c))


@bp.post("/calculate")
@requires_roles("manager")
def calculate():
    """Body: {month, year, engineer_id?}. Without engineer_id every active engineer is calculated."""
    j = request.get_json(silent=True) or {}
    month, year = to_int(j.get("month")), to_int(j.get("year"))
    if not month or not year or not 1 <= month <= 12:
        return fail("month (1..12) and year are required", 422)

    eid = to_int(j.get("engineer_id"))
    if eid:
        eng = db.session.get(Engineer, eid)
        if not eng:
            return fail("Engineer not found", 404)
        calc = calculate_engineer_salary(eng, month, year, calculated_by_id=current_user_id())
        return ok(calculation_row(calc))

    res = calculate_salaries_for_month(month, year, calculated_by_id=current_user_id())
    return ok([calculation_row(c) for c in res["calculated"]], failed=res["failed"])


@bp.post("/<int:calc_id>/status")
@requires_roles("manager")
def set_status(calc_id: int):
    j = request.get_json(silent=True) or {}
    if not j.get("status"):
        return fail("status is required", 422)
    c = update_calculation_status(get_calculation(calc_id), str(j["status"]))
    return ok(calculation_row(c))
