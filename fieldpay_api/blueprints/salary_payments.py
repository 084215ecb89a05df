# fieldpay_api/blueprints/salary_payments.py
from __future__ import annotations

from flask import Blueprint, request

from fieldpay_api.common.auth import requires_roles, current_user, current_user_id, is_staff
from fieldpay_api.common.http import ok, fail
from fieldpay_api.common.parse import to_int
from fieldpay_api.models.salary import PAYMENT_COMPLETED, PAYMENT_CANCELLED
from fieldpay_api.services.balances import (
    get_engineer_balance, all_engineer_balances, engineer_balance_detail, balance_row, payment_row,
)
from fieldpay_api.services.salary_payments import (
    create_payment, update_payment, delete_payment, set_payment_status, get_payment,
    list_engineer_payments, list_calculation_payments,
)

bp = Blueprint("salary_payments", __name__, url_prefix="/api/v1/salary-payments")


def _can_see_engineer(engineer_id: int) -> bool:
    if is_staff():
        return True
    u = current_user()
    return bool(u and u.engineer_id == engineer_id)


@bp.post("")
@requires_roles("manager")
def create():
    p = create_payment(request.get_json(silent=True) or {}, paid_by_id=current_user_id())
    return ok(payment_row(p), status=201)


@bp.get("")
@requires_roles("manager", "engineer")
def list_payments():
    """?engineer_id= (required for staff) | ?salary_calculation_id= ; year/month/type/limit filters."""
    cid = to_int(request.args.get("salary_calculation_id"))
    if cid:
        if not is_staff():
            return fail("Forbidden", 403)
        return ok([payment_row(p) for p in list_calculation_payments(cid)])

    eid = to_int(request.args.get("engineer_id"))
    if eid is None and not is_staff():
        u = current_user()
        eid = u.engineer_id if u else None
    if eid is None:
        return fail("engineer_id is required", 422)
    if not _can_see_engineer(eid):
        return fail("Forbidden", 403)

    rows = list_engineer_payments(
        eid,
        year=to_int(request.args.get("year")),
        month=to_int(request.args.get("month")),
        ptype=request.args.get("type") or None,
        limit=to_int(request.args.get("limit")),
    )
    return ok([payment_row(p) for p in rows], total=len(rows))


@bp.get("/<int:payment_id>")
@requires_roles("manager", "engineer")
def get_one(payment_id: int):
    p = get_payment(payment_id)
    if not _can_see_engineer(p.engineer_id):
        return fail("Forbidden", 403)
    return ok(payment_row(p))


@bp.patch("/<int:payment_id>")
@requires_roles("manager")
def patch(payment_id: int):
    p = update_payment(payment_id, request.get_json(silent=True) or {})
    return ok(payment_row(p))


@bp.post("/<int:payment_id>/complete")
@requires_roles("manager")
def complete(payment_id: int):
    return ok(payment_row(set_payment_status(payment_id, PAYMENT_COMPLETED)))


@bp.post("/<int:payment_id>/cancel")
@requires_roles("manager")
def cancel(payment_id: int):
    return ok(payment_row(set_payment_status(payment_id, PAYMENT_CANCELLED)))


@bp.delete("/<int:payment_id>")
@requires_roles("admin")
def delete(payment_id: int):
    delete_payment(payment_id)
    return ok({"id": payment_id, "deleted": True})


# ---------- balances ----------

@bp.get("/balances")
@requires_roles("manager")
def balances():
    return ok([balance_row(b) for b in all_engineer_balances()])


@bp.get("/balances/<int:engineer_id>")
@requires_roles("manager", "engineer")
def balance(engineer_id: int):
    if not _can_see_engineer(engineer_id):
        return fail("Forbidden", 403)
    return ok(balance_row(get_engineer_balance(engineer_id)))


@bp.get("/balances/<int:engineer_id>/detail")
@requires_roles("manager", "engineer")
def balance_detail(engineer_id: int):
    if not _can_see_engineer(engineer_id):
        return fail("Forbidden", 403)
    return ok(engineer_balance_detail(engineer_id))
