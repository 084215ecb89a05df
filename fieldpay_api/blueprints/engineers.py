# fieldpay_api/blueprints/engineers.py
from __future__ import annotations

from flask import Blueprint, request

from fieldpay_api.common.auth import requires_roles
from fieldpay_api.common.errors import ValidationError
from fieldpay_api.common.http import ok, fail, money, iso
from fieldpay_api.common.paging import paginate, text_q
from fieldpay_api.common.parse import optional_decimal, to_bool, to_int, clean_str
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer, EngineerOrganizationRate, ENGINEER_TYPES
from fieldpay_api.models.organization import Organization
from fieldpay_api.models.security import grant_role, ROLE_ENGINEER
from fieldpay_api.models.user import User

bp = Blueprint("engineers", __name__, url_prefix="/api/v1/engineers")

RATE_FIELDS = ("base_rate", "overtime_rate", "overtime_coefficient")
AMOUNT_FIELDS = ("home_territory_fixed_amount", "fixed_salary", "fixed_car_amount")
CUSTOM_RATE_FIELDS = ("custom_base_rate", "custom_overtime_rate",
                      "custom_zone1_extra", "custom_zone2_extra", "custom_zone3_extra")


def _row(e: Engineer):
    return {
        "id": e.id,
        "user_id": e.user_id,
        "full_name": e.full_name,
        "email": e.user.email if e.user else None,
        "type": e.type,
        "base_rate": money(e.base_rate),
        "overtime_rate": money(e.overtime_rate),
        "overtime_coefficient": money(e.overtime_coefficient),
        "plan_hours_month": e.plan_hours_month,
        "home_territory_fixed_amount": money(e.home_territory_fixed_amount),
        "fixed_salary": money(e.fixed_salary),
        "fixed_car_amount": money(e.fixed_car_amount),
        "is_active": bool(e.is_active),
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }


def _rate_row(r: EngineerOrganizationRate):
    return {
        "id": r.id,
        "engineer_id": r.engineer_id,
        "organization_id": r.organization_id,
        "organization_name": r.organization.name if r.organization else None,
        **{k: money(getattr(r, k)) for k in CUSTOM_RATE_FIELDS},
        "is_active": bool(r.is_active),
        "updated_at": iso(r.updated_at),
    }


def _apply(e: Engineer, j: dict):
    if "type" in j:
        t = (clean_str(j.get("type")) or "").lower()
        if t not in ENGINEER_TYPES:
            raise ValidationError(f"type must be one of {', '.join(ENGINEER_TYPES)}")
        e.type = t
    for k in RATE_FIELDS:
        if k in j:
            setattr(e, k, optional_decimal(j, k))
    for k in AMOUNT_FIELDS:
        if k in j:
            setattr(e, k, optional_decimal(j, k) or 0)
    if "plan_hours_month" in j:
        v = to_int(j.get("plan_hours_month"))
        if v is None or v < 0:
            raise ValidationError("plan_hours_month must be a non-negative integer")
        e.plan_hours_month = v
    if "is_active" in j:
        e.is_active = to_bool(j.get("is_active"), default=True)


def _get(eng_id: int):
    return db.session.get(Engineer, eng_id)


@bp.get("")
@requires_roles("manager")
def list_engineers():
    qry = Engineer.query.join(User, User.id == Engineer.user_id)
    t = request.args.get("type")
    if t:
        qry = qry.filter(Engineer.type == t)
    is_active = request.args.get("is_active")
    if is_active is not None:
        qry = qry.filter(Engineer.is_active.is_(to_bool(is_active)))
    s = text_q()
    if s:
        qry = qry.filter(User.full_name.ilike(f"%{s}%") | User.email.ilike(f"%{s}%"))
    rows, meta = paginate(qry.order_by(Engineer.id.asc()))
    return ok([_row(e) for e in rows], **meta)


@bp.get("/<int:eng_id>")
@requires_roles("manager")
def get_engineer(eng_id: int):
    e = _get(eng_id)
    if not e:
        return fail("Engineer not found", 404)
    return ok(_row(e))


@bp.post("")
@requires_roles("manager")
def create_engineer():
    """
    Create an engineer profile. Either link an existing user (user_id) or
    create one from email/full_name/password.
    """
    j = request.get_json(silent=True) or {}
    uid = to_int(j.get("user_id"))
    if uid:
        user = db.session.get(User, uid)
        if not user:
            return fail("User not found", 404)
    else:
        email = (clean_str(j.get("email")) or "").lower()
        full_name = clean_str(j.get("full_name"))
        if not email or not full_name:
            return fail("user_id or email + full_name required", 422)
        if User.query.filter_by(email=email).first():
            return fail("User with this email already exists", 409)
        user = User(email=email, full_name=full_name, status="active")
        user.set_password(j.get("password") or "changeme")
        db.session.add(user)
        db.session.flush()

    if Engineer.query.filter_by(user_id=user.id).first():
        return fail("User already has an engineer profile", 409)

    e = Engineer(user_id=user.id, type="staff", plan_hours_month=160,
                 home_territory_fixed_amount=0, fixed_salary=0, fixed_car_amount=0, is_active=True)
    _apply(e, j)
    db.session.add(e)
    grant_role(user, ROLE_ENGINEER)
    db.session.commit()
    return ok(_row(e), status=201)


@bp.patch("/<int:eng_id>")
@bp.put("/<int:eng_id>")
@requires_roles("manager")
def update_engineer(eng_id: int):
    e = _get(eng_id)
    if not e:
        return fail("Engineer not found", 404)
    _apply(e, request.get_json(silent=True) or {})
    db.session.commit()
    return ok(_row(e))


@bp.delete("/<int:eng_id>")
@requires_roles("admin")
def deactivate_engineer(eng_id: int):
    e = _get(eng_id)
    if not e:
        return fail("Engineer not found", 404)
    e.is_active = False
    db.session.commit()
    return ok({"id": eng_id, "is_active": False})


# ---------- per-organization rates ----------

@bp.get("/<int:eng_id>/rates")
@requires_roles("manager")
def list_rates(eng_id: int):
    if not _get(eng_id):
        return fail("Engineer not found", 404)
    rows = (EngineerOrganizationRate.query.filter_by(engineer_id=eng_id)
            .order_by(EngineerOrganizationRate.organization_id.asc()).all())
    return ok([_rate_row(r) for r in rows])


@bp.put("/<int:eng_id>/rates/<int:org_id>")
@requires_roles("manager")
def upsert_rate(eng_id: int, org_id: int):
    if not _get(eng_id):
        return fail("Engineer not found", 404)
    if not db.session.get(Organization, org_id):
        return fail("Organization not found", 404)
    j = request.get_json(silent=True) or {}
    r = EngineerOrganizationRate.query.filter_by(engineer_id=eng_id, organization_id=org_id).first()
    created = r is None
    if created:
        r = EngineerOrganizationRate(engineer_id=eng_id, organization_id=org_id, is_active=True)
        db.session.add(r)
    for k in CUSTOM_RATE_FIELDS:
        if k in j:
            setattr(r, k, optional_decimal(j, k))
    if "is_active" in j:
        r.is_active = to_bool(j.get("is_active"), default=True)
    db.session.commit()
    return ok(_rate_row(r), status=201 if created else 200)


@bp.delete("/<int:eng_id>/rates/<int:org_id>")
@requires_roles("manager")
def delete_rate(eng_id: int, org_id: int):
    r = EngineerOrganizationRate.query.filter_by(engineer_id=eng_id, organization_id=org_id).first()
    if not r:
        return fail("Rate not found", 404)
    db.session.delete(r)
    db.session.commit()
    return ok({"engineer_id": eng_id, "organization_id": org_id, "deleted": True})
