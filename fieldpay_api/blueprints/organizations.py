# fieldpay_api/blueprints/organizations.py
from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import asc

from fieldpay_api.common.auth import requires_roles
from fieldpay_api.common.http import ok, fail, money, iso
from fieldpay_api.common.paging import paginate, text_q
from fieldpay_api.common.parse import optional_decimal, to_bool, clean_str
from fieldpay_api.extensions import db
from fieldpay_api.models.organization import Organization

bp = Blueprint("organizations", __name__, url_prefix="/api/v1/organizations")


def _row(x: Organization):
    return {
        "id": x.id,
        "name": x.name,
        "base_rate": money(x.base_rate),
        "overtime_multiplier": money(x.overtime_multiplier),
        "has_overtime": bool(x.has_overtime),
        "is_active": bool(x.is_active),
        "created_at": iso(x.created_at),
        "updated_at": iso(x.updated_at),
    }


def _apply(x: Organization, j: dict):
    if "name" in j:
        name = clean_str(j.get("name"))
        if not name:
            return "name is required"
        x.name = name
    if "base_rate" in j:
        x.base_rate = optional_decimal(j, "base_rate")
    if "overtime_multiplier" in j:
        x.overtime_multiplier = optional_decimal(j, "overtime_multiplier")
    if "has_overtime" in j:
        x.has_overtime = to_bool(j.get("has_overtime"))
    if "is_active" in j:
        x.is_active = to_bool(j.get("is_active"), default=True)
    return None


@bp.get("")
@requires_roles("manager", "engineer")
def list_organizations():
    qry = Organization.query
    is_active = request.args.get("is_active")
    if is_active is not None:
        qry = qry.filter(Organization.is_active.is_(to_bool(is_active)))
    s = text_q()
    if s:
        qry = qry.filter(Organization.name.ilike(f"%{s}%"))
    rows, meta = paginate(qry.order_by(asc(Organization.name)))
    return ok([_row(x) for x in rows], **meta)


@bp.get("/<int:org_id>")
@requires_roles("manager", "engineer")
def get_organization(org_id: int):
    x = db.session.get(Organization, org_id)
    if not x:
        return fail("Organization not found", 404)
    return ok(_row(x))


@bp.post("")
@requires_roles("manager")
def create_organization():
    j = request.get_json(silent=True) or {}
    if not clean_str(j.get("name")):
        return fail("name is required", 422)
    if Organization.query.filter(Organization.name == clean_str(j.get("name"))).first():
        return fail("Organization with this name already exists", 409)
    x = Organization(has_overtime=False, is_active=True)
    err = _apply(x, j)
    if err:
        return fail(err, 422)
    db.session.add(x)
    db.session.commit()
    return ok(_row(x), status=201)


@bp.patch("/<int:org_id>")
@bp.put("/<int:org_id>")
@requires_roles("manager")
def update_organization(org_id: int):
    x = db.session.get(Organization, org_id)
    if not x:
        return fail("Organization not found", 404)
    j = request.get_json(silent=True) or {}
    err = _apply(x, j)
    if err:
        return fail(err, 422)
    db.session.commit()
    return ok(_row(x))


@bp.delete("/<int:org_id>")
@requires_roles("admin")
def delete_organization(org_id: int):
    x = db.session.get(Organization, org_id)
    if not x:
        return fail("Organization not found", 404)
    # soft delete; orders keep their organization
    x.is_active = False
    db.session.commit()
    return ok({"id": org_id, "is_active": False})
