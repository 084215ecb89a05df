from flask import Blueprint, request
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required,
)

from fieldpay_api.common.auth import current_user
from fieldpay_api.common.http import ok, fail
from fieldpay_api.models.user import User

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "engineer_id": u.engineer_id,
    }


def _claims(u: User):
    return {"roles": u.role_codes(), "email": u.email, "name": u.full_name}


@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        return fail("Invalid credentials", status=401)
    if (u.status or "active") != "active":
        return fail("User is not active", status=403)

    access = create_access_token(identity=str(u.id), additional_claims=_claims(u))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": u.role_codes()})
    return ok({"access": access, "refresh": refresh, "user": _user_payload(u)})


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    u = current_user()
    if not u:
        return fail("Unauthorized", status=401)
    new_access = create_access_token(identity=str(u.id), additional_claims=_claims(u))
    return ok({"access": new_access})


@bp.get("/me")
@jwt_required()
def me():
    u = current_user()
    if not u:
        return fail("User not found", status=404)
    return ok(_user_payload(u))
