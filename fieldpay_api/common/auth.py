# fieldpay_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from fieldpay_api.common.http import fail
from fieldpay_api.extensions import db
from fieldpay_api.models.user import User
from fieldpay_api.models.security import Role, UserRole, ROLE_ADMIN, ROLE_MANAGER


# ---------- helpers ----------

def _collect_roles_from_db(user_id: int) -> Set[str]:
    q = (
        db.session.query(Role.code)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .distinct()
    )
    return {row[0] for row in q.all()}


def current_user_id() -> Optional[int]:
    uid = get_jwt_identity()
    try:
        return int(uid) if uid is not None else None
    except (TypeError, ValueError):
        return None


def current_user() -> Optional[User]:
    uid = current_user_id()
    return db.session.get(User, uid) if uid else None


def current_roles() -> Set[str]:
    claims = get_jwt() or {}
    roles = set(claims.get("roles") or [])
    if not roles:
        uid = current_user_id()
        if uid:
            roles = _collect_roles_from_db(uid)
    return roles


def is_staff() -> bool:
    """Admin or manager: may act on any engineer's records."""
    return bool(current_roles() & {ROLE_ADMIN, ROLE_MANAGER})


# ---------- decorators ----------

def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            jwt_roles = set(claims.get("roles") or [])
            if ROLE_ADMIN in jwt_roles:
                return fn(*args, **kwargs)

            uid = current_user_id()
            if uid is None:
                return fail("Unauthorized", status=401)

            roles: Set[str]
            if jwt_roles:
                roles = jwt_roles
            else:
                # fallback DB
                user = db.session.get(User, uid)
                if not user:
                    return fail("Unauthorized", status=401)
                roles = _collect_roles_from_db(user.id)

            if ROLE_ADMIN in roles:
                return fn(*args, **kwargs)

            if codes and not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
