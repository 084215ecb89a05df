from flask import Blueprint

from fieldpay_api.common.http import ok
from fieldpay_api.extensions import db

bp = Blueprint("health", __name__)


@bp.get("/api/health")
def health():
    db.session.execute(db.text("SELECT 1"))
    return ok({"status": "ok"})
