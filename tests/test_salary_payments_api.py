import os
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from fieldpay_api import create_app
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.salary import SalaryCalculation
from fieldpay_api.models.security import grant_role
from fieldpay_api.models.user import User


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _user(email, role):
    u = User(email=email, full_name=email.split("@")[0].title(), status="active")
    u.set_password("secret")
    db.session.add(u); db.session.flush()
    grant_role(u, role)
    db.session.commit()
    return u


def _auth(u, *roles):
    token = create_access_token(identity=str(u.id), additional_claims={"roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def ctx():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        manager = _user("manager@test.local", "manager")
        eng_user = _user("eng@test.local", "engineer")
        eng = Engineer(user_id=eng_user.id, type="staff", base_rate=Decimal("500"))
        db.session.add(eng); db.session.commit()
        calc = SalaryCalculation(engineer_id=eng.id, month=3, year=2026, total_amount=Decimal("10000"),
                                 status="calculated")
        db.session.add(calc); db.session.commit()
        yield {
            "client": app.test_client(),
            "eng_id": eng.id,
            "calc_id": calc.id,
            "manager": _auth(manager, "manager"),
            "engineer": _auth(eng_user, "engineer"),
        }


def test_payment_flow_and_balances(ctx):
    c = ctx["client"]
    r = c.post("/api/v1/salary-payments", headers=ctx["manager"],
               json={"engineer_id": ctx["eng_id"], "salary_calculation_id": ctx["calc_id"],
                     "amount": 4000, "payment_date": "2026-04-05", "method": "cash"})
    assert r.status_code == 201, r.get_json()
    paid = r.get_json()["data"]
    assert paid["status"] == "completed"
    assert (paid["month"], paid["year"]) == (3, 2026)

    r = c.post("/api/v1/salary-payments", headers=ctx["manager"],
               json={"engineer_id": ctx["eng_id"], "amount": 2000, "type": "advance", "status": "pending",
                     "payment_date": "2026-04-06"})
    pending = r.get_json()["data"]
    r = c.post(f"/api/v1/salary-payments/{pending['id']}/cancel", headers=ctx["manager"])
    assert r.get_json()["data"]["status"] == "cancelled"
    r = c.post(f"/api/v1/salary-payments/{pending['id']}/complete", headers=ctx["manager"])
    assert r.status_code == 409
    assert r.get_json()["error"]["code"] == "INVALID_STATE"

    r = c.get(f"/api/v1/salary-payments/balances/{ctx['eng_id']}", headers=ctx["engineer"])
    bal = r.get_json()["data"]
    assert bal["total_accrued"] == 10000.0
    assert bal["total_paid"] == 4000.0
    assert bal["balance"] == 6000.0
    assert bal["state"] == "owed"

    r = c.get(f"/api/v1/salary-payments/balances/{ctx['eng_id']}/detail", headers=ctx["manager"])
    detail = r.get_json()["data"]
    assert len(detail["recent_payments"]) == 2
    assert detail["recent_calculations"][0]["remaining_amount"] == 6000.0

    r = c.get("/api/v1/salary-payments", headers=ctx["engineer"])
    assert r.get_json()["meta"]["total"] == 2
    r = c.get(f"/api/v1/salary-payments?engineer_id={ctx['eng_id']}&type=advance", headers=ctx["manager"])
    assert [p["type"] for p in r.get_json()["data"]] == ["advance"]


def test_full_payment_marks_calculation_paid(ctx):
    c = ctx["client"]
    r = c.post("/api/v1/salary-payments", headers=ctx["manager"],
               json={"engineer_id": ctx["eng_id"], "salary_calculation_id": ctx["calc_id"],
                     "amount": 10000, "payment_date": "2026-04-05"})
    pid = r.get_json()["data"]["id"]
    calc = c.get(f"/api/v1/salary-calculations/{ctx['calc_id']}", headers=ctx["manager"]).get_json()["data"]
    assert calc["status"] == "paid"

    r = c.patch(f"/api/v1/salary-payments/{pid}", headers=ctx["manager"], json={"amount": 9000})
    assert r.status_code == 200
    calc = c.get(f"/api/v1/salary-calculations/{ctx['calc_id']}", headers=ctx["manager"]).get_json()["data"]
    assert calc["status"] == "calculated"


def test_engineer_cannot_pay_or_see_others(ctx):
    c = ctx["client"]
    r = c.post("/api/v1/salary-payments", headers=ctx["engineer"],
               json={"engineer_id": ctx["eng_id"], "amount": 100, "payment_date": "2026-04-05"})
    assert r.status_code == 403

    other = _user("other@test.local", "engineer")
    other_eng = Engineer(user_id=other.id, type="staff", base_rate=Decimal("400"))
    db.session.add(other_eng); db.session.commit()
    r = c.get(f"/api/v1/salary-payments/balances/{other_eng.id}", headers=ctx["engineer"])
    assert r.status_code == 403


def test_invalid_payment_rejected(ctx):
    c = ctx["client"]
    r = c.post("/api/v1/salary-payments", headers=ctx["manager"],
               json={"engineer_id": ctx["eng_id"], "amount": -10, "payment_date": "2026-04-05"})
    assert r.status_code == 422
    r = c.post("/api/v1/salary-payments", headers=ctx["manager"],
               json={"engineer_id": 9999, "amount": 10, "payment_date": "2026-04-05"})
    assert r.status_code == 404


def test_calculate_endpoint(ctx):
    c = ctx["client"]
    r = c.post("/api/v1/salary-calculations/calculate", headers=ctx["manager"],
               json={"month": 5, "year": 2026, "engineer_id": ctx["eng_id"]})
    assert r.status_code == 200, r.get_json()
    calc = r.get_json()["data"]
    assert calc["status"] == "calculated"
    assert calc["total_amount"] == 0.0

    r = c.post(f"/api/v1/salary-calculations/{calc['id']}/status", headers=ctx["manager"],
               json={"status": "approved"})
    assert r.get_json()["data"]["status"] == "approved"

    r = c.post("/api/v1/salary-calculations/calculate", headers=ctx["manager"],
               json={"month": 5, "year": 2026, "engineer_id": ctx["eng_id"]})
    assert r.status_code == 409
