import os
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fieldpay_api import create_app
from fieldpay_api.common.errors import StateTransitionError
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.order import Order
from fieldpay_api.models.organization import Organization
from fieldpay_api.models.salary import EngineerBalance
from fieldpay_api.models.user import User
from fieldpay_api.services.salary_calculation import (
    calculate_monthly_salary, calculate_engineer_salary, calculate_salaries_for_month, update_calculation_status,
)
from fieldpay_api.services.work_sessions import record_work_session


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _s(reg, ot, regular_payment, overtime_payment, car="0", org="0", **kw):
    row = dict(regular_hours=Decimal(reg), overtime_hours=Decimal(ot), regular_payment=Decimal(regular_payment),
               overtime_payment=Decimal(overtime_payment), car_usage_amount=Decimal(car),
               organization_payment=Decimal(org), status="completed", can_be_invoiced=True)
    row.update(kw)
    return SimpleNamespace(**row)


def test_monthly_bonus_above_plan():
    eng = SimpleNamespace(type="staff", plan_hours_month=160, fixed_salary=Decimal("10000"),
                          fixed_car_amount=Decimal("2000"))
    sessions = [_s("150", "20", "75000", "16000", car="3000", org="200000")]
    res = calculate_monthly_salary(eng, sessions)

    assert res.actual_hours == Decimal("170")
    assert res.overtime_hours == Decimal("20")
    assert res.bonus_amount == Decimal("7000")  # 10h over plan at 700
    assert res.total_amount == Decimal("75000") + Decimal("16000") + Decimal("7000") + Decimal("3000") \
        + Decimal("10000") + Decimal("2000")
    assert res.profit_margin == Decimal("200000") - res.total_amount


def test_monthly_no_bonus_for_contract_or_excluded_sessions():
    eng = SimpleNamespace(type="contract", plan_hours_month=100, fixed_salary=None, fixed_car_amount=None)
    sessions = [
        _s("120", "0", "60000", "0"),
        _s("10", "0", "5000", "0", status="cancelled"),
        _s("10", "0", "5000", "0", can_be_invoiced=False),
    ]
    res = calculate_monthly_salary(eng, sessions)
    assert res.actual_hours == Decimal("120")
    assert res.bonus_amount == Decimal("0")
    assert res.total_amount == Decimal("60000")


def _seed():
    org = Organization(name="Acme", base_rate=Decimal("900"))
    u = User(email="eng@test.local", full_name="Test Engineer", status="active")
    u.set_password("x")
    db.session.add_all([org, u]); db.session.commit()
    eng = Engineer(user_id=u.id, type="remote", base_rate=Decimal("500"), overtime_rate=Decimal("800"),
                   plan_hours_month=10)
    db.session.add(eng); db.session.commit()
    o = Order(organization_id=org.id, assigned_engineer_id=eng.id, title="Install")
    db.session.add(o); db.session.commit()
    return eng, o


def test_calculate_engineer_salary_upserts_and_locks():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng, o = _seed()
        record_work_session(o, eng, {"work_date": "2026-03-02", "regular_hours": 8, "overtime_hours": 4})
        record_work_session(o, eng, {"work_date": "2026-04-01", "regular_hours": 8})

        calc = calculate_engineer_salary(eng, 3, 2026)
        assert calc.status == "calculated"
        assert calc.actual_hours == Decimal("12")
        assert calc.base_amount == Decimal("4000")
        assert calc.overtime_amount == Decimal("3200")
        assert calc.bonus_amount == Decimal("1300")  # 2h over plan at 650
        assert calc.total_amount == Decimal("8500")
        assert EngineerBalance.query.filter_by(engineer_id=eng.id).one().balance == Decimal("8500")

        again = calculate_engineer_salary(eng, 3, 2026)
        assert again.id == calc.id

        update_calculation_status(again, "approved")
        with pytest.raises(StateTransitionError):
            calculate_engineer_salary(eng, 3, 2026)
        with pytest.raises(StateTransitionError):
            update_calculation_status(again, "paid")


def test_month_batch_skips_failing_engineer():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng, _ = _seed()
        calc = calculate_engineer_salary(eng, 3, 2026)
        update_calculation_status(calc, "approved")

        u = User(email="second@test.local", full_name="Second", status="active")
        u.set_password("x")
        db.session.add(u); db.session.commit()
        db.session.add(Engineer(user_id=u.id, type="staff", base_rate=Decimal("400")))
        db.session.commit()

        res = calculate_salaries_for_month(3, 2026)
        assert len(res["calculated"]) == 1
        assert res["failed"][0]["engineer_id"] == eng.id
