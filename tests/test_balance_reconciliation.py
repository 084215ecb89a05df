import os
from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fieldpay_api import create_app
from fieldpay_api.common.errors import StateTransitionError, ValidationError
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.salary import SalaryCalculation, EngineerBalance
from fieldpay_api.models.user import User
from fieldpay_api.services.balances import (
    reconcile, balance_state, transition_payment, get_engineer_balance, engineer_balance_detail,
)
from fieldpay_api.services.salary_payments import create_payment, update_payment, set_payment_status, delete_payment


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _engineer():
    u = User(email="eng@test.local", full_name="Test Engineer", status="active")
    u.set_password("x")
    db.session.add(u); db.session.commit()
    e = Engineer(user_id=u.id, type="staff", base_rate=Decimal("500"))
    db.session.add(e); db.session.commit()
    return e


def _calc(eng, total, month=3, year=2026, status="calculated"):
    c = SalaryCalculation(engineer_id=eng.id, month=month, year=year, total_amount=Decimal(total), status=status)
    db.session.add(c); db.session.commit()
    return c


def test_reconcile_example():
    accruals = [SimpleNamespace(total_amount=Decimal("10000"), month=3, year=2026, status="calculated")]
    payments = [
        SimpleNamespace(amount=Decimal("4000"), status="completed", payment_date=date(2026, 4, 5)),
        SimpleNamespace(amount=Decimal("2000"), status="cancelled", payment_date=date(2026, 4, 6)),
    ]
    snap = reconcile(accruals, payments)
    assert snap.total_accrued == Decimal("10000")
    assert snap.total_paid == Decimal("4000")
    assert snap.balance == Decimal("6000")
    assert snap.last_accrual_date == date(2026, 3, 1)
    assert snap.last_payment_date == date(2026, 4, 5)
    assert snap.state == "owed"


def test_reconcile_ignores_drafts_and_pending():
    accruals = [
        SimpleNamespace(total_amount=Decimal("5000"), month=1, year=2026, status="draft"),
        SimpleNamespace(total_amount=Decimal("3000"), month=2, year=2026, status="paid"),
    ]
    payments = [
        SimpleNamespace(amount=Decimal("1000"), status="pending", payment_date=date(2026, 2, 1)),
        SimpleNamespace(amount=Decimal("3500"), status="completed", payment_date=date(2026, 2, 2)),
    ]
    snap = reconcile(accruals, payments)
    assert snap.total_accrued == Decimal("3000")
    assert snap.total_paid == Decimal("3500")
    assert snap.balance == Decimal("-500")
    assert snap.state == "overpaid"


def test_balance_state():
    assert balance_state(Decimal("0")) == "settled"
    assert balance_state(Decimal("0.01")) == "owed"
    assert balance_state(Decimal("-1")) == "overpaid"


def test_payment_state_machine():
    p = SimpleNamespace(id=1, status="pending")
    assert transition_payment(p, "completed") is True
    assert p.status == "completed"
    with pytest.raises(StateTransitionError):
        transition_payment(p, "cancelled")
    with pytest.raises(StateTransitionError):
        transition_payment(p, "pending")

    p = SimpleNamespace(id=2, status="pending")
    transition_payment(p, "cancelled")
    with pytest.raises(StateTransitionError):
        transition_payment(p, "completed")
    assert transition_payment(p, "cancelled") is False


def test_payments_update_balance_and_calculation_status():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng = _engineer()
        calc = _calc(eng, "10000")

        create_payment({"engineer_id": eng.id, "salary_calculation_id": calc.id, "amount": 4000,
                        "payment_date": "2026-04-05"})
        cancelled = create_payment({"engineer_id": eng.id, "amount": 2000, "type": "advance",
                                    "status": "pending", "payment_date": "2026-04-06"})
        set_payment_status(cancelled.id, "cancelled")

        bal = EngineerBalance.query.filter_by(engineer_id=eng.id).one()
        assert bal.total_accrued == Decimal("10000")
        assert bal.total_paid == Decimal("4000")
        assert bal.balance == Decimal("6000")
        assert db.session.get(SalaryCalculation, calc.id).status == "calculated"

        final = create_payment({"engineer_id": eng.id, "salary_calculation_id": calc.id, "amount": 6000,
                                "payment_date": "2026-04-20"})
        assert db.session.get(SalaryCalculation, calc.id).status == "paid"
        assert EngineerBalance.query.filter_by(engineer_id=eng.id).one().balance == Decimal("0")
        # month/year inherited from the calculation
        assert (final.month, final.year) == (3, 2026)

        delete_payment(final.id)
        assert db.session.get(SalaryCalculation, calc.id).status == "calculated"
        assert EngineerBalance.query.filter_by(engineer_id=eng.id).one().balance == Decimal("6000")

        with pytest.raises(StateTransitionError):
            update_payment(cancelled.id, {"amount": 100})


def test_payment_validation():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng = _engineer()
        other = Engineer(user_id=_other_user().id, type="remote", base_rate=Decimal("400"))
        db.session.add(other); db.session.commit()
        calc = _calc(other, "1000")

        with pytest.raises(ValidationError):
            create_payment({"engineer_id": eng.id, "amount": 0, "payment_date": "2026-04-01"})
        with pytest.raises(ValidationError):
            create_payment({"engineer_id": eng.id, "amount": -50, "payment_date": "2026-04-01"})
        with pytest.raises(ValidationError):
            create_payment({"engineer_id": eng.id, "salary_calculation_id": calc.id, "amount": 10,
                            "payment_date": "2026-04-01"})

        adj = create_payment({"engineer_id": eng.id, "amount": -50, "type": "adjustment",
                              "payment_date": "2026-04-01"})
        assert adj.amount == Decimal("-50")
        assert get_engineer_balance(eng.id).balance == Decimal("50")


def _other_user():
    u = User(email="other@test.local", full_name="Other Engineer", status="active")
    u.set_password("x")
    db.session.add(u); db.session.commit()
    return u


def test_stale_balance_is_recomputed_on_read():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng = _engineer()
        _calc(eng, "7000")
        # stale cached row with wrong figures
        db.session.add(EngineerBalance(engineer_id=eng.id, total_accrued=0, total_paid=0, balance=0,
                                       last_calculated_at=datetime.utcnow() - timedelta(hours=2)))
        db.session.commit()

        assert get_engineer_balance(eng.id).balance == Decimal("7000")

        # fresh rows are served from cache
        row = EngineerBalance.query.filter_by(engineer_id=eng.id).one()
        row.balance = Decimal("1")
        db.session.commit()
        assert get_engineer_balance(eng.id).balance == Decimal("1")


def test_balance_detail_lists_remaining_per_calculation():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng = _engineer()
        c1 = _calc(eng, "5000", month=2)
        _calc(eng, "3000", month=3)
        create_payment({"engineer_id": eng.id, "salary_calculation_id": c1.id, "amount": 1500,
                        "payment_date": "2026-03-10"})

        detail = engineer_balance_detail(eng.id)
        assert detail["balance"] == 6500.0
        assert len(detail["recent_payments"]) == 1
        by_month = {c["month"]: c for c in detail["recent_calculations"]}
        assert by_month[2]["paid_amount"] == 1500.0
        assert by_month[2]["remaining_amount"] == 3500.0
        assert by_month[3]["remaining_amount"] == 3000.0
        assert [c["month"] for c in detail["recent_calculations"]] == [3, 2]
