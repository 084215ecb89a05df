import os
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from fieldpay_api import create_app
from fieldpay_api.extensions import db
from fieldpay_api.models.engineer import Engineer
from fieldpay_api.models.order import Order
from fieldpay_api.models.organization import Organization
from fieldpay_api.models.user import User
from fieldpay_api.models.work_session import WorkSession, WorkReport
from fieldpay_api.services import order_aggregation
from fieldpay_api.services.order_aggregation import (
    sum_sessions, sum_legacy_reports, aggregate_order, aggregate_orders,
)


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _session(amount, status="completed", **kw):
    row = dict(regular_hours=Decimal("1"), overtime_hours=Decimal("0"), calculated_amount=Decimal(amount),
               car_usage_amount=Decimal("0"), organization_payment=Decimal("0"), regular_payment=Decimal(amount),
               overtime_payment=Decimal("0"), organization_regular_payment=Decimal("0"),
               organization_overtime_payment=Decimal("0"), profit=-Decimal(amount), status=status)
    row.update(kw)
    return SimpleNamespace(**row)


def _seed_orders(n):
    org = Organization(name="Acme", base_rate=Decimal("900"))
    u = User(email="eng@test.local", full_name="Test Engineer", status="active")
    u.set_password("x")
    db.session.add_all([org, u]); db.session.commit()
    eng = Engineer(user_id=u.id, type="staff", base_rate=Decimal("500"))
    db.session.add(eng); db.session.commit()

    orders = []
    for i in range(n):
        o = Order(organization_id=org.id, assigned_engineer_id=eng.id, title=f"Order {i + 1}")
        db.session.add(o); db.session.commit()
        for amt in ("1000", "1500"):
            db.session.add(WorkSession(
                order_id=o.id, engineer_id=eng.id, work_date=date(2026, 3, 2),
                regular_hours=Decimal("2"), overtime_hours=Decimal("0"),
                calculated_amount=Decimal(amt), regular_payment=Decimal(amt),
                organization_payment=Decimal("1800"), organization_regular_payment=Decimal("1800"),
                profit=Decimal("1800") - Decimal(amt),
                engineer_base_rate=Decimal("500"), engineer_overtime_rate=Decimal("500"),
                organization_base_rate=Decimal("900"), organization_overtime_rate=Decimal("900"),
            ))
        db.session.commit()
        orders.append(o)
    return eng, orders


def test_sum_is_order_independent():
    a, b = _session("1000"), _session("1500")
    t1 = sum_sessions([a, b])
    t2 = sum_sessions([b, a])
    assert t1.calculated_amount == t2.calculated_amount == Decimal("2500")
    assert t1 == t2


def test_cancelled_sessions_are_excluded():
    t = sum_sessions([_session("1000"), _session("1500", status="cancelled")])
    assert t.calculated_amount == Decimal("1000")
    assert t.session_count == 1


def test_legacy_reports_split_all_or_nothing():
    reports = [
        SimpleNamespace(total_hours=Decimal("6"), is_overtime=False, calculated_amount=Decimal("3000"),
                        organization_payment=Decimal("5400"), car_usage_amount=Decimal("200")),
        SimpleNamespace(total_hours=Decimal("3"), is_overtime=True, calculated_amount=Decimal("2400"),
                        organization_payment=Decimal("2700"), car_usage_amount=Decimal("0")),
    ]
    t = sum_legacy_reports(reports)
    assert t.regular_hours == Decimal("6")
    assert t.overtime_hours == Decimal("3")
    assert t.regular_payment == Decimal("3000")
    assert t.overtime_payment == Decimal("2400")
    assert t.calculated_amount == Decimal("5400")
    assert t.organization_payment == Decimal("8100")
    assert t.profit == Decimal("8100") - Decimal("5400") - Decimal("200")


def test_aggregate_order_is_idempotent():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _, (o,) = _seed_orders(1)

        aggregate_order(o); db.session.commit()
        first = {k: getattr(o, k) for k in ("calculated_amount", "regular_hours", "profit")}
        aggregate_order(o); db.session.commit()
        second = {k: getattr(o, k) for k in ("calculated_amount", "regular_hours", "profit")}

        assert first == second
        assert o.calculated_amount == Decimal("2500")
        assert o.regular_hours == Decimal("4")
        assert o.engineer_base_rate == Decimal("500")


def test_aggregate_from_legacy_reports():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        eng, (o,) = _seed_orders(1)
        db.session.add(WorkReport(order_id=o.id, engineer_id=eng.id, total_hours=Decimal("5"), is_overtime=True,
                                  calculated_amount=Decimal("4000"), organization_payment=Decimal("6750")))
        db.session.commit()

        summary = aggregate_orders(source="reports")
        assert summary.updated == 1
        db.session.refresh(o)
        assert o.overtime_hours == Decimal("5")
        assert o.regular_hours == Decimal("0")
        assert o.calculated_amount == Decimal("4000")


def test_batch_continues_past_failing_order(monkeypatch):
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _, orders = _seed_orders(5)
        failing_id = orders[2].id
        real_apply = order_aggregation.apply_totals

        def flaky_apply(order, totals):
            if order.id == failing_id:
                raise RuntimeError("boom")
            return real_apply(order, totals)

        monkeypatch.setattr(order_aggregation, "apply_totals", flaky_apply)
        summary = aggregate_orders()

        assert summary.total == 5
        assert summary.updated == 4
        assert summary.errors == 1
        failed = [r for r in summary.results if not r.success]
        assert failed[0].order_id == failing_id
        assert "boom" in failed[0].error

        assert db.session.get(Order, failing_id).calculated_amount == Decimal("0")
        assert db.session.get(Order, orders[4].id).calculated_amount == Decimal("2500")


def test_cli_exit_status_reflects_errors(monkeypatch):
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _, orders = _seed_orders(5)
        failing_id = orders[2].id

    real_apply = order_aggregation.apply_totals

    def flaky_apply(order, totals):
        if order.id == failing_id:
            raise RuntimeError("boom")
        return real_apply(order, totals)

    runner = app.test_cli_runner()
    res = runner.invoke(args=["aggregate-orders"])
    assert res.exit_code == 0, res.output
    assert "updated: 5, errors: 0" in res.output

    monkeypatch.setattr(order_aggregation, "apply_totals", flaky_apply)
    res = runner.invoke(args=["aggregate-orders"])
    assert res.exit_code == 1
    assert "updated: 4, errors: 1" in res.output
