from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fieldpay_api.common.errors import RateConfigurationError, ValidationError
from fieldpay_api.services.pay_calculator import (
    EngineerRates, OrganizationRates,
    resolve_engineer_rates, resolve_organization_rates, calculate_session_pay,
    calculate_work_hours, territory_type_for, calculate_car_usage, round_session_pay, freeze_rates,
)


def _eng(**kw):
    base = dict(id=1, type="staff", base_rate=Decimal("500"), overtime_rate=None, overtime_coefficient=None,
                home_territory_fixed_amount=Decimal("0"))
    base.update(kw)
    return SimpleNamespace(**base)


def _org(**kw):
    base = dict(id=1, name="Acme", base_rate=Decimal("900"), overtime_multiplier=None, has_overtime=False)
    base.update(kw)
    return SimpleNamespace(**base)


def test_session_pay_example():
    pay = calculate_session_pay(
        Decimal("8"), Decimal("2"),
        EngineerRates(base_rate=Decimal("500"), overtime_rate=Decimal("800")),
        OrganizationRates(base_rate=Decimal("1000"), overtime_rate=Decimal("1500")),
        Decimal("300"),
    )
    assert pay.regular_payment == Decimal("4000")
    assert pay.overtime_payment == Decimal("1600")
    assert pay.calculated_amount == Decimal("5600")
    assert pay.organization_regular_payment == Decimal("8000")
    assert pay.organization_overtime_payment == Decimal("3000")
    assert pay.organization_payment == Decimal("11000")
    assert pay.car_usage_amount == Decimal("300")
    assert pay.profit == Decimal("11000") - Decimal("5600") - Decimal("300")


def test_session_pay_is_exact():
    pay = calculate_session_pay(
        Decimal("0.1"), Decimal("0.2"),
        EngineerRates(base_rate=Decimal("333.33"), overtime_rate=Decimal("0.01")),
        OrganizationRates(base_rate=Decimal("0"), overtime_rate=Decimal("0")),
    )
    assert pay.calculated_amount == Decimal("33.333") + Decimal("0.002")
    assert pay.calculated_amount == pay.regular_payment + pay.overtime_payment


@pytest.mark.parametrize("reg,ot,car", [("-1", "0", "0"), ("1", "-0.5", "0"), ("1", "0", "-10"), ("NaN", "0", "0")])
def test_session_pay_rejects_bad_input(reg, ot, car):
    with pytest.raises(ValidationError):
        calculate_session_pay(
            Decimal(reg), Decimal(ot),
            EngineerRates(base_rate=Decimal("500"), overtime_rate=Decimal("800")),
            OrganizationRates(base_rate=Decimal("900"), overtime_rate=Decimal("900")),
            Decimal(car),
        )


def test_engineer_rates_fallbacks():
    # explicit overtime rate
    r = resolve_engineer_rates(_eng(overtime_rate=Decimal("800")))
    assert (r.base_rate, r.overtime_rate) == (Decimal("500"), Decimal("800"))
    # coefficient
    r = resolve_engineer_rates(_eng(overtime_coefficient=Decimal("1.5")))
    assert r.overtime_rate == Decimal("750.0")
    # nothing: overtime paid at base
    r = resolve_engineer_rates(_eng())
    assert r.overtime_rate == Decimal("500")


def test_engineer_rates_custom_pair_overrides():
    custom = SimpleNamespace(custom_base_rate=Decimal("600"), custom_overtime_rate=None,
                             custom_zone1_extra=None, custom_zone2_extra=Decimal("1800"),
                             custom_zone3_extra=None, is_active=True)
    r = resolve_engineer_rates(_eng(overtime_rate=Decimal("800")), _org(), custom)
    assert r.base_rate == Decimal("600")
    assert r.overtime_rate == Decimal("800")
    assert r.zone2_extra == Decimal("1800")

    custom.is_active = False
    assert resolve_engineer_rates(_eng(), _org(), custom).base_rate == Decimal("500")


def test_missing_rates_are_configuration_errors():
    with pytest.raises(RateConfigurationError) as ei:
        resolve_engineer_rates(_eng(base_rate=None), _org())
    assert ei.value.code == "RATES_NOT_CONFIGURED"
    with pytest.raises(RateConfigurationError):
        resolve_organization_rates(_org(base_rate=None))


def test_organization_overtime_multiplier_only_when_enabled():
    r = resolve_organization_rates(_org(overtime_multiplier=Decimal("1.5"), has_overtime=True))
    assert r.overtime_rate == Decimal("1350.0")
    r = resolve_organization_rates(_org(overtime_multiplier=Decimal("1.5"), has_overtime=False))
    assert r.overtime_rate == Decimal("900")


def test_work_hours_round_up_to_quarter():
    start = datetime(2026, 3, 2, 9, 0)
    assert calculate_work_hours(start, datetime(2026, 3, 2, 17, 0)) == Decimal("8")
    assert calculate_work_hours(start, datetime(2026, 3, 2, 17, 1)) == Decimal("8.25")
    assert calculate_work_hours(start, datetime(2026, 3, 2, 9, 50)) == Decimal("1")
    with pytest.raises(ValidationError):
        calculate_work_hours(start, datetime(2026, 3, 2, 8, 0))


def test_territory_and_car_usage():
    assert territory_type_for(Decimal("60"), "staff") == "home"
    assert territory_type_for(Decimal("150"), "remote") == "zone_1"
    assert territory_type_for(Decimal("150"), "staff") == "zone_2"
    assert territory_type_for(Decimal("300"), "staff") == "zone_3"

    contract = _eng(type="contract")
    assert calculate_car_usage(contract, Decimal("100")) == Decimal("1400")

    staff = _eng(home_territory_fixed_amount=Decimal("500"))
    assert calculate_car_usage(staff, Decimal("40")) == Decimal("500")
    assert calculate_car_usage(staff, Decimal("220")) == Decimal("2000")
    rates = EngineerRates(base_rate=Decimal("500"), overtime_rate=Decimal("500"), zone2_extra=Decimal("1800"))
    assert calculate_car_usage(staff, Decimal("220"), rates) == Decimal("2300")


def test_rounded_pay_totals_are_derived_from_rounded_parts():
    rates = EngineerRates(base_rate=Decimal("100.10"), overtime_rate=Decimal("100.10"))
    org = OrganizationRates(base_rate=Decimal("33.33"), overtime_rate=Decimal("49.995"))
    exact = calculate_session_pay(Decimal("0.25"), Decimal("0.25"), rates, org, Decimal("10.005"))
    assert exact.calculated_amount == Decimal("50.0500")

    stored = round_session_pay(exact)
    assert stored.regular_payment == Decimal("25.03")
    assert stored.overtime_payment == Decimal("25.03")
    assert stored.calculated_amount == stored.regular_payment + stored.overtime_payment == Decimal("50.06")
    assert stored.organization_payment == stored.organization_regular_payment + stored.organization_overtime_payment
    assert stored.car_usage_amount == Decimal("10.01")
    assert stored.profit == stored.organization_payment - stored.calculated_amount - stored.car_usage_amount


def test_frozen_rates_are_cent_scaled():
    eng = resolve_engineer_rates(_eng(base_rate=Decimal("333.33"), overtime_coefficient=Decimal("1.5")))
    assert eng.overtime_rate == Decimal("499.995")
    eng, org = freeze_rates(eng, resolve_organization_rates(_org()))
    assert eng.overtime_rate == Decimal("500.00")
    assert eng.base_rate == Decimal("333.33")
    assert org.base_rate == Decimal("900.00")
