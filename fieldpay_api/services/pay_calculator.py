# fieldpay_api/services/pay_calculator.py
"""
Work session pay calculation.

Everything here is pure arithmetic over Decimal: no queries, no session access.
Callers resolve the engineer/organization rows (and an optional per-pair
EngineerOrganizationRate) and pass them in.

    regular_payment      = regular_hours  * engineer base rate
    overtime_payment     = overtime_hours * engineer overtime rate
    calculated_amount    = regular_payment + overtime_payment
    organization_payment = same split with the organization's rates
    car_usage_amount     = car payment (pass-through)
    profit               = organization_payment - calculated_amount - car_usage_amount
"""
from __future__ import annotations

import math
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from fieldpay_api.common.errors import RateConfigurationError, ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")

HOME_TERRITORY_MAX_KM = Decimal("60")
ZONE_1_MAX_KM = Decimal("199")
ZONE_2_MAX_KM = Decimal("250")

DEFAULT_CONTRACT_KM_RATE = Decimal("14")
DEFAULT_ZONE_EXTRAS = {
    "zone_1": Decimal("1000"),
    "zone_2": Decimal("1500"),
    "zone_3": Decimal("2000"),
}


def D(v) -> Decimal:
    if v is None:
        return ZERO
    return v if isinstance(v, Decimal) else Decimal(str(v))


def money(v) -> Decimal:
    """Round to cents, the scale of every amount column."""
    return D(v).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class EngineerRates:
    base_rate: Decimal
    overtime_rate: Decimal
    zone1_extra: Optional[Decimal] = None
    zone2_extra: Optional[Decimal] = None
    zone3_extra: Optional[Decimal] = None


@dataclass(frozen=True)
class OrganizationRates:
    base_rate: Decimal
    overtime_rate: Decimal
    overtime_multiplier: Optional[Decimal] = None


@dataclass(frozen=True)
class SessionPay:
    regular_payment: Decimal
    overtime_payment: Decimal
    calculated_amount: Decimal
    organization_regular_payment: Decimal
    organization_overtime_payment: Decimal
    organization_payment: Decimal
    car_usage_amount: Decimal
    profit: Decimal

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _non_negative(name: str, v) -> Decimal:
    d = D(v)
    if not d.is_finite() or d < 0:
        raise ValidationError(f"{name} must be a non-negative number", payload={"field": name})
    return d


# ---------- rate resolution ----------

def resolve_engineer_rates(engineer, organization=None, custom_rate=None) -> EngineerRates:
    """
    Effective engineer rates for one organization.
    Base: pair override, else engineer.base_rate.
    Overtime: pair override, else engineer.overtime_rate, else base * overtime_coefficient, else base.
    """
    custom = custom_rate if (custom_rate is not None and getattr(custom_rate, "is_active", True)) else None

    base = getattr(custom, "custom_base_rate", None) if custom else None
    if base is None:
        base = getattr(engineer, "base_rate", None)
    if base is None:
        org_name = getattr(organization, "name", None)
        raise RateConfigurationError(
            f"Base rate is not configured for engineer {getattr(engineer, 'id', '?')}"
            + (f" and organization {org_name}" if org_name else ""),
            payload={"engineer_id": getattr(engineer, "id", None),
                     "organization_id": getattr(organization, "id", None)},
        )
    base = D(base)
    if base < 0:
        raise RateConfigurationError("Engineer base rate cannot be negative",
                                     payload={"engineer_id": getattr(engineer, "id", None)})

    overtime = getattr(custom, "custom_overtime_rate", None) if custom else None
    if overtime is None:
        overtime = getattr(engineer, "overtime_rate", None)
    if overtime is None:
        coef = getattr(engineer, "overtime_coefficient", None)
        overtime = base * D(coef) if coef is not None else base
    overtime = D(overtime)
    if overtime < 0:
        raise RateConfigurationError("Engineer overtime rate cannot be negative",
                                     payload={"engineer_id": getattr(engineer, "id", None)})

    def _extra(attr):
        v = getattr(custom, attr, None) if custom else None
        return D(v) if v is not None else None

    return EngineerRates(
        base_rate=base,
        overtime_rate=overtime,
        zone1_extra=_extra("custom_zone1_extra"),
        zone2_extra=_extra("custom_zone2_extra"),
        zone3_extra=_extra("custom_zone3_extra"),
    )


def resolve_organization_rates(organization) -> OrganizationRates:
    base = getattr(organization, "base_rate", None)
    if base is None:
        raise RateConfigurationError(
            f"Base rate is not configured for organization {getattr(organization, 'name', '?')}",
            payload={"organization_id": getattr(organization, "id", None)},
        )
    base = D(base)
    if base < 0:
        raise RateConfigurationError("Organization base rate cannot be negative",
                                     payload={"organization_id": getattr(organization, "id", None)})

    mult = getattr(organization, "overtime_multiplier", None)
    if getattr(organization, "has_overtime", False) and mult is not None:
        return OrganizationRates(base_rate=base, overtime_rate=base * D(mult), overtime_multiplier=D(mult))
    return OrganizationRates(base_rate=base, overtime_rate=base, overtime_multiplier=None)


# ---------- session pay ----------

def calculate_session_pay(regular_hours, overtime_hours,
                          engineer_rates: EngineerRates,
                          organization_rates: OrganizationRates,
                          car_payment=ZERO) -> SessionPay:
    reg = _non_negative("regular_hours", regular_hours)
    ot = _non_negative("overtime_hours", overtime_hours)
    car = _non_negative("car_payment", car_payment)
    eng_base = _non_negative("engineer base_rate", engineer_rates.base_rate)
    eng_ot = _non_negative("engineer overtime_rate", engineer_rates.overtime_rate)
    org_base = _non_negative("organization base_rate", organization_rates.base_rate)
    org_ot = _non_negative("organization overtime_rate", organization_rates.overtime_rate)

    regular_payment = reg * eng_base
    overtime_payment = ot * eng_ot
    calculated = regular_payment + overtime_payment

    org_regular = reg * org_base
    org_overtime = ot * org_ot
    org_total = org_regular + org_overtime

    return SessionPay(
        regular_payment=regular_payment,
        overtime_payment=overtime_payment,
        calculated_amount=calculated,
        organization_regular_payment=org_regular,
        organization_overtime_payment=org_overtime,
        organization_payment=org_total,
        car_usage_amount=car,
        profit=org_total - calculated - car,
    )


def round_session_pay(pay: SessionPay) -> SessionPay:
    """
    Cent-rounded copy for storage. Only the four hour-based parts and the car
    payment are rounded; the totals and profit are re-derived from them so the
    stored row still adds up.
    """
    regular = money(pay.regular_payment)
    overtime = money(pay.overtime_payment)
    org_regular = money(pay.organization_regular_payment)
    org_overtime = money(pay.organization_overtime_payment)
    car = money(pay.car_usage_amount)
    calculated = regular + overtime
    org_total = org_regular + org_overtime
    return SessionPay(
        regular_payment=regular,
        overtime_payment=overtime,
        calculated_amount=calculated,
        organization_regular_payment=org_regular,
        organization_overtime_payment=org_overtime,
        organization_payment=org_total,
        car_usage_amount=car,
        profit=org_total - calculated - car,
    )


def freeze_rates(engineer_rates: EngineerRates, organization_rates: OrganizationRates):
    """Rates at the scale they are stored on a session; pay is computed from these."""
    return (
        replace(engineer_rates, base_rate=money(engineer_rates.base_rate),
                overtime_rate=money(engineer_rates.overtime_rate)),
        replace(organization_rates, base_rate=money(organization_rates.base_rate),
                overtime_rate=money(organization_rates.overtime_rate)),
    )


# ---------- hours / territory / car ----------

def calculate_work_hours(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours rounded up to the next quarter hour."""
    if end < start:
        raise ValidationError("end time must be after start time")
    hours = (end - start).total_seconds() / 3600
    return Decimal(math.ceil(round(hours * 4, 6))) / 4


def territory_type_for(distance_km, engineer_type: str) -> str:
    km = _non_negative("distance_km", distance_km)
    if km <= HOME_TERRITORY_MAX_KM:
        return "home"
    if km <= ZONE_1_MAX_KM and engineer_type == "remote":
        return "zone_1"
    if km <= ZONE_2_MAX_KM:
        return "zone_2"
    return "zone_3"


def calculate_car_usage(engineer, distance_km, rates: Optional[EngineerRates] = None,
                        km_rate=DEFAULT_CONTRACT_KM_RATE, zone_extras=None) -> Decimal:
    """
    Car usage payment for one trip.
    Contract engineers are paid per km; staff/remote get their home-territory
    fixed amount plus a zone extra outside home territory.
    """
    km = _non_negative("distance_km", distance_km)
    etype = getattr(engineer, "type", "staff")
    if etype == "contract":
        return km * D(km_rate)

    amount = D(getattr(engineer, "home_territory_fixed_amount", None))
    zone = territory_type_for(km, etype)
    if zone == "home":
        return amount

    extras = dict(DEFAULT_ZONE_EXTRAS)
    if zone_extras:
        extras.update({k: D(v) for k, v in zone_extras.items()})
    override = None
    if rates is not None:
        override = {"zone_1": rates.zone1_extra, "zone_2": rates.zone2_extra, "zone_3": rates.zone3_extra}.get(zone)
    return amount + (override if override is not None else extras.get(zone, ZERO))
