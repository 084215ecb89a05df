# fieldpay_api/models/salary.py
from datetime import datetime
from fieldpay_api.extensions import db

CALC_DRAFT = "draft"
CALC_CALCULATED = "calculated"
CALC_APPROVED = "approved"
CALC_PAID = "paid"
CALCULATION_STATUSES = (CALC_DRAFT, CALC_CALCULATED, CALC_APPROVED, CALC_PAID)

PAYMENT_TYPES = ("advance", "regular", "bonus", "adjustment")
PAYMENT_METHODS = ("cash", "bank_transfer", "card", "other")

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_CANCELLED = "cancelled"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_CANCELLED)


class SalaryCalculation(db.Model):
    __tablename__ = "salary_calculations"

    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="CASCADE"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)  # 1-12
    year = db.Column(db.Integer, nullable=False)

    planned_hours = db.Column(db.Integer, nullable=False, default=160)
    actual_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)

    base_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    overtime_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    bonus_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    car_usage_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    fixed_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    fixed_car_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    client_revenue = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    profit_margin = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.Enum(*CALCULATION_STATUSES, name="salary_calc_status_enum"),
                       nullable=False, default=CALC_DRAFT)
    calculated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("engineer_id", "year", "month", name="uq_salary_calc_engineer_period"),
    )

    engineer = db.relationship("Engineer", lazy="joined")


class SalaryPayment(db.Model):
    __tablename__ = "salary_payments"

    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="CASCADE"), nullable=False)
    # null for advances / ad-hoc bonuses
    salary_calculation_id = db.Column(db.Integer, db.ForeignKey("salary_calculations.id", ondelete="SET NULL"),
                                      index=True)
    month = db.Column(db.Integer)
    year = db.Column(db.Integer)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    type = db.Column(db.Enum(*PAYMENT_TYPES, name="salary_payment_type_enum"), nullable=False, default="regular")
    method = db.Column(db.Enum(*PAYMENT_METHODS, name="salary_payment_method_enum"), nullable=False,
                       default="bank_transfer")
    status = db.Column(db.Enum(*PAYMENT_STATUSES, name="salary_payment_status_enum"), nullable=False,
                       default=PAYMENT_COMPLETED, index=True)
    payment_date = db.Column(db.Date, nullable=False, index=True)

    notes = db.Column(db.Text)
    paid_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    document_number = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_salary_payment_engineer_date", "engineer_id", "payment_date"),
    )

    engineer = db.relationship("Engineer", lazy="joined")
    salary_calculation = db.relationship("SalaryCalculation", lazy="select")
    paid_by = db.relationship("User", lazy="select")


class EngineerBalance(db.Model):
    """Cached accrued/paid totals per engineer; recomputed on every payment or calculation change."""
    __tablename__ = "engineer_balances"

    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="CASCADE"), nullable=False, unique=True)

    total_accrued = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    # positive = owed to engineer, negative = overpaid
    balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    last_accrual_date = db.Column(db.Date)
    last_payment_date = db.Column(db.Date)
    last_calculated_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    engineer = db.relationship("Engineer", lazy="joined")
