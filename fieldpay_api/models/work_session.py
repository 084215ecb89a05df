# fieldpay_api/models/work_session.py
from datetime import datetime
from fieldpay_api.extensions import db

SESSION_COMPLETED = "completed"
SESSION_CANCELLED = "cancelled"
SESSION_STATUSES = (SESSION_COMPLETED, SESSION_CANCELLED)


class WorkSession(db.Model):
    """One engineer's logged work against an order on a given date."""
    __tablename__ = "work_sessions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="RESTRICT"), nullable=False)
    work_date = db.Column(db.Date, nullable=False, index=True)

    regular_hours = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    # engineer side
    calculated_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    car_usage_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    regular_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    overtime_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # organization side
    organization_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    organization_regular_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    organization_overtime_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    profit = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # rates frozen at calculation time
    engineer_base_rate = db.Column(db.Numeric(10, 2), nullable=False)
    engineer_overtime_rate = db.Column(db.Numeric(10, 2), nullable=False)
    organization_base_rate = db.Column(db.Numeric(10, 2), nullable=False)
    organization_overtime_rate = db.Column(db.Numeric(10, 2), nullable=False)
    organization_overtime_multiplier = db.Column(db.Numeric(4, 2))

    distance_km = db.Column(db.Numeric(8, 2))
    territory_type = db.Column(db.String(20))
    notes = db.Column(db.Text)
    photo_url = db.Column(db.String(255))

    status = db.Column(db.String(20), nullable=False, default=SESSION_COMPLETED, index=True)
    can_be_invoiced = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_ws_engineer_date", "engineer_id", "work_date"),
    )

    order = db.relationship("Order", lazy="joined",
                            backref=db.backref("work_sessions", lazy="select", cascade="all, delete-orphan",
                                               passive_deletes=True))
    engineer = db.relationship("Engineer", lazy="joined")


class WorkReport(db.Model):
    """Legacy single-row work report: hours are either all regular or all overtime."""
    __tablename__ = "work_reports"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="RESTRICT"), nullable=False)

    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    total_hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    is_overtime = db.Column(db.Boolean, nullable=False, default=False)
    work_result = db.Column(db.String(20), nullable=False, default="completed")

    distance_km = db.Column(db.Numeric(8, 2))
    territory_type = db.Column(db.String(20))
    notes = db.Column(db.Text)

    calculated_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    car_usage_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    organization_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    submitted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
