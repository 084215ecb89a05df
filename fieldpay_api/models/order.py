# fieldpay_api/models/order.py
from datetime import datetime
from fieldpay_api.extensions import db

ORDER_STATUSES = ("waiting", "processing", "working", "review", "completed", "cancelled")
TERRITORY_TYPES = ("home", "zone_1", "zone_2", "zone_3", "urban", "suburban", "rural")

# summed from work sessions by services.order_aggregation
AGGREGATE_FIELDS = (
    "regular_hours",
    "overtime_hours",
    "calculated_amount",
    "car_usage_amount",
    "organization_payment",
    "regular_payment",
    "overtime_payment",
    "organization_regular_payment",
    "organization_overtime_payment",
    "profit",
)


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False, index=True)
    assigned_engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="SET NULL"))
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(255))
    distance_km = db.Column(db.Numeric(8, 2))
    territory_type = db.Column(db.String(20))
    status = db.Column(db.String(20), nullable=False, default="waiting", index=True)

    planned_start_date = db.Column(db.Date)
    actual_start_date = db.Column(db.DateTime)
    completion_date = db.Column(db.DateTime)
    work_notes = db.Column(db.Text)

    # aggregates (default 0, populated by aggregation)
    regular_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    calculated_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    car_usage_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    organization_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    regular_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    overtime_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    organization_regular_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    organization_overtime_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    profit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # last rates used, for audit
    engineer_base_rate = db.Column(db.Numeric(10, 2))
    engineer_overtime_rate = db.Column(db.Numeric(10, 2))
    organization_base_rate = db.Column(db.Numeric(10, 2))
    organization_overtime_multiplier = db.Column(db.Numeric(4, 2))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_order_engineer_status", "assigned_engineer_id", "status"),
    )

    organization = db.relationship("Organization", lazy="joined")
    assigned_engineer = db.relationship("Engineer", lazy="joined")
