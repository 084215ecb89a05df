# fieldpay_api/models/engineer.py
from datetime import datetime
from fieldpay_api.extensions import db

ENGINEER_TYPES = ("staff", "remote", "contract")


class Engineer(db.Model):
    __tablename__ = "engineers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True)
    type = db.Column(db.Enum(*ENGINEER_TYPES, name="engineer_type_enum"), nullable=False, default="staff")

    base_rate = db.Column(db.Numeric(10, 2))                  # per hour
    overtime_rate = db.Column(db.Numeric(10, 2))              # per hour; wins over coefficient
    overtime_coefficient = db.Column(db.Numeric(4, 2))        # e.g. 1.6 x base_rate
    plan_hours_month = db.Column(db.Integer, nullable=False, default=160)

    home_territory_fixed_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    fixed_salary = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    fixed_car_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User", lazy="joined")

    @property
    def full_name(self):
        return self.user.full_name if self.user else None


class EngineerOrganizationRate(db.Model):
    """Per engineer/organization overrides of the engineer's own rates."""
    __tablename__ = "engineer_organization_rates"

    id = db.Column(db.Integer, primary_key=True)
    engineer_id = db.Column(db.Integer, db.ForeignKey("engineers.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    custom_base_rate = db.Column(db.Numeric(10, 2))
    custom_overtime_rate = db.Column(db.Numeric(10, 2))
    custom_zone1_extra = db.Column(db.Numeric(10, 2))
    custom_zone2_extra = db.Column(db.Numeric(10, 2))
    custom_zone3_extra = db.Column(db.Numeric(10, 2))

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("engineer_id", "organization_id", name="uq_engineer_org_rate"),
    )

    engineer = db.relationship("Engineer", lazy="joined")
    organization = db.relationship("Organization", lazy="joined")
