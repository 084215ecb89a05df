from datetime import datetime
from fieldpay_api.extensions import db

class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)

    base_rate = db.Column(db.Numeric(10, 2))                  # per hour; required for billing
    overtime_multiplier = db.Column(db.Numeric(4, 2))
    has_overtime = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"
