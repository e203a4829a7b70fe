# --- cartflow/model/coupon.py ---
import enum
from ..extensions import db
from sqlalchemy.sql import func
from ..utils.money import to_string_money


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(db.Model):
    __tablename__ = "coupon"
    __table_args__ = (
        db.CheckConstraint(
            "usage_limit IS NULL OR times_used <= usage_limit",
            name="ck_coupon_usage_within_limit",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)

    # "PERCENTAGE" or "FIXED_AMOUNT"; kept as text so unknown types can be stored and yield no discount
    discount_type = db.Column(db.String(16), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Optional constraints; naive UTC, a missing bound is open
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    min_cart_value = db.Column(db.Numeric(12, 2), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)          # global usage cap
    times_used = db.Column(db.Integer, nullable=False, default=0)
    occasion = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and (self.times_used or 0) >= self.usage_limit

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": to_string_money(self.discount_value),
            "active": self.active,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "min_cart_value": to_string_money(self.min_cart_value) if self.min_cart_value is not None else None,
            "usage_limit": self.usage_limit,
            "times_used": self.times_used,
            "occasion": self.occasion,
        }
