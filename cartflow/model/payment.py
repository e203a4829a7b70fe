# cartflow/model/payment.py
import enum
from datetime import datetime
from ..extensions import db
from ..utils.money import to_string_money


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("customer_order.id"), nullable=True, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cod")
    status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING.value)
    payment_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": to_string_money(self.amount),
            "payment_method": self.payment_method,
            "status": self.status,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
        }
