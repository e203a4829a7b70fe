# cartflow/model/order.py
import enum
from datetime import datetime
from ..extensions import db
from ..utils.money import to_string_money


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# allowed moves; DELIVERED and CANCELLED are terminal
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class Order(db.Model):
    __tablename__ = "customer_order"

    id = db.Column(db.Integer, primary_key=True)
    # assigned after the first insert, e.g. "ORD-20251022-001"
    order_code = db.Column(db.String(32), unique=True, index=True)
    order_date = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=True, index=True)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("address.id"), nullable=True)

    # Money snapshot
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discounted_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )
    payments = db.relationship("Payment", backref="order", lazy="selectin", order_by="Payment.id.asc()")
    customer = db.relationship("Customer", lazy="joined")
    shipping_address = db.relationship("Address", lazy="joined")

    def as_api(self):
        address = self.shipping_address
        return {
            "id": self.id,
            "order_code": self.order_code,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "status": self.status,
            "customer": {
                "id": self.customer_id,
                "code": self.customer.customer_code if self.customer else None,
            },
            "money": {
                "total_amount": to_string_money(self.total_amount),
                "discount_amount": to_string_money(self.discount_amount),
                "discounted_amount": to_string_money(self.discounted_amount),
            },
            "address_id": self.shipping_address_id,
            "shipping_address": address.as_line() if address else None,
            "items": [i.as_api() for i in self.items],
        }


class OrderItem(db.Model):
    __tablename__ = "order_item"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("customer_order.id"), nullable=False, index=True)

    # snapshot; the product reference is only kept to give stock back
    product_id = db.Column(db.Integer, db.ForeignKey("product.id", ondelete="SET NULL"), nullable=True, index=True)
    product_name = db.Column(db.String(255))

    price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discounted_price = db.Column(db.Numeric(12, 2), nullable=False)  # line total after discount
    quantity = db.Column(db.Integer, nullable=False)

    def as_api(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price": to_string_money(self.price),
            "discount_percentage": to_string_money(self.discount_percentage),
            "discounted_price": to_string_money(self.discounted_price),
            "quantity": self.quantity,
        }
