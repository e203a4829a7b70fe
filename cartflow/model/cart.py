# cartflow/model/cart.py
from __future__ import annotations
from decimal import Decimal
from sqlalchemy.sql import func
from ..extensions import db
from ..utils.money import D, HUNDRED, round_money, discounted_unit_price, to_string_money

class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, unique=True, index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "CartItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id.asc()",
    )

    def find_item(self, product_id) -> CartItem | None:
        return next((i for i in self.items if i.product_id == product_id), None)

    def computed_total_dec(self) -> Decimal:
        return round_money(sum((i.line_total_dec() for i in self.items), Decimal("0")))

    def as_api(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "items": [i.as_api() for i in self.items],
            "total_amount": to_string_money(self.total_amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class CartItem(db.Model):
    __tablename__ = "cart_item"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_item_cart_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_item_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    # unit price snapshot taken when the stock was reserved
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    product = db.relationship("Product", lazy="joined")

    # ---- price helpers ----
    def unit_price_dec(self) -> Decimal:
        return D(self.price)

    def discount_percentage_dec(self) -> Decimal:
        # discount is always the live product discount, the price is the snapshot
        return D(self.product.discount_percentage) if self.product else Decimal("0")

    def unit_final_price_dec(self) -> Decimal:
        return discounted_unit_price(self.unit_price_dec(), self.discount_percentage_dec())

    def line_total_dec(self) -> Decimal:
        # unrounded; the cart total is rounded once over all lines
        factor = (HUNDRED - self.discount_percentage_dec()) / HUNDRED
        return self.unit_price_dec() * factor * Decimal(self.quantity)

    def as_api(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price": to_string_money(self.unit_price_dec()),
            "discount_percentage": str(self.discount_percentage_dec()),
            "discounted_price": str(self.unit_final_price_dec()),
            "line_total": to_string_money(self.line_total_dec()),
            "available": bool(self.product and self.product.active),
        }
