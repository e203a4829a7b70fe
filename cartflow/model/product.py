# cartflow/model/product.py
from sqlalchemy.sql import func
from ..extensions import db
from ..utils.money import D, discounted_unit_price

class Product(db.Model):
    __tablename__ = "product"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
        db.CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_product_discount_range",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    # authoritative ledger: units not reserved by any cart nor committed to an order
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def price_dec(self):
        return D(self.price)

    def discount_dec(self):
        return D(self.discount_percentage)

    def discounted_price_dec(self):
        return discounted_unit_price(self.price_dec(), self.discount_dec())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price_dec()),
            "stock_quantity": self.stock_quantity,
            "discount_percentage": str(self.discount_dec()),
            "discounted_price": str(self.discounted_price_dec()),
            "active": self.active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
