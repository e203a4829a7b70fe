# --- cartflow/model/customer.py ---
import enum
from sqlalchemy.sql import func
from ..extensions import db


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Customer(db.Model):
    """Single identity record; what a caller may do is decided by ``role``."""
    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    role = db.Column(db.String(32), nullable=False, default=Role.CUSTOMER.value, index=True)
    customer_code = db.Column(db.String(32), unique=True, nullable=True, index=True)
    created_at = db.Column(db.DateTime, server_default=func.now())

    addresses = db.relationship(
        "Address",
        backref="customer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Address.id.asc()",
    )

    def as_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "customer_code": self.customer_code,
        }


class Address(db.Model):
    __tablename__ = "address"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False, index=True)
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=False)
    country = db.Column(db.String(120), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def as_line(self) -> str:
        return f"{self.street}, {self.city}, {self.state} - {self.zip_code}"

    def as_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "zip_code": self.zip_code,
            "active": self.active,
        }


class CodeSequence(db.Model):
    """Lockable counter row, one per generated-code prefix."""
    __tablename__ = "code_sequence"

    name = db.Column(db.String(32), primary_key=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)
