"""Human-readable identifiers: customer codes and order codes.

Customer codes come from a locked counter row per prefix, seeded from a
MAX-scan of the codes already stored, so concurrent registrations never get
the same code. Order codes embed the order id and are therefore written in a
second step, after the order row has been flushed.
"""

import re
from datetime import datetime

import structlog
from flask import current_app, has_app_context
from sqlalchemy import select

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..model import Address, CodeSequence, Customer, Order, Role
from .uow import unit_of_work

logger = structlog.get_logger(__name__)


def _setting(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def format_order_code(order_id: int, on: datetime | None = None, prefix=None, width=None) -> str:
    prefix = prefix or _setting("ORDER_CODE_PREFIX", "ORD")
    width = width or _setting("ORDER_CODE_WIDTH", 3)
    on = on or datetime.now()
    return f"{prefix}-{on:%Y%m%d}-{order_id:0{width}d}"


def assign_order_code(session, order: Order, on: datetime | None = None) -> str:
    """Second write of the order: the code depends on the generated id."""
    if order.id is None:
        session.flush()
    order.order_code = format_order_code(order.id, on or order.order_date)
    session.flush()
    return order.order_code


class CustomerCodeGenerator:
    def __init__(self, session=None, prefix=None, width=None):
        self.session = session or db.session
        self.prefix = prefix or _setting("CUSTOMER_CODE_PREFIX", "CH")
        self.width = width or _setting("CUSTOMER_CODE_WIDTH", 3)
        self._pattern = re.compile(rf"^{re.escape(self.prefix)}(\d+)$")

    def format(self, value: int) -> str:
        return f"{self.prefix}{value:0{self.width}d}"

    def max_existing(self) -> int:
        codes = self.session.execute(
            select(Customer.customer_code).where(Customer.customer_code.like(f"{self.prefix}%"))
        ).scalars()
        values = [int(m.group(1)) for m in map(self._pattern.match, (c or "" for c in codes)) if m]
        return max(values, default=0)

    def _lock_sequence(self) -> CodeSequence:
        stmt = select(CodeSequence).where(CodeSequence.name == self.prefix).with_for_update()
        seq = self.session.execute(stmt).scalar_one_or_none()
        if seq is None:
            seq = CodeSequence(name=self.prefix, last_value=0)
            self.session.add(seq)
            self.session.flush()
        return seq

    def next_code(self) -> str:
        """Allocate the next code; must run inside the caller's unit of work."""
        seq = self._lock_sequence()
        # codes inserted out of band (imports, manual fixes) push the counter forward
        seq.last_value = max(seq.last_value, self.max_existing()) + 1
        self.session.flush()
        code = self.format(seq.last_value)
        logger.debug("Customer code allocated", code=code)
        return code


class CustomerService:
    def __init__(self, session=None, codes: CustomerCodeGenerator | None = None):
        self.session = session or db.session
        self.codes = codes or CustomerCodeGenerator(self.session)

    def register_customer(self, username, email=None, role=Role.CUSTOMER.value) -> Customer:
        username = (username or "").strip()
        if not username:
            raise ValidationError("username is required", field="username")
        role = getattr(role, "value", role)
        if role not in {r.value for r in Role}:
            raise ValidationError(f"unknown role '{role}'", field="role")

        with unit_of_work(self.session, "register_customer"):
            customer = Customer(
                username=username,
                email=(email or "").strip().lower() or None,
                role=role,
            )
            self.session.add(customer)
            self.session.flush()
            customer.customer_code = self.codes.next_code()
            logger.info("Customer registered", customer_id=customer.id, customer_code=customer.customer_code)
        return customer

    def get_customer(self, customer_id) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer

    def add_address(self, customer_id, street, city, state, country, zip_code) -> Address:
        values = {"street": street, "city": city, "state": state, "country": country, "zip_code": zip_code}
        missing = [k for k, v in values.items() if not (v or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        with unit_of_work(self.session, "add_address"):
            customer = self.get_customer(customer_id)
            address = Address(**{k: v.strip() for k, v in values.items()})
            customer.addresses.append(address)
            self.session.flush()
        return address

    def get_address(self, address_id) -> Address:
        address = self.session.get(Address, address_id)
        if address is None:
            raise NotFoundError("Address", address_id)
        return address
