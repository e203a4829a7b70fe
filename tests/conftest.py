"""Shared fixtures: a fresh Flask app over in-memory SQLite per test.

Invariants:
    - Every test gets an empty schema (create_all / drop_all around it)
    - Services use the Flask-SQLAlchemy scoped session inside the app context
"""

import pytest
from sqlalchemy import text
from sqlalchemy.orm.attributes import set_committed_value

from cartflow import create_app
from cartflow.config import TestConfig
from cartflow.extensions import db
from cartflow.services import (
    CartService,
    CouponService,
    CustomerService,
    InventoryLedger,
    OrderService,
)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def ledger(session):
    return InventoryLedger(session)


@pytest.fixture
def carts(session):
    return CartService(session)


@pytest.fixture
def orders(session):
    return OrderService(session)


@pytest.fixture
def coupons(session):
    return CouponService(session)


@pytest.fixture
def customers(session):
    return CustomerService(session)


@pytest.fixture
def customer(customers):
    return customers.register_customer("alice", email="alice@example.com")


@pytest.fixture
def make_product(ledger):
    def _make(name="Widget", price="100.00", stock=10, discount="0", active=True):
        return ledger.create_product(name, price, stock_quantity=stock,
                                     discount_percentage=discount, active=active)
    return _make


@pytest.fixture
def stale(session):
    """Change a column behind the session's back while the loaded object keeps the old value.

    Simulates a concurrent writer that committed after this session read the row.
    """
    def _stale(obj, column, new_value):
        table = obj.__table__.name
        old_value = getattr(obj, column)
        session.execute(text(f"UPDATE {table} SET {column} = :v WHERE id = :id"), {"v": new_value, "id": obj.id})
        session.commit()
        # reload, then pin the pre-update value as if it had been read earlier
        getattr(obj, column)
        set_committed_value(obj, column, old_value)
        return obj
    return _stale


@pytest.fixture
def stock_of(session):
    """Stock as stored in the database, bypassing the identity map."""
    def _stock(product_id) -> int:
        return session.execute(
            text("SELECT stock_quantity FROM product WHERE id = :id"), {"id": product_id}
        ).scalar_one()
    return _stock
