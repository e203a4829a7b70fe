import re
from datetime import datetime

import pytest

from cartflow.errors import ValidationError
from cartflow.model import Customer
from cartflow.services import CustomerService, format_order_code


def test_customer_codes_are_sequential(customers):
    codes = [customers.register_customer(name).customer_code for name in ("ann", "ben", "cal")]
    assert codes == ["CH001", "CH002", "CH003"]


def test_codes_skip_past_rows_inserted_out_of_band(session, customers):
    customers.register_customer("ann")
    session.add(Customer(username="imported", customer_code="CH041"))
    session.commit()

    assert customers.register_customer("ben").customer_code == "CH042"


def test_customer_codes_are_unique(customers):
    codes = {customers.register_customer(f"user{i}").customer_code for i in range(12)}
    assert len(codes) == 12


def test_register_customer_validation(customers):
    with pytest.raises(ValidationError):
        customers.register_customer("  ")
    with pytest.raises(ValidationError):
        customers.register_customer("eve", role="root")


def test_code_prefix_is_configurable(app, customers):
    app.config["CUSTOMER_CODE_PREFIX"] = "CU"
    assert CustomerService(customers.session).register_customer("zed").customer_code == "CU001"


def test_format_order_code():
    assert format_order_code(7, datetime(2025, 10, 22)) == "ORD-20251022-007"
    assert format_order_code(1234, datetime(2025, 10, 22)) == "ORD-20251022-1234"
    assert re.match(r"^ORD-\d{8}-\d{3}$", format_order_code(5))


def test_add_address_requires_fields(customers, customer):
    with pytest.raises(ValidationError):
        customers.add_address(customer.id, "1 Main St", "", "IL", "US", "62701")
