"""Cart aggregate: every line holds stock taken from the ledger.

Invariants:
    - stock + units held in carts is constant across add/update/remove/clear
    - a failed mutation leaves stock and lines untouched
"""

from decimal import Decimal

import pytest

from cartflow.errors import NotFoundError, OutOfStockError, ValidationError


@pytest.fixture
def discounted(make_product):
    return make_product(name="Headphones", price="100.00", stock=10, discount="10")


def _held(cart):
    return sum(i.quantity for i in cart.items)


# -- Core flows ----------------------------------------------------------------

def test_add_reserves_stock_and_prices_line(carts, customer, discounted, stock_of):
    cart = carts.add_product_to_cart(customer.id, discounted.id, 4)

    assert stock_of(discounted.id) == 6
    assert [(i.product_id, i.quantity) for i in cart.items] == [(discounted.id, 4)]
    assert cart.total_amount == Decimal("360.00")


def test_update_quantity_down_releases_difference(carts, customer, discounted, stock_of):
    carts.add_product_to_cart(customer.id, discounted.id, 4)

    cart = carts.update_product_quantity(customer.id, discounted.id, 2)

    assert stock_of(discounted.id) == 8
    assert cart.items[0].quantity == 2
    assert cart.total_amount == Decimal("180.00")


def test_update_quantity_up_reserves_only_the_extra(carts, customer, discounted, stock_of):
    carts.add_product_to_cart(customer.id, discounted.id, 4)

    carts.update_product_quantity(customer.id, discounted.id, 10)

    assert stock_of(discounted.id) == 0


def test_update_quantity_beyond_stock_keeps_line(carts, customer, discounted, stock_of):
    carts.add_product_to_cart(customer.id, discounted.id, 4)

    with pytest.raises(OutOfStockError):
        carts.update_product_quantity(customer.id, discounted.id, 11)

    assert stock_of(discounted.id) == 6
    assert carts.get_cart(customer.id).items[0].quantity == 4


def test_update_to_zero_removes_line(carts, customer, discounted, stock_of):
    carts.add_product_to_cart(customer.id, discounted.id, 4)

    cart = carts.update_product_quantity(customer.id, discounted.id, 0)

    assert cart.items == []
    assert cart.total_amount == Decimal("0.00")
    assert stock_of(discounted.id) == 10


def test_add_more_than_available_changes_nothing(carts, customer, make_product, stock_of):
    product = make_product(stock=2)

    with pytest.raises(OutOfStockError):
        carts.add_product_to_cart(customer.id, product.id, 5)

    assert stock_of(product.id) == 2
    assert carts.get_or_create_cart(customer.id).items == []


def test_failed_add_leaves_existing_lines_alone(carts, customer, discounted, make_product, stock_of):
    scarce = make_product(name="Scarce", stock=1)
    carts.add_product_to_cart(customer.id, discounted.id, 3)

    with pytest.raises(OutOfStockError):
        carts.add_product_to_cart(customer.id, scarce.id, 2)

    cart = carts.get_cart(customer.id)
    assert [i.product_id for i in cart.items] == [discounted.id]
    assert stock_of(discounted.id) == 7
    assert stock_of(scarce.id) == 1


def test_adding_same_product_merges_lines(carts, customer, discounted):
    carts.add_product_to_cart(customer.id, discounted.id, 1)
    cart = carts.add_product_to_cart(customer.id, discounted.id, 2)

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3


def test_add_then_remove_restores_stock(carts, customer, discounted, stock_of):
    carts.add_product_to_cart(customer.id, discounted.id, 4)

    cart = carts.remove_product_from_cart(customer.id, discounted.id)

    assert cart.items == []
    assert stock_of(discounted.id) == 10


def test_clear_cart_releases_every_line(carts, customer, discounted, make_product, stock_of):
    other = make_product(name="Cable", price="5.00", stock=3)
    carts.add_product_to_cart(customer.id, discounted.id, 2)
    carts.add_product_to_cart(customer.id, other.id, 3)

    cart = carts.clear_cart(customer.id)

    assert cart.items == []
    assert cart.total_amount == Decimal("0.00")
    assert stock_of(discounted.id) == 10
    assert stock_of(other.id) == 3


def test_reservation_identity_over_a_sequence(carts, customer, discounted, stock_of):
    steps = [
        lambda: carts.add_product_to_cart(customer.id, discounted.id, 3),
        lambda: carts.update_product_quantity(customer.id, discounted.id, 7),
        lambda: carts.update_product_quantity(customer.id, discounted.id, 1),
        lambda: carts.add_product_to_cart(customer.id, discounted.id, 2),
    ]
    for step in steps:
        cart = step()
        assert stock_of(discounted.id) + _held(cart) == 10


# -- Cart lifecycle ------------------------------------------------------------

def test_get_or_create_cart_is_idempotent(carts, customer, discounted, stock_of):
    first = carts.get_or_create_cart(customer.id)
    second = carts.get_or_create_cart(customer.id)

    assert first.id == second.id
    assert len(carts.list_carts()) == 1
    assert stock_of(discounted.id) == 10


def test_get_or_create_cart_for_unknown_customer(carts):
    with pytest.raises(NotFoundError):
        carts.get_or_create_cart(404)


def test_get_cart_without_cart(carts, customer):
    with pytest.raises(NotFoundError):
        carts.get_cart(customer.id)


def test_cart_view_flags_unavailable_lines(carts, ledger, customer, discounted):
    carts.add_product_to_cart(customer.id, discounted.id, 1)
    ledger.set_active(discounted.id, False)

    view = carts.get_cart(customer.id).as_api()

    assert view["items"][0]["available"] is False


# -- Edge cases ----------------------------------------------------------------

@pytest.mark.parametrize("quantity", [0, -1, "abc"])
def test_add_rejects_bad_quantity(carts, customer, discounted, quantity):
    with pytest.raises(ValidationError):
        carts.add_product_to_cart(customer.id, discounted.id, quantity)


def test_update_rejects_negative_quantity(carts, customer, discounted):
    carts.add_product_to_cart(customer.id, discounted.id, 1)
    with pytest.raises(ValidationError):
        carts.update_product_quantity(customer.id, discounted.id, -2)


def test_remove_missing_line(carts, customer, discounted):
    carts.get_or_create_cart(customer.id)
    with pytest.raises(NotFoundError):
        carts.remove_product_from_cart(customer.id, discounted.id)


def test_add_unknown_product(carts, customer):
    with pytest.raises(NotFoundError):
        carts.add_product_to_cart(customer.id, 999, 1)


def test_recalculate_picks_up_discount_changes(carts, ledger, customer, discounted):
    carts.add_product_to_cart(customer.id, discounted.id, 2)
    ledger.set_discount(discounted.id, "50")

    cart = carts.recalculate(carts.get_cart(customer.id))

    assert cart.total_amount == Decimal("100.00")


def test_total_is_rounded_once_over_unrounded_lines(carts, customer, make_product):
    # 10.05 at 50 % is 5.025 per unit; rounding per unit would give 15.06
    product = make_product(name="Sticker", price="10.05", stock=5, discount="50")

    cart = carts.add_product_to_cart(customer.id, product.id, 3)

    assert cart.total_amount == Decimal("15.08")
    assert cart.as_api()["items"][0]["line_total"] == "15.08"
