from decimal import Decimal

from cartflow.utils.money import D, discounted_unit_price, percent_of, round_money, to_string_money


def test_round_money_is_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("2.344")) == Decimal("2.34")
    assert round_money("0.005") == Decimal("0.01")


def test_d_accepts_floats_strings_and_none():
    assert D(None) == Decimal("0")
    assert D(1.1) == Decimal("1.1")
    assert D("12.50") == Decimal("12.50")


def test_percent_of_rounds_to_cents():
    assert percent_of("100.00", "10") == Decimal("10.00")
    assert percent_of("19.99", "15") == Decimal("3.00")


def test_discounted_unit_price():
    assert discounted_unit_price("100.00", "10") == Decimal("90.00")
    assert discounted_unit_price("19.99", None) == Decimal("19.99")
    assert discounted_unit_price("19.99", "0") == Decimal("19.99")


def test_to_string_money():
    assert to_string_money(Decimal("5")) == "5.00"
