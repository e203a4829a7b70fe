"""Coupon engine: advisory results, compare-and-increment usage counter."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from cartflow.errors import ConflictError, NotFoundError, ValidationError
from cartflow.model import Coupon
from cartflow.services import CouponRejection, CouponService
from cartflow.services.coupon_service import calculate_discount

NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture
def coupons(session):
    return CouponService(session, clock=lambda: NOW)


# -- Application -----------------------------------------------------------------

def test_percentage_coupon(coupons):
    coupons.create_coupon(code="SAVE10", discount_type="PERCENTAGE", discount_value="10")

    result = coupons.validate_and_apply_coupon("SAVE10", "250.00")

    assert result.applied
    assert result.message == "Coupon applied successfully."
    assert result.discount_amount == Decimal("25.00")
    assert result.coupon_code == "SAVE10"
    assert coupons.get_coupon_by_code("SAVE10").times_used == 1


def test_fixed_amount_coupon_is_flat(coupons):
    coupons.create_coupon(code="FLAT50", discount_type="FIXED_AMOUNT", discount_value="50")

    result = coupons.validate_and_apply_coupon("FLAT50", "30.00")

    assert result.applied
    assert result.discount_amount == Decimal("50.00")


@pytest.mark.parametrize("setup, total, reason", [
    ({"active": False}, "100", CouponRejection.INACTIVE),
    ({"end_date": "2025-05-31T00:00:00Z"}, "100", CouponRejection.OUT_OF_WINDOW),
    ({"start_date": "2025-07-01T00:00:00"}, "100", CouponRejection.OUT_OF_WINDOW),
    ({"min_cart_value": "150"}, "100", CouponRejection.MIN_CART_VALUE),
    ({"usage_limit": 0}, "100", CouponRejection.USAGE_LIMIT),
])
def test_rejections_are_advisory(coupons, setup, total, reason):
    coupons.create_coupon(code="PROMO", discount_value="10", **setup)

    result = coupons.validate_and_apply_coupon("PROMO", total)

    assert not result.applied
    assert result.reason is reason
    assert result.discount_amount == Decimal("0.00")
    assert result.coupon_code is None
    assert coupons.get_coupon_by_code("PROMO").times_used == 0


def test_unknown_code_is_not_found(coupons):
    result = coupons.validate_and_apply_coupon("MISSING", "100")

    assert result.reason is CouponRejection.NOT_FOUND
    assert result.message == "Coupon not found."


def test_code_lookup_ignores_case(coupons):
    coupons.create_coupon(code="SAVE10", discount_value="10")

    result = coupons.validate_and_apply_coupon("save10", "100")

    assert result.applied
    assert result.coupon_code == "SAVE10"
    assert coupons.get_coupon_by_code("Save10").times_used == 1


def test_usage_limit_allows_exactly_one(coupons):
    coupons.create_coupon(code="ONCE", discount_value="10", usage_limit=1)

    first = coupons.validate_and_apply_coupon("ONCE", "100")
    second = coupons.validate_and_apply_coupon("ONCE", "100")

    assert first.applied
    assert second.reason is CouponRejection.USAGE_LIMIT
    assert coupons.get_coupon_by_code("ONCE").times_used == 1


def test_usage_limit_holds_against_stale_counter(session, coupons, stale):
    coupon = coupons.create_coupon(code="ONCE", discount_value="10", usage_limit=1)
    # a concurrent checkout used the coupon after this session read it
    stale(coupon, "times_used", 1)
    assert coupon.times_used == 0

    result = coupons.validate_and_apply_coupon("ONCE", "100")

    assert result.reason is CouponRejection.USAGE_LIMIT
    assert session.get(Coupon, coupon.id).times_used == 1


def test_unknown_discount_type_gives_nothing():
    coupon = Coupon(code="ODD", discount_type="BOGO", discount_value=Decimal("10"))
    assert calculate_discount(coupon, Decimal("100")) == Decimal("0.00")


# -- CRUD ------------------------------------------------------------------------

def test_duplicate_code_is_case_insensitive(coupons):
    coupons.create_coupon(code="Summer", discount_value="5")
    with pytest.raises(ConflictError):
        coupons.create_coupon(code="SUMMER", discount_value="5")


@pytest.mark.parametrize("data", [
    {"code": "", "discount_value": "5"},
    {"code": "X", "discount_value": "0"},
    {"code": "X", "discount_value": "101"},
    {"code": "X", "discount_value": "5", "discount_type": "BOGO"},
    {"code": "X", "discount_value": "5", "start_date": "2025-02-01", "end_date": "2025-01-01"},
    {"code": "X", "discount_value": "5", "start_date": "next tuesday"},
    {"code": "X", "discount_value": "5", "colour": "red"},
])
def test_create_coupon_validation(coupons, data):
    with pytest.raises(ValidationError):
        coupons.create_coupon(**data)


def test_update_and_delete_coupon(coupons):
    coupon = coupons.create_coupon(code="SPRING", discount_value="5", occasion="spring sale")

    updated = coupons.update_coupon(coupon.id, discount_value="7.5", end_date=NOW + timedelta(days=3))
    assert updated.discount_value == Decimal("7.50")
    assert updated.as_api()["occasion"] == "spring sale"

    coupons.delete_coupon(coupon.id)
    with pytest.raises(NotFoundError):
        coupons.get_coupon(coupon.id)
    assert coupons.list_coupons() == []


def test_update_cannot_drop_limit_below_usage(coupons):
    coupon = coupons.create_coupon(code="TWICE", discount_value="5", usage_limit=2)
    coupons.validate_and_apply_coupon("TWICE", "10")
    coupons.validate_and_apply_coupon("TWICE", "10")

    with pytest.raises(ValidationError):
        coupons.update_coupon(coupon.id, usage_limit=1)
