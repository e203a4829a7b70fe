# cartflow/services/coupon_service.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import func, or_, select, update

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..model import Coupon, DiscountType
from ..utils.money import D, percent_of, round_money
from .uow import unit_of_work

logger = structlog.get_logger(__name__)


class CouponRejection(str, enum.Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    OUT_OF_WINDOW = "out_of_window"
    MIN_CART_VALUE = "min_cart_value"
    USAGE_LIMIT = "usage_limit"


_MESSAGES = {
    CouponRejection.NOT_FOUND: "Coupon not found.",
    CouponRejection.INACTIVE: "Coupon is not active.",
    CouponRejection.OUT_OF_WINDOW: "Coupon has expired or is not yet valid.",
    CouponRejection.MIN_CART_VALUE: "Minimum cart value not met.",
    CouponRejection.USAGE_LIMIT: "Coupon usage limit reached.",
}

APPLIED_MESSAGE = "Coupon applied successfully."


@dataclass(frozen=True)
class CouponResult:
    """Advisory outcome of a coupon application; rejections are not exceptions."""
    message: str
    discount_amount: Decimal
    coupon_code: str | None
    applied: bool = False
    reason: CouponRejection | None = None

    @classmethod
    def rejected(cls, reason: CouponRejection) -> CouponResult:
        return cls(_MESSAGES[reason], Decimal("0.00"), None, False, reason)

    def as_api(self):
        return {
            "message": self.message,
            "discount_amount": str(self.discount_amount),
            "coupon_code": self.coupon_code,
            "applied": self.applied,
            "reason": self.reason.value if self.reason else None,
        }


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_iso8601(s):
    if s is None or isinstance(s, datetime):
        if isinstance(s, datetime) and s.tzinfo:
            return s.astimezone(timezone.utc).replace(tzinfo=None)
        return s
    s = str(s).strip()
    if not s:
        return None
    # support trailing 'Z' (UTC)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"Invalid datetime format: {s}")
    # store naive UTC
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def calculate_discount(coupon: Coupon, cart_total) -> Decimal:
    dtype = (coupon.discount_type or "").upper().strip()
    if dtype == DiscountType.PERCENTAGE.value:
        return percent_of(cart_total, coupon.discount_value)
    if dtype == DiscountType.FIXED_AMOUNT.value:
        return round_money(coupon.discount_value)
    return Decimal("0.00")


def coupon_in_window(coupon: Coupon, now: datetime) -> bool:
    if coupon.start_date and now < coupon.start_date:
        return False
    if coupon.end_date and now > coupon.end_date:
        return False
    return True


class CouponService:
    _FIELDS = (
        "code", "discount_type", "discount_value", "start_date", "end_date",
        "min_cart_value", "usage_limit", "active", "occasion",
    )

    def __init__(self, session=None, clock=_utcnow):
        self.session = session or db.session
        self.clock = clock

    # ---- engine -----------------------------------------------------------

    def validate_and_apply_coupon(self, code, cart_total) -> CouponResult:
        cart_total = D(cart_total)
        with unit_of_work(self.session, "validate_and_apply_coupon"):
            coupon = self._find_by_code(code, lock=True)
            result = self._evaluate(coupon, cart_total)
            if result is not None:
                logger.info("Coupon rejected", coupon_code=code, reason=result.reason.value)
                return result

            if not self._claim_usage(coupon):
                logger.warning("Coupon usage limit reached while applying", coupon_code=coupon.code)
                return CouponResult.rejected(CouponRejection.USAGE_LIMIT)

            discount = calculate_discount(coupon, cart_total)
            logger.info("Coupon applied", coupon_code=coupon.code, discount=str(discount),
                        times_used=coupon.times_used)
        return CouponResult(APPLIED_MESSAGE, discount, coupon.code, True, None)

    def _evaluate(self, coupon: Coupon | None, cart_total: Decimal) -> CouponResult | None:
        if coupon is None:
            return CouponResult.rejected(CouponRejection.NOT_FOUND)
        if not coupon.active:
            return CouponResult.rejected(CouponRejection.INACTIVE)
        if not coupon_in_window(coupon, self.clock()):
            return CouponResult.rejected(CouponRejection.OUT_OF_WINDOW)
        if cart_total < D(coupon.min_cart_value):
            return CouponResult.rejected(CouponRejection.MIN_CART_VALUE)
        if coupon.is_exhausted():
            return CouponResult.rejected(CouponRejection.USAGE_LIMIT)
        return None

    def _claim_usage(self, coupon: Coupon) -> bool:
        # compare-and-increment: the database decides, not the copy we read
        result = self.session.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                or_(Coupon.usage_limit.is_(None), Coupon.times_used < Coupon.usage_limit),
            )
            .values(times_used=Coupon.times_used + 1)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(coupon)
        return result.rowcount == 1

    # ---- lookup -----------------------------------------------------------

    def _find_by_code(self, code, lock=False) -> Coupon | None:
        code = (code or "").strip()
        if not code:
            return None
        # codes are unique case-insensitively, so lookups are too
        stmt = select(Coupon).where(func.lower(Coupon.code) == code.lower())
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def get_coupon(self, coupon_id) -> Coupon:
        coupon = self.session.get(Coupon, coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon", coupon_id)
        return coupon

    def get_coupon_by_code(self, code) -> Coupon:
        coupon = self._find_by_code(code)
        if coupon is None:
            raise NotFoundError("Coupon", code)
        return coupon

    def list_coupons(self, active=None):
        stmt = select(Coupon).order_by(Coupon.id.desc())
        if active is not None:
            stmt = stmt.where(Coupon.active == bool(active))
        return list(self.session.execute(stmt).scalars())

    # ---- CRUD -------------------------------------------------------------

    def create_coupon(self, **data) -> Coupon:
        fields = self._clean(data, partial=False)
        with unit_of_work(self.session, "create_coupon"):
            self._ensure_unique_code(fields["code"])
            coupon = Coupon(times_used=0, **fields)
            self.session.add(coupon)
            self.session.flush()
            logger.info("Coupon created", coupon_id=coupon.id, coupon_code=coupon.code)
        return coupon

    def update_coupon(self, coupon_id, **data) -> Coupon:
        fields = self._clean(data, partial=True)
        with unit_of_work(self.session, "update_coupon"):
            coupon = self.get_coupon(coupon_id)
            if "code" in fields and fields["code"].lower() != coupon.code.lower():
                self._ensure_unique_code(fields["code"])
            for key, value in fields.items():
                setattr(coupon, key, value)
            self._check_window(coupon.start_date, coupon.end_date)
            if coupon.usage_limit is not None and coupon.times_used > coupon.usage_limit:
                raise ValidationError("usage_limit cannot be below times_used", field="usage_limit")
            logger.info("Coupon updated", coupon_id=coupon.id, fields=sorted(fields))
        return coupon

    def delete_coupon(self, coupon_id):
        with unit_of_work(self.session, "delete_coupon"):
            coupon = self.get_coupon(coupon_id)
            self.session.delete(coupon)
            logger.info("Coupon deleted", coupon_id=coupon_id)

    def _ensure_unique_code(self, code):
        # unique case-insensitive
        existing = self.session.execute(
            select(Coupon.id).where(func.lower(Coupon.code) == code.lower())
        ).first()
        if existing:
            raise ConflictError("Coupon code already exists", coupon_code=code)

    def _clean(self, data: dict, partial: bool) -> dict:
        unknown = set(data) - set(self._FIELDS)
        if unknown:
            raise ValidationError(f"Unknown coupon fields: {', '.join(sorted(unknown))}")

        fields = {}
        if "code" in data or not partial:
            code = (data.get("code") or "").strip()
            if not code:
                raise ValidationError("code is required", field="code")
            fields["code"] = code

        if "discount_type" in data or not partial:
            dtype = (data.get("discount_type") or DiscountType.PERCENTAGE.value).upper().strip()
            if dtype not in {t.value for t in DiscountType}:
                raise ValidationError("discount_type must be 'PERCENTAGE' or 'FIXED_AMOUNT'", field="discount_type")
            fields["discount_type"] = dtype

        if "discount_value" in data or not partial:
            try:
                value = D(data.get("discount_value"))
            except ArithmeticError:
                raise ValidationError("discount_value must be numeric", field="discount_value")
            if value <= 0:
                raise ValidationError("discount_value must be > 0", field="discount_value")
            fields["discount_value"] = value

        dtype = fields.get("discount_type")
        if dtype == DiscountType.PERCENTAGE.value and fields.get("discount_value", 0) > 100:
            raise ValidationError("percentage coupon must be <= 100", field="discount_value")

        for key in ("start_date", "end_date"):
            if key in data:
                fields[key] = _parse_iso8601(data[key])
        self._check_window(fields.get("start_date"), fields.get("end_date"))

        if "min_cart_value" in data:
            mcv = data["min_cart_value"]
            fields["min_cart_value"] = None if mcv is None else D(mcv)
            if fields["min_cart_value"] is not None and fields["min_cart_value"] < 0:
                raise ValidationError("min_cart_value must be >= 0", field="min_cart_value")

        if "usage_limit" in data:
            limit = data["usage_limit"]
            fields["usage_limit"] = None if limit is None else int(limit)
            if fields["usage_limit"] is not None and fields["usage_limit"] < 0:
                raise ValidationError("usage_limit must be >= 0", field="usage_limit")

        if "active" in data:
            fields["active"] = bool(data["active"])
        elif not partial:
            fields["active"] = True

        if "occasion" in data:
            fields["occasion"] = data["occasion"]
        return fields

    @staticmethod
    def _check_window(start, end):
        if start and end and end < start:
            raise ValidationError("end_date must not be before start_date", field="end_date")
