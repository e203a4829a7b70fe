# cartflow/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x: Money) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)

def percent_of(amount, pct) -> Money:
    """``amount * pct / 100`` rounded half-up to cents."""
    return round_money(D(amount) * D(pct) / HUNDRED)

def discounted_unit_price(unit_price, pct) -> Money:
    # per-unit price after a percentage discount; zero/None pct leaves it as is
    if not pct or D(pct) <= 0:
        return round_money(unit_price)
    return round_money(D(unit_price) - percent_of(unit_price, pct))

def to_string_money(x) -> str:
    return str(round_money(x))
