from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Iterable

from poscore.config import settings
from poscore.models.enums import OrderChannel

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
EPSILON = Decimal(str(settings.MONEY_EPSILON))
QUICK_BILLS = (1000, 2000, 5000, 10000, 20000)


def money(x) -> Decimal:
    if x is None:
        return ZERO
    if isinstance(x, float):
        x = str(x)  # avoid binary float artifacts
    return Decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


def is_zero(x) -> bool:
    return abs(money(x)) < EPSILON


def money_eq(a, b) -> bool:
    return is_zero(money(a) - money(b))


def money_sum(values: Iterable) -> Decimal:
    total = ZERO
    for v in values:
        total += money(v)
    return total


def format_money(x) -> str:
    v = money(x)
    sign = "-" if v < 0 else ""
    return f"{sign}{settings.CURRENCY_SYMBOL} {abs(v):,.2f}"


def quick_amounts(amount) -> list[Decimal]:
    """Round bill amounts above `amount` offered as one-tap cash tenders."""
    amount = money(amount)
    out: list[Decimal] = []
    for bill in QUICK_BILLS:
        rounded = money((amount / bill).to_integral_value(rounding=ROUND_CEILING) * bill)
        if rounded > amount and rounded not in out:
            out.append(rounded)
    return out[:4]


def delivery_fee_applies(channel: OrderChannel | None) -> bool:
    return channel in (OrderChannel.DELIVERY, OrderChannel.ONLINE)


def compute_totals(lines: Iterable, channel: OrderChannel | None = None,
                   delivery_fee=None, tip=None) -> dict:
    """Order totals from cart lines (anything with a `line_total`)."""
    subtotal = money_sum(l.line_total for l in lines)
    fee = money(delivery_fee) if delivery_fee_applies(channel) else ZERO
    tip = money(tip)
    return {
        "subtotal": subtotal,
        "delivery_fee": fee,
        "tip": tip,
        "total": subtotal + fee + tip,
    }
