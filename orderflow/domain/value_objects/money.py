"""Order totals value object"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple, Union

Number = Union[int, float, str, Decimal]

_CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Floats go through str() so 0.1 stays 0.1"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")

    def __post_init__(self):
        for name in ("subtotal", "discount", "tax", "shipping", "total"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "total": str(self.total),
        }


def calculate_totals(
    items: Iterable[Tuple[int, Number]],
    discount: Number = 0,
    tax_rate: Number = 0,
    shipping: Number = 0,
) -> OrderTotals:
    """Compute order totals from (quantity, unit price) pairs.

    Tax applies to the discounted amount. The grand total never goes below
    zero, even when the discount exceeds the subtotal.
    """
    subtotal = sum((to_decimal(price) * quantity for quantity, price in items), Decimal("0"))
    discount_amount = to_decimal(discount)
    shipping_cost = to_decimal(shipping)
    taxable = subtotal - discount_amount
    tax = taxable * to_decimal(tax_rate)
    total = max(Decimal("0"), taxable + tax + shipping_cost)

    return OrderTotals(
        subtotal=quantize(subtotal),
        discount=quantize(discount_amount),
        tax=quantize(max(Decimal("0"), tax)),
        shipping=quantize(shipping_cost),
        total=quantize(total),
    )
