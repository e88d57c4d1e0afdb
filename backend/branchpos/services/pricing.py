"""Sale totals calculation.

All money is Decimal, quantised to cents with ROUND_HALF_UP after each
step so stored components always add up to the stored total.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple

from branchpos.core.errors import OrderValidationError
from branchpos.models.sale import DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def money(value) -> Decimal:
    """Quantise a value to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class SaleTotals:
    line_totals: List[Decimal] = field(default_factory=list)
    subtotal: Decimal = ZERO
    total_discount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO


def calculate_line_total(quantity: Decimal, unit_price: Decimal, discount_amount: Decimal = ZERO) -> Decimal:
    """``quantity * unit_price - discount_amount``; the discount may not exceed the line."""
    gross = money(Decimal(quantity) * Decimal(unit_price))
    discount = money(discount_amount or ZERO)
    if discount < ZERO:
        raise OrderValidationError("Line discount cannot be negative")
    if discount > gross:
        raise OrderValidationError(
            f"Line discount {discount} exceeds line amount {gross}"
        )
    return gross - discount


def calculate_discount(
    subtotal: Decimal,
    discount_type: Optional[DiscountType],
    discount_value: Optional[Decimal],
) -> Decimal:
    """Invoice-level discount amount for a subtotal.

    Percentage discounts must lie in [0, 100]; fixed discounts may not
    exceed the subtotal.
    """
    value = Decimal(discount_value or ZERO)
    if discount_type is None:
        if value != ZERO:
            raise OrderValidationError("Discount value given without a discount type")
        return ZERO

    if discount_type == DiscountType.PERCENTAGE:
        if value < ZERO or value > HUNDRED:
            raise OrderValidationError(
                f"Percentage discount must be between 0 and 100, got {value}"
            )
        return money(subtotal * value / HUNDRED)

    if value < ZERO:
        raise OrderValidationError(f"Fixed discount cannot be negative, got {value}")
    if value > subtotal:
        raise OrderValidationError(
            f"Fixed discount {value} exceeds subtotal {subtotal}"
        )
    return money(value)


def calculate_totals(
    lines: Iterable[Tuple[Decimal, Decimal, Decimal]],
    tax_rate: Decimal,
    discount_type: Optional[DiscountType] = None,
    discount_value: Optional[Decimal] = None,
) -> SaleTotals:
    """Compute totals for ``(quantity, unit_price, line_discount)`` tuples.

    subtotal = sum of line totals
    tax      = (subtotal - discount) * tax_rate
    total    = subtotal - discount + tax
    """
    totals = SaleTotals()
    for quantity, unit_price, line_discount in lines:
        totals.line_totals.append(calculate_line_total(quantity, unit_price, line_discount))

    if not totals.line_totals:
        raise OrderValidationError("Cart is empty")

    totals.subtotal = money(sum(totals.line_totals, ZERO))
    totals.total_discount = calculate_discount(totals.subtotal, discount_type, discount_value)
    taxable = totals.subtotal - totals.total_discount
    totals.tax_amount = money(taxable * Decimal(tax_rate))
    totals.total = money(taxable + totals.tax_amount)
    return totals
