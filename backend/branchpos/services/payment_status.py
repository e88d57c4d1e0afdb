"""Derived payment state of a sale.

Payment status is never stored. Every consumer (API responses, the table
projection, clearing, customer stats) goes through ``is_paid`` so the rule
is defined in exactly one place.
"""

from decimal import Decimal
from typing import Any, Optional

ZERO = Decimal("0")


def _amount(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def is_paid(sale: Any) -> bool:
    """True when the sale has a positive total and has been paid in full.

    Accepts anything with ``total`` and ``amount_paid`` attributes, including
    ``None``; missing amounts count as unpaid.
    """
    if sale is None:
        return False
    total = _amount(getattr(sale, "total", None))
    paid = _amount(getattr(sale, "amount_paid", None))
    if total is None or paid is None:
        return False
    return total > ZERO and paid >= total


def balance_due(sale: Any) -> Decimal:
    """Amount still owed, never negative."""
    if sale is None:
        return ZERO
    total = _amount(getattr(sale, "total", None)) or ZERO
    paid = _amount(getattr(sale, "amount_paid", None)) or ZERO
    return max(total - paid, ZERO)
