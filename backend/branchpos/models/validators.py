"""Model-level validation utilities for data integrity.

Reusable validators that enforce business rules at the ORM level, so invalid
amounts never reach the database regardless of which service writes them.
"""

from decimal import Decimal


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None and _as_decimal(value) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Validate that a numeric value is > 0."""
    if value is not None and _as_decimal(value) <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value

