"""Product catalogue entries referenced by sale line items."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from branchpos.db.base import Base, TimestampMixin
from branchpos.models.validators import non_negative


class Product(Base, TimestampMixin):
    """A sellable product.

    Stock is decremented on sale and restored on void. A sale is never
    rejected for lack of stock; the product is flagged instead.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock_level: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=Decimal("0"), nullable=False)
    has_inventory_discrepancy: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)
