"""Orders parked at the till to be resumed later."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from branchpos.db.base import Base, TimestampMixin
from branchpos.models.sale import OrderType
from branchpos.models.validators import non_negative


class HeldOrderStatus(str, Enum):
    PARKED = "parked"
    ON_HOLD = "on_hold"
    RETRIEVED = "retrieved"


class HeldOrder(Base, TimestampMixin):
    """A cart saved without creating a sale.

    Holding an order writes nothing else: no stock movement, no table
    occupancy, no invoice number. The cart is stored as the checkout request
    it will be replayed as, and the totals are a priced snapshot for display.
    """

    __tablename__ = "held_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(OrderType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        nullable=False,
    )
    status: Mapped[HeldOrderStatus] = mapped_column(
        SQLEnum(HeldOrderStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=HeldOrderStatus.PARKED,
        nullable=False,
        index=True,
    )

    customer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    table_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    guest_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    cart: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    retrieved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    retrieved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    @validates("subtotal", "total_discount", "tax_amount", "total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)
