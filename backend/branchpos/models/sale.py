"""Sale (order) models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, Numeric, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from branchpos.db.base import Base, utcnow
from branchpos.models.validators import non_negative, positive


def _values(enum_cls):
    return [m.value for m in enum_cls]


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class SaleStatus(str, Enum):
    """Lifecycle status. Moves only OPEN -> COMPLETED."""

    OPEN = "open"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL_WALLET = "digital_wallet"
    BANK_TRANSFER = "bank_transfer"
    MULTIPLE = "multiple"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Sale(Base):
    """A customer transaction. Append-only: rows are never deleted."""

    __tablename__ = "sales"
    __table_args__ = (
        # At most one open sale per table
        Index(
            "uq_sales_open_table",
            "table_id",
            unique=True,
            sqlite_where=text("status = 'open' AND table_id IS NOT NULL"),
            postgresql_where=text("status = 'open' AND table_id IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(OrderType, values_callable=_values, native_enum=False, length=20), nullable=False,
    )
    status: Mapped[SaleStatus] = mapped_column(
        SQLEnum(SaleStatus, values_callable=_values, native_enum=False, length=20),
        default=SaleStatus.OPEN,
        nullable=False,
        index=True,
    )

    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tables.id", ondelete="SET NULL"), nullable=True
    )
    table_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    guest_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cashier_id: Mapped[str] = mapped_column(String(64), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_type: Mapped[Optional[DiscountType]] = mapped_column(
        SQLEnum(DiscountType, values_callable=_values, native_enum=False, length=20), nullable=True,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # NULL until a payment is recorded
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    change_returned: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, values_callable=_values, native_enum=False, length=20), nullable=False,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    void_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Relationships
    line_items: Mapped[List["SaleLineItem"]] = relationship(
        "SaleLineItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleLineItem.id"
    )
    customer: Mapped[Optional["Customer"]] = relationship("Customer")
    table: Mapped[Optional["Table"]] = relationship("Table", foreign_keys=[table_id])
    delivery_order: Mapped[Optional["DeliveryOrder"]] = relationship(
        "DeliveryOrder", back_populates="sale", uselist=False
    )

    @validates("subtotal", "total_discount", "tax_amount", "total", "amount_paid", "change_returned")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("status")
    def _validate_status(self, key, value):
        if self.status == SaleStatus.COMPLETED and value != SaleStatus.COMPLETED:
            raise ValueError("A completed sale cannot be reopened")
        return value


class SaleLineItem(Base):
    """A single product line on a sale."""

    __tablename__ = "sale_line_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    sale: Mapped["Sale"] = relationship("Sale", back_populates="line_items")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("unit_price", "discount_amount", "line_total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)


# Forward references
from branchpos.models.customer import Customer  # noqa: E402
from branchpos.models.table import Table  # noqa: E402
from branchpos.models.delivery import DeliveryOrder  # noqa: E402
