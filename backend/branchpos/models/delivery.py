"""Delivery tracking models: drivers and delivery orders."""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from branchpos.db.base import Base, IntEnumType, TimestampMixin


class DeliveryStatus(IntEnum):
    """Delivery status codes as persisted.

    Consolidated from the legacy seven-value set by revision 002; the
    integer codes are part of the stored contract.
    """

    PENDING = 0
    ASSIGNED = 1
    OUT_FOR_DELIVERY = 2
    DELIVERED = 3
    FAILED = 4


class DeliveryPriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3


class Driver(Base, TimestampMixin):
    """Delivery driver."""

    __tablename__ = "drivers"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_deliveries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class DeliveryOrder(Base, TimestampMixin):
    """Tracking record projected from a delivery sale (one per sale)."""

    __tablename__ = "delivery_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    driver_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    pickup_address: Mapped[str] = mapped_column(String(500), nullable=False)
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    estimated_delivery_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    estimated_delivery_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_delivery_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    priority: Mapped[DeliveryPriority] = mapped_column(
        IntEnumType(DeliveryPriority), default=DeliveryPriority.NORMAL, nullable=False
    )
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        IntEnumType(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    sale: Mapped["Sale"] = relationship("Sale", back_populates="delivery_order")
    driver: Mapped[Optional["Driver"]] = relationship("Driver")
    customer: Mapped[Optional["Customer"]] = relationship("Customer")


from branchpos.models.sale import Sale  # noqa: E402
from branchpos.models.customer import Customer  # noqa: E402
