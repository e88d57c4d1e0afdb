"""Customer records for the branch CRM."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from branchpos.db.base import Base, TimestampMixin
from branchpos.models.validators import non_negative


class Customer(Base, TimestampMixin):
    """Customer with bilingual names and aggregate purchase stats.

    The aggregates are refreshed by ``CustomerService.refresh_stats`` from
    completed sales; the order lifecycle never touches them.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_en: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    address_ar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Order history stats
    total_purchases: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_visit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    loyalty_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    @validates("total_purchases", "visit_count", "loyalty_points")
    def _validate_non_negative(self, key, value):
        return non_negative(key, value)
