"""Physical dining tables and their occupancy."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from branchpos.db.base import Base, TimestampMixin, VersionMixin
from branchpos.models.validators import positive


class TableStatus(str, Enum):
    """Occupancy status of a table."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class Table(Base, TimestampMixin, VersionMixin):
    """Restaurant table.

    ``status == OCCUPIED`` exactly when ``current_sale_id`` is set. Only the
    order lifecycle service writes the occupancy columns.
    """

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    zone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Soft delete: the row stays for sales history, the table leaves service
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[TableStatus] = mapped_column(
        SQLEnum(TableStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=TableStatus.AVAILABLE,
        nullable=False,
    )
    # Plain column: sales.table_id already points the other way
    current_sale_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    current_guest_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    occupied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("capacity")
    def _validate_capacity(self, key, value):
        return positive(key, value)
