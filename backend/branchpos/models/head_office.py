"""Head office directory: branches and the central user list."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from branchpos.db.base import HeadOfficeBase, TimestampMixin


class Branch(HeadOfficeBase, TimestampMixin):
    """A restaurant branch and the location of its store."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    database_url: Mapped[str] = mapped_column(String(500), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), default=Decimal("0.15"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    users: Mapped[List["HeadOfficeUser"]] = relationship("HeadOfficeUser", back_populates="branch")


class HeadOfficeUser(HeadOfficeBase, TimestampMixin):
    """Authoritative user record, copied down to its branch."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey("branches.id"), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    full_name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preferred_language: Mapped[str] = mapped_column(String(5), default="en", nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="cashier", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    branch: Mapped["Branch"] = relationship("Branch", back_populates="users")
