"""Branch-local copy of user accounts.

Rows are owned by the head office directory and written only by the user
reconciliation job; ``id`` is the head-office identity.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from branchpos.db.base import Base, TimestampMixin


class BranchUser(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    full_name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preferred_language: Mapped[str] = mapped_column(String(5), default="en", nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="cashier", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
