"""SQLAlchemy declarative bases and common column mixins."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for branch-store models."""

    pass


class HeadOfficeBase(DeclarativeBase):
    """Base class for head-office models (separate metadata, separate store)."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    Models using this mixin gain a ``version`` column that starts at 1
    and is incremented on every state change.  Writers that must
    not race compare it in the WHERE clause of a conditional UPDATE.
    """

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)

    def increment_version(self) -> None:
        self.version += 1


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class IntEnumType(TypeDecorator):
    """Persist an IntEnum as its integer code and read it back as the enum.

    Used where the stored code set is part of the external contract and
    evolves through data migrations (see the delivery status revisions).
    """

    impl = Integer
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        self.enum_class = enum_class
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        return None if value is None else int(value)

    def process_result_value(self, value, dialect):
        return None if value is None else self.enum_class(value)
