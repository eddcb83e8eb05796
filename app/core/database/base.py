"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from typing import Any
from sqlalchemy import DateTime, func, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return ulid.ulid()


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from app.core.database.base import Base
        
        class Job(Base):
            __tablename__ = "jobs"
            
            id: Mapped[str] = mapped_column(String(26), primary_key=True)
            name_en: Mapped[str] = mapped_column(String(255))
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    
    Usage:
        class Job(Base, TimestampMixin):
            __tablename__ = "jobs"
            id: Mapped[str] = mapped_column(String(26), primary_key=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class RecordMixin:
    """
    Mixin for models exposed through the record store.

    `to_record()` returns the column values as a plain dict, which is the
    shape carried by change-feed events. Timestamps are left out so that two
    snapshots of the same rows compare equal.
    """
    _record_excluded = frozenset({"created_at", "updated_at"})

    def to_record(self) -> dict[str, Any]:
        mapper = inspect(type(self))
        return {
            column.key: getattr(self, column.key)
            for column in mapper.column_attrs
            if column.key not in self._record_excluded
        }
