"""
Resource catalog models: services, their pages (sub-services) and their
actions (sub-sub-services).

Raw ids are the catalog's own identifiers (usually numeric strings); the
composite resource ids used by grants are built from them, see identifiers.py.
"""
from sqlalchemy import String, Boolean, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordMixin, generate_ulid


class Service(Base, TimestampMixin, RecordMixin):
    """
    Top-level application service (a card on the home screen).
    
    Attributes:
        id: Raw catalog id, e.g. "5" for resource "s:5"
        label_ar / label_en: Bilingual display labels
        icon: Optional icon name used by the front end
        is_active: Inactive services stay in the catalog but are hidden
    """
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    label_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    label_en: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, label_en={self.label_en!r})>"


class SubService(Base, TimestampMixin, RecordMixin):
    """A page inside a service."""
    __tablename__ = "sub_services"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    service_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    label_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    label_en: Mapped[str] = mapped_column(String(255), nullable=False)
    page_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<SubService(id={self.id}, service_id={self.service_id}, label_en={self.label_en!r})>"


class SubSubService(Base, TimestampMixin, RecordMixin):
    """An action inside a service (optionally attached to one of its pages)."""
    __tablename__ = "sub_sub_services"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    service_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sub_service_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("sub_services.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    label_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    label_en: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<SubSubService(id={self.id}, service_id={self.service_id}, label_en={self.label_en!r})>"
