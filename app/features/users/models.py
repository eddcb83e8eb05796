"""
User model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordMixin, generate_ulid


class User(Base, TimestampMixin, RecordMixin):
    """
    Employee linked to an Appwrite account.

    The placement columns (job, company, sector, department, section) are
    the identity context every permission check is evaluated against.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Appwrite user ID (for linking with Appwrite authentication)
    appwrite_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Placement
    job_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    company_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    sector_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    department_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    section_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, job_id={self.job_id})>"
