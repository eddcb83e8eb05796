"""
Organization structure models.

Companies are split into sectors, departments and sections; jobs are role
definitions that get distributed into companies/sections. The structure
itself is administered elsewhere: this service reads it to bound the scopes
that can be delegated.
"""
from sqlalchemy import String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordMixin, generate_ulid


class Company(Base, TimestampMixin, RecordMixin):
    """A company of the group. Deactivated companies drop out of scope pickers."""
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name_en={self.name_en!r})>"


class Sector(Base, TimestampMixin, RecordMixin):
    __tablename__ = "sectors"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Sector(id={self.id}, name_en={self.name_en!r})>"


class Department(Base, TimestampMixin, RecordMixin):
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    sector_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("sectors.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name_en={self.name_en!r})>"


class Section(Base, TimestampMixin, RecordMixin):
    """Smallest organizational unit a grant can be scoped to."""
    __tablename__ = "sections"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    department_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Section(id={self.id}, name_en={self.name_en!r})>"


class Job(Base, TimestampMixin, RecordMixin):
    """A role definition carrying a baseline set of resource grants."""
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, name_en={self.name_en!r})>"


class JobDistribution(Base, TimestampMixin, RecordMixin):
    """
    Fact that a job is deployed into a company (and optionally a unit of it).

    Only consulted to bound delegable scopes; resolution never reads it.
    """
    __tablename__ = "job_distribution"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    job_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    company_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    sector_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    department_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    section_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "company_id", "sector_id", "department_id", "section_id",
                         name="uq_job_distribution_placement"),
    )

    def __repr__(self) -> str:
        return f"<JobDistribution(id={self.id}, job_id={self.job_id}, company_id={self.company_id}, section_id={self.section_id})>"
