"""
Delegation records.

Two tables back the four delegation managers:
- delegation_resources: extra resources granted to a job or user
- delegation_scopes: rules letting a job or user administer other jobs/users

Both carry a `kind`. Access delegation extends what the owner may use;
Control delegation extends what the owner may administer.
"""
import enum

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordMixin, generate_ulid


ALL_JOBS = "ALL"


class DelegationKind(str, enum.Enum):
    ACCESS = "access"
    CONTROL = "control"


class OwnerType(str, enum.Enum):
    JOB = "job"
    USER = "user"


class ResourceGrant(Base, TimestampMixin, RecordMixin):
    """
    One resource delegated to a job or user, with an access scope.

    Additive to the owner's native grants; never replaces them.
    """
    __tablename__ = "delegation_resources"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    owner_type: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(String(26), nullable=True)

    scope_company_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    scope_section_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ResourceGrant(id={self.id}, kind={self.kind}, owner={self.owner_type}:{self.owner_id}, "
            f"resource_id={self.resource_id})>"
        )


class DelegationRule(Base, TimestampMixin, RecordMixin):
    """
    "The owner may administer target_job_id (or target_user_id) within scope."

    target_job_id may be ALL_JOBS. Rules are not deduplicated.
    """
    __tablename__ = "delegation_scopes"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    owner_type: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    target_job_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    target_user_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(26), nullable=True)

    scope_company_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    scope_sector_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    scope_department_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    scope_section_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    restricted_to_company: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        target = self.target_user_id or self.target_job_id
        return f"<DelegationRule(id={self.id}, kind={self.kind}, owner={self.owner_type}:{self.owner_id}, target={target})>"
