"""
Native permission records.

This module holds the two record types that make up a subject's baseline:
- Job permissions: one record per (job, resource), optionally scoped
- User exceptions: per-user overrides of the job grant for one resource

Delegated grants live in app.features.delegation.models and are unioned in
at resolution time.
"""
import enum

from sqlalchemy import String, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordMixin, generate_ulid


class ExceptionState(str, enum.Enum):
    """
    Tri-state override of a job grant.

    INHERIT is never stored: it is the absence of a user_permissions record.
    """
    GRANTED = "granted"
    DENIED = "denied"
    INHERIT = "inherit"

    @classmethod
    def from_allowed(cls, is_allowed: bool | None) -> "ExceptionState":
        if is_allowed is None:
            return cls.INHERIT
        return cls.GRANTED if is_allowed else cls.DENIED


# ============================================================================
# Core Models
# ============================================================================

class JobPermission(Base, TimestampMixin, RecordMixin):
    """
    Grant of one resource to one job.

    Scope columns left NULL make the grant global; populated columns must
    all match the subject's current company/section.
    """
    __tablename__ = "job_permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    job_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by: Mapped[str | None] = mapped_column(String(26), nullable=True)

    scope_company_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    scope_section_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    __table_args__ = (
        UniqueConstraint("job_id", "resource_id", name="uq_job_permission"),
    )

    def __repr__(self) -> str:
        return f"<JobPermission(id={self.id}, job_id={self.job_id}, resource_id={self.resource_id})>"


class UserException(Base, TimestampMixin, RecordMixin):
    """Per-user override: is_allowed True grants, False denies."""
    __tablename__ = "user_permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    is_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(26), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "resource_id", name="uq_user_exception"),
    )

    @property
    def state(self) -> ExceptionState:
        return ExceptionState.from_allowed(self.is_allowed)

    def __repr__(self) -> str:
        return f"<UserException(id={self.id}, user_id={self.user_id}, resource_id={self.resource_id}, state={self.state.value})>"
