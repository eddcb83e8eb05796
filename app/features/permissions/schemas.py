"""
Pydantic schemas for permission checks and administration.
"""
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.features.permissions.models import ExceptionState


# ============================================================================
# Resolution Schemas
# ============================================================================

class PermissionCheckResponse(BaseModel):
    """Schema for a single access decision."""
    resource_id: str
    is_allowed: bool


class EffectivePermissionsResponse(BaseModel):
    """Schema for the caller's resolved permission map."""
    user_id: str
    permissions: dict[str, bool] = Field(default_factory=dict)


# ============================================================================
# Administration Schemas
# ============================================================================

class ProcedureCallRequest(BaseModel):
    """Payload forwarded to a named procedure."""
    payload: dict[str, Any] = Field(default_factory=dict)


class ProcedureCallResponse(BaseModel):
    """Result of a named procedure."""
    name: str
    result: Any = None


class JobPermissionResponse(BaseModel):
    """Schema for a job permission record."""
    id: str
    job_id: str
    resource_id: str
    scope_company_id: str | None = None
    scope_section_id: str | None = None
    created_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserExceptionResponse(BaseModel):
    """Schema for a user exception record."""
    id: str
    user_id: str
    resource_id: str
    is_allowed: bool
    created_by: str | None = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def state(self) -> ExceptionState:
        return ExceptionState.from_allowed(self.is_allowed)
