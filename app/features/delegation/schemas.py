"""
Pydantic schemas for the delegation editors.
"""
from typing import Any
from pydantic import BaseModel, ConfigDict, Field

from app.features.delegation.managers import Entry, Owner, ScopeRule
from app.features.delegation.models import OwnerType
from app.features.permissions.scopes import AccessScope, ControlScope


# ============================================================================
# Scope Schemas
# ============================================================================

class AccessScopeSchema(BaseModel):
    """Company/section restriction of a delegated resource; empty = global."""
    company_id: str | None = None
    section_id: str | None = None

    def to_scope(self) -> AccessScope:
        return AccessScope(self.company_id, self.section_id)


class ControlScopeSchema(BaseModel):
    """Where a delegation rule applies; empty = everywhere."""
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None
    restricted_to_grantor_company: bool = False

    def to_scope(self) -> ControlScope:
        return ControlScope(**self.model_dump())


class OwnerRef(BaseModel):
    """Job or user owning delegation records."""
    owner_type: OwnerType
    owner_id: str = Field(..., min_length=1)

    def to_owner(self) -> Owner:
        return Owner(self.owner_type, self.owner_id)


# ============================================================================
# Resource Grant Schemas
# ============================================================================

class ResourceGrantCreate(OwnerRef):
    resource_id: str = Field(..., min_length=1, description="Composite id such as 'ss:12'")
    scope: AccessScopeSchema = Field(default_factory=AccessScopeSchema)


class ResourceScopeReplace(OwnerRef):
    scope: AccessScopeSchema = Field(default_factory=AccessScopeSchema)


class ResourceGrantResponse(BaseModel):
    id: str
    kind: str
    owner_type: str
    owner_id: str
    resource_id: str
    scope_company_id: str | None = None
    scope_section_id: str | None = None
    created_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ResourceEntrySchema(BaseModel):
    record_id: str | None = None
    other_ids: list[str] = Field(default_factory=list, description="Further records granting the same resource")
    scope: AccessScopeSchema = Field(default_factory=AccessScopeSchema)

    def to_entry(self) -> Entry:
        return Entry(self.scope.to_scope(), self.record_id, tuple(self.other_ids))


class ResourceBatchRequest(OwnerRef):
    """Baseline and edited maps keyed by resource id."""
    baseline: dict[str, ResourceEntrySchema] = Field(default_factory=dict)
    edited: dict[str, ResourceEntrySchema] = Field(default_factory=dict)


# ============================================================================
# Delegation Rule Schemas
# ============================================================================

class RuleCreate(OwnerRef):
    target_job_id: str | None = Field(None, description="Job id, or 'ALL' for every job")
    target_user_id: str | None = None
    scope: ControlScopeSchema = Field(default_factory=ControlScopeSchema)

    def to_rule(self) -> ScopeRule:
        return ScopeRule(self.target_job_id, self.target_user_id, self.scope.to_scope())


class RuleScopeReplace(OwnerRef):
    scope: ControlScopeSchema = Field(default_factory=ControlScopeSchema)


class RuleResponse(BaseModel):
    id: str
    kind: str
    owner_type: str
    owner_id: str
    target_job_id: str | None = None
    target_user_id: str | None = None
    scope_company_id: str | None = None
    scope_sector_id: str | None = None
    scope_department_id: str | None = None
    scope_section_id: str | None = None
    restricted_to_company: bool = False
    created_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RuleEntrySchema(BaseModel):
    record_id: str | None = None
    target_job_id: str | None = None
    target_user_id: str | None = None
    scope: ControlScopeSchema = Field(default_factory=ControlScopeSchema)

    def to_entry(self) -> Entry:
        rule = ScopeRule(self.target_job_id, self.target_user_id, self.scope.to_scope())
        return Entry(rule, self.record_id)


class RuleBatchRequest(OwnerRef):
    """Baseline and edited maps keyed by rule id (or a client key for new rules)."""
    baseline: dict[str, RuleEntrySchema] = Field(default_factory=dict)
    edited: dict[str, RuleEntrySchema] = Field(default_factory=dict)


# ============================================================================
# Shared Responses
# ============================================================================

class BatchSaveResponse(BaseModel):
    created: dict[str, str] = Field(default_factory=dict, description="Key -> new record id")


class DelegationProfileResponse(BaseModel):
    is_super_admin: bool
    actor_company_id: str | None = None
    access_rules: list[dict[str, Any]] = Field(default_factory=list)
    access_exceptions: list[str] = Field(default_factory=list)
    control_rules: list[dict[str, Any]] = Field(default_factory=list)
    control_exceptions: list[str] = Field(default_factory=list)
    allowed_resources: list[str] = Field(default_factory=list)
