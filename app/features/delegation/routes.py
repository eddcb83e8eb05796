"""
Delegation API routes.

`{kind}` is "access" or "control". Resource grants live under
/{kind}/resources, delegation rules under /{kind}/scopes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status

from app.core.records.store import SqlRecordStore, get_record_store
from app.features.delegation.dependencies import DelegationGuard, get_delegation_guard
from app.features.delegation.managers import Owner, ResourceGrantManager, ScopeRuleManager
from app.features.delegation.models import DelegationKind, OwnerType
from app.features.delegation.profile import DelegationProfile
from app.features.delegation.schemas import (
    BatchSaveResponse,
    DelegationProfileResponse,
    ResourceBatchRequest,
    ResourceGrantCreate,
    ResourceGrantResponse,
    ResourceScopeReplace,
    RuleBatchRequest,
    RuleCreate,
    RuleResponse,
    RuleScopeReplace,
)
from app.features.permissions.dependencies import get_delegation_profile
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("/profile", response_model=DelegationProfileResponse)
async def get_profile(
    profile: Annotated[DelegationProfile, Depends(get_delegation_profile)]
):
    """What the caller may delegate, and to whom."""
    return profile.to_dict()


# ============================================================================
# Resource Grant Routes
# ============================================================================

@router.get("/{kind}/resources", response_model=list[ResourceGrantResponse])
async def list_resource_grants(
    kind: DelegationKind,
    owner_type: Annotated[OwnerType, Query()],
    owner_id: Annotated[str, Query(min_length=1)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """List resources delegated to a job or user."""
    return await ResourceGrantManager(store, kind).list_for(Owner(owner_type, owner_id))


@router.post("/{kind}/resources", response_model=ResourceGrantResponse, status_code=status.HTTP_201_CREATED)
async def grant_resource(
    kind: DelegationKind,
    data: ResourceGrantCreate,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Delegate one resource to a job or user."""
    owner = data.to_owner()
    scope = data.scope.to_scope()
    target = await guard.require_control(owner)
    guard.require_grantable([data.resource_id])
    await guard.require_offerable(target, [scope])

    manager = ResourceGrantManager(store, kind, guard.profile.actor_id)
    record_id = await manager.grant(owner, data.resource_id, scope)
    return (await store.query(manager.collection, {"id": record_id}))[0]


@router.put("/{kind}/resources/{resource_id}/scope", response_model=ResourceGrantResponse)
async def replace_resource_scope(
    kind: DelegationKind,
    resource_id: str,
    data: ResourceScopeReplace,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Change the scope of a delegated resource (revoke, then grant)."""
    owner = data.to_owner()
    scope = data.scope.to_scope()
    target = await guard.require_control(owner)
    await guard.require_offerable(target, [scope])

    manager = ResourceGrantManager(store, kind, guard.profile.actor_id)
    record_id = await manager.replace_scope(owner, resource_id, scope)
    return (await store.query(manager.collection, {"id": record_id}))[0]


@router.delete("/{kind}/resources/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_resource(
    kind: DelegationKind,
    record_id: str,
    owner_type: Annotated[OwnerType, Query()],
    owner_id: Annotated[str, Query(min_length=1)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Revoke one delegated resource."""
    owner = Owner(owner_type, owner_id)
    await guard.require_control(owner)
    await ResourceGrantManager(store, kind, guard.profile.actor_id).revoke(owner, record_id)


@router.post("/{kind}/resources/batch", response_model=BatchSaveResponse)
async def save_resource_batch(
    kind: DelegationKind,
    data: ResourceBatchRequest,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Apply an editor's baseline -> edited diff of delegated resources."""
    owner = data.to_owner()
    baseline = {key: entry.to_entry() for key, entry in data.baseline.items()}
    edited = {key: entry.to_entry() for key, entry in data.edited.items()}
    target = await guard.require_control(owner)
    changed = [key for key, entry in edited.items() if key not in baseline or baseline[key].value != entry.value]
    guard.require_grantable(changed)
    await guard.require_offerable(target, [edited[key].value for key in changed])

    manager = ResourceGrantManager(store, kind, guard.profile.actor_id)
    return BatchSaveResponse(created=await manager.save_batch(owner, baseline, edited))


# ============================================================================
# Delegation Rule Routes
# ============================================================================

@router.get("/{kind}/scopes", response_model=list[RuleResponse])
async def list_rules(
    kind: DelegationKind,
    owner_type: Annotated[OwnerType, Query()],
    owner_id: Annotated[str, Query(min_length=1)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """List delegation rules owned by a job or user."""
    return await ScopeRuleManager(store, kind).list_for(Owner(owner_type, owner_id))


@router.post("/{kind}/scopes", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def grant_rule(
    kind: DelegationKind,
    data: RuleCreate,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Add a delegation rule to a job or user."""
    owner = data.to_owner()
    rule = data.to_rule()
    target = await guard.require_control(owner)
    await guard.require_offerable(target, [rule.scope])

    manager = ScopeRuleManager(store, kind, guard.profile.actor_id)
    record_id = await manager.grant(owner, rule)
    return (await store.query(manager.collection, {"id": record_id}))[0]


@router.put("/{kind}/scopes/{record_id}/scope", response_model=RuleResponse)
async def replace_rule_scope(
    kind: DelegationKind,
    record_id: str,
    data: RuleScopeReplace,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Change the scope of a delegation rule (revoke, then grant)."""
    owner = data.to_owner()
    scope = data.scope.to_scope()
    target = await guard.require_control(owner)
    await guard.require_offerable(target, [scope])

    manager = ScopeRuleManager(store, kind, guard.profile.actor_id)
    new_id = await manager.replace_scope(owner, record_id, scope)
    return (await store.query(manager.collection, {"id": new_id}))[0]


@router.delete("/{kind}/scopes/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_rule(
    kind: DelegationKind,
    record_id: str,
    owner_type: Annotated[OwnerType, Query()],
    owner_id: Annotated[str, Query(min_length=1)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Revoke one delegation rule."""
    owner = Owner(owner_type, owner_id)
    await guard.require_control(owner)
    await ScopeRuleManager(store, kind, guard.profile.actor_id).revoke(owner, record_id)


@router.post("/{kind}/scopes/batch", response_model=BatchSaveResponse)
async def save_rule_batch(
    kind: DelegationKind,
    data: RuleBatchRequest,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    guard: Annotated[DelegationGuard, Depends(get_delegation_guard)]
):
    """Apply an editor's baseline -> edited diff of delegation rules."""
    owner = data.to_owner()
    baseline = {key: entry.to_entry() for key, entry in data.baseline.items()}
    edited = {key: entry.to_entry() for key, entry in data.edited.items()}
    target = await guard.require_control(owner)
    await guard.require_offerable(target, [entry.value.scope for entry in edited.values()])

    manager = ScopeRuleManager(store, kind, guard.profile.actor_id)
    return BatchSaveResponse(created=await manager.save_batch(owner, baseline, edited))
