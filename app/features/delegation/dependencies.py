"""
Delegation authorization helpers.

Writing delegation records for a job or user requires control authority
over that job or user.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status

from app.core.errors import NotFound
from app.core.records.store import RecordStore, SqlRecordStore, get_record_store
from app.features.delegation.managers import Owner
from app.features.delegation.models import DelegationKind, OwnerType
from app.features.delegation.profile import DelegationProfile, ManagedTarget
from app.features.organizations.distribution import ensure_scope_offerable
from app.features.permissions.dependencies import get_delegation_profile
from app.features.permissions.scopes import AccessScope, ControlScope
from app.utils import get_logger


log = get_logger(__name__)


async def target_of(store: RecordStore, owner: Owner) -> ManagedTarget:
    """
    Placement of a delegation owner.

    Raises:
        NotFound: if a user owner does not exist
    """
    if owner.type is OwnerType.JOB:
        return ManagedTarget(job_id=owner.id)
    users = await store.query("users", {"id": owner.id})
    if not users:
        raise NotFound("users", owner.id)
    return ManagedTarget.of_user(users[0])


class DelegationGuard:
    """
    Per-request authorization of delegation writes.

    Usage:
        guard: DelegationGuard = Depends(get_delegation_guard)
        target = await guard.require_control(owner)
    """

    def __init__(self, profile: DelegationProfile, store: SqlRecordStore):
        self.profile = profile
        self.store = store

    async def require_control(self, owner: Owner) -> ManagedTarget:
        target = await target_of(self.store, owner)
        if not self.profile.can_manage(DelegationKind.CONTROL, target):
            log.info(f"{self.profile.actor_id} may not delegate to {owner.type.value} {owner.id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You may not manage delegation for this job or user"
            )
        return target

    def require_grantable(self, resource_ids) -> None:
        for resource_id in resource_ids:
            if not self.profile.can_grant_resource(resource_id):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"You may not grant {resource_id}"
                )

    async def require_offerable(self, target: ManagedTarget, scopes: list[AccessScope | ControlScope]) -> None:
        for scope in scopes:
            await ensure_scope_offerable(self.store, target.job_id, scope)


async def get_delegation_guard(
    profile: Annotated[DelegationProfile, Depends(get_delegation_profile)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)]
) -> DelegationGuard:
    return DelegationGuard(profile, store)
