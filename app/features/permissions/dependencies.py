"""
Permission checking dependencies.

Implements:
- Access to the process-wide resolution service
- FastAPI dependencies for route protection
- Authorization of elevated-trust procedure calls
"""
from typing import Annotated, Any
from fastapi import Depends, HTTPException, Request, status

from app.core.records.store import SqlRecordStore, get_record_store
from app.features.delegation.models import DelegationKind
from app.features.delegation.profile import DelegationProfile, ManagedTarget
from app.features.permissions.resolution import ResolutionService
from app.features.permissions.scopes import SubjectContext
from app.features.users.dependencies import get_subject_context
from app.utils import get_logger


log = get_logger(__name__)


def get_resolution_service(request: Request) -> ResolutionService:
    """FastAPI dependency: the process-wide resolution service."""
    return request.app.state.resolution


async def get_delegation_profile(
    subject: Annotated[SubjectContext, Depends(get_subject_context)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)]
) -> DelegationProfile:
    """Delegation profile of the calling user."""
    return await DelegationProfile.load(store, subject)


def require_permission(resource_id: str):
    """
    FastAPI dependency to require access to one catalog resource.

    Usage:
        @router.get("/reports")
        async def get_reports(
            subject: SubjectContext = Depends(require_permission("ss:12"))
        ):
            pass

    Args:
        resource_id: Composite resource id ("s:5", "ss:12", "sss:3")

    Returns:
        Dependency function that returns the caller's context if allowed

    Raises:
        HTTPException: 403 if the caller is denied
    """
    async def permission_dependency(
        subject: Annotated[SubjectContext, Depends(get_subject_context)],
        resolution: Annotated[ResolutionService, Depends(get_resolution_service)]
    ) -> SubjectContext:
        if not resolution.resolve(subject, resource_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {resource_id}"
            )
        return subject

    return permission_dependency


def _requested_resources(name: str, payload: dict[str, Any]) -> list[str]:
    if name == "manageJobPermissions":
        entries = list(payload.get("to_add") or [])
        return [e.get("resource_id") if isinstance(e, dict) else e for e in entries]
    if name == "manageUserPermissions":
        return [item.get("resource_id") for item in payload.get("permissions") or []]
    return []


async def authorize_procedure_call(
    name: str,
    payload: dict[str, Any],
    profile: DelegationProfile,
    store: SqlRecordStore
) -> None:
    """
    Check that the caller may run a procedure against its target.

    The caller needs access authority over the target job or user, and
    every resource being granted must be one the caller may hand out.

    Raises:
        HTTPException: 403 if any check fails
    """
    if profile.is_super_admin:
        return

    target: ManagedTarget | None = None
    if name == "manageJobPermissions":
        target = ManagedTarget(job_id=payload.get("job_id"))
    elif name == "manageUserPermissions":
        users = await store.query("users", {"id": str(payload.get("user_id"))})
        if users:
            target = ManagedTarget.of_user(users[0])

    if target is not None and not profile.can_manage(DelegationKind.ACCESS, target):
        log.info(f"{profile.actor_id} may not run {name} on {target}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You may not manage this job or user"
        )

    for resource_id in _requested_resources(name, payload):
        if resource_id and not profile.can_grant_resource(resource_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You may not grant {resource_id}"
            )
