"""
Permission API routes.

Provides access checks for the calling user and the procedure endpoint used
by the job-permission and user-exception editors.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.records.store import SqlRecordStore, get_record_store
from app.features.delegation.profile import DelegationProfile
from app.features.permissions.dependencies import (
    authorize_procedure_call,
    get_delegation_profile,
    get_resolution_service,
)
from app.features.permissions.procedures import procedures
from app.features.permissions.resolution import JOB_PERMISSIONS, USER_EXCEPTIONS, ResolutionService
from app.features.permissions.schemas import (
    EffectivePermissionsResponse,
    JobPermissionResponse,
    PermissionCheckResponse,
    ProcedureCallRequest,
    ProcedureCallResponse,
    UserExceptionResponse,
)
from app.features.permissions.scopes import SubjectContext
from app.features.services.routes import load_resource_tree
from app.features.services.tree import flatten
from app.features.users.dependencies import get_current_user, get_subject_context
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Resolution Routes
# ============================================================================

@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    resource_id: Annotated[str, Query(min_length=1)],
    subject: Annotated[SubjectContext, Depends(get_subject_context)],
    resolution: Annotated[ResolutionService, Depends(get_resolution_service)]
):
    """Check whether the calling user may access one resource."""
    return PermissionCheckResponse(
        resource_id=resource_id,
        is_allowed=resolution.resolve(subject, resource_id),
    )


@router.get("/effective", response_model=EffectivePermissionsResponse)
async def get_effective_permissions(
    subject: Annotated[SubjectContext, Depends(get_subject_context)],
    resolution: Annotated[ResolutionService, Depends(get_resolution_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Resolved permission map of the calling user."""
    catalog_ids: list[str] = []
    if subject.is_super_admin:
        tree = await load_resource_tree(db, config.DEFAULT_LANGUAGE)
        catalog_ids = [node.id for node in flatten(tree)]
    return EffectivePermissionsResponse(
        user_id=subject.user_id,
        permissions=resolution.effective_permissions(subject, catalog_ids),
    )


# ============================================================================
# Administration Routes
# ============================================================================

@router.post("/call/{name}", response_model=ProcedureCallResponse)
async def call_procedure(
    name: str,
    request: ProcedureCallRequest,
    profile: Annotated[DelegationProfile, Depends(get_delegation_profile)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)]
):
    """Run a named permission procedure on behalf of the caller."""
    await authorize_procedure_call(name, request.payload, profile, store)
    client = procedures.bind(store, actor_id=profile.actor_id)
    result = await client.call(name, request.payload)
    return ProcedureCallResponse(name=name, result=result)


@router.get("/jobs/{job_id}", response_model=list[JobPermissionResponse])
async def list_job_permissions(
    job_id: str,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    user: Annotated[User, Depends(get_current_user)]
):
    """List the permissions granted to a job."""
    return await store.query(JOB_PERMISSIONS, {"job_id": job_id})


@router.get("/users/{user_id}/exceptions", response_model=list[UserExceptionResponse])
async def list_user_exceptions(
    user_id: str,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    user: Annotated[User, Depends(get_current_user)]
):
    """List a user's permission exceptions."""
    return await store.query(USER_EXCEPTIONS, {"user_id": user_id})
