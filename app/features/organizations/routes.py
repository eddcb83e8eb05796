"""
Organization feature routes.

Organization structure is maintained elsewhere; these endpoints expose it
read-only, plus the job distribution that bounds delegable scopes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.records.store import SqlRecordStore, get_record_store
from app.features.users.models import User
from app.features.users.dependencies import get_current_user, get_current_super_admin
from app.features.organizations.models import Company, Section, Job
from app.features.organizations.distribution import DISTRIBUTION, valid_scopes_for
from app.features.organizations.schemas import (
    OrgEntityResponse,
    JobResponse,
    DistributionCreate,
    DistributionResponse,
    ValidScopesResponse,
)
from app.features.organizations.dependencies import get_job_by_id
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["organizations"])


@router.get("/companies", response_model=list[OrgEntityResponse])
async def list_companies(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    include_inactive: bool = False
):
    """List companies."""
    stmt = select(Company)
    if not include_inactive:
        stmt = stmt.where(Company.is_active == True)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/sections", response_model=list[OrgEntityResponse])
async def list_sections(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    include_inactive: bool = False
):
    """List sections."""
    stmt = select(Section)
    if not include_inactive:
        stmt = stmt.where(Section.is_active == True)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)]
):
    """List jobs."""
    result = await db.execute(select(Job).order_by(Job.name_en))
    return result.scalars().all()


@router.get("/jobs/{job_id}/distribution", response_model=list[DistributionResponse])
async def list_job_distribution(
    job: Annotated[Job, Depends(get_job_by_id)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    user: Annotated[User, Depends(get_current_user)]
):
    """List where a job is deployed."""
    return await store.query(DISTRIBUTION, {"job_id": job.id})


@router.get("/jobs/{job_id}/valid-scopes", response_model=ValidScopesResponse)
async def get_valid_scopes(
    job: Annotated[Job, Depends(get_job_by_id)],
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    user: Annotated[User, Depends(get_current_user)]
):
    """Companies and sections a job may be delegated into."""
    valid = await valid_scopes_for(store, job.id)
    return ValidScopesResponse(
        job_id=job.id,
        companies=sorted(valid.companies),
        sections=sorted(valid.sections),
        global_only=valid.is_empty,
    )


@router.post("/distribution", response_model=DistributionResponse, status_code=status.HTTP_201_CREATED)
async def add_distribution(
    data: DistributionCreate,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    admin: Annotated[User, Depends(get_current_super_admin)]
):
    """Deploy a job into a company or unit (super admin only)."""
    record_id = await store.create(DISTRIBUTION, data.model_dump())
    log.info(f"Job {data.job_id} distributed by {admin.id}")
    return (await store.query(DISTRIBUTION, {"id": record_id}))[0]


@router.delete("/distribution/{distribution_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_distribution(
    distribution_id: str,
    store: Annotated[SqlRecordStore, Depends(get_record_store)],
    admin: Annotated[User, Depends(get_current_super_admin)]
):
    """Remove a distribution record (super admin only)."""
    await store.delete(DISTRIBUTION, distribution_id)
