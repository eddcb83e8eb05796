"""
Organization-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.organizations.models import Job


async def get_job_by_id(
    job_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Job:
    """
    Get job by ID or raise 404.

    Args:
        job_id: Job ULID
        db: Database session

    Returns:
        Job model

    Raises:
        HTTPException: 404 if job not found
    """
    job = await db.get(Job, job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    return job
