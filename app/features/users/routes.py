"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.schemas import UserResponse, UserPublic, UserUpdate, UserPlacement
from app.features.users.dependencies import get_current_user, get_current_super_admin, get_user_by_id


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name
    if update_data.avatar_url is not None:
        user.avatar_url = update_data.avatar_url

    await db.commit()
    await db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserPublic)
async def get_user(
    user: Annotated[User, Depends(get_user_by_id)],
    current_user: Annotated[User, Depends(get_current_user)]
):
    """Get public user profile by ID."""
    return user


@router.get("/", response_model=list[UserPublic])
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    job_id: str | None = None,
    skip: int = 0,
    limit: int = 50
):
    """List active users, optionally only those holding a job."""
    stmt = select(User).where(User.is_active == True)
    if job_id:
        stmt = stmt.where(User.job_id == job_id)
    result = await db.execute(stmt.offset(skip).limit(limit))
    return result.scalars().all()


# Super-admin routes
@router.put("/{user_id}/placement", response_model=UserResponse)
async def set_user_placement(
    placement: UserPlacement,
    user: Annotated[User, Depends(get_user_by_id)],
    admin: Annotated[User, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a user's job and organizational placement (super admin only)."""
    for field, value in placement.model_dump().items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def deactivate_user(
    user: Annotated[User, Depends(get_user_by_id)],
    admin: Annotated[User, Depends(get_current_super_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a user account (super admin only)."""
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )

    user.is_active = False
    await db.commit()

    return {"message": "User deactivated successfully"}
