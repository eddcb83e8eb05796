"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: str | None = Field(None, max_length=500)


class UserPlacement(BaseModel):
    """Job and organizational placement of a user."""
    job_id: str | None = None
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None


class UserResponse(UserBase, UserPlacement):
    """Schema for user responses."""
    id: str
    avatar_url: str | None = None
    is_active: bool
    is_super_admin: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    avatar_url: str | None = None
    job_id: str | None = None

    model_config = {"from_attributes": True}
