"""
Pydantic schemas for the resource catalog API.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from app.features.services.tree import ResourceNode


class ServiceResponse(BaseModel):
    """Schema for a catalog service."""
    id: str
    label_ar: str
    label_en: str
    icon: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResourceTreeResponse(BaseModel):
    """Schema for the assembled resource tree."""
    language: str
    services: list[ResourceNode] = Field(default_factory=list)
