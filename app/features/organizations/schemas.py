"""
Pydantic schemas for organization structure and job distribution.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrgEntityResponse(BaseModel):
    """Company, sector, department or section."""
    id: str
    name_ar: str
    name_en: str
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class JobResponse(BaseModel):
    """Schema for a job."""
    id: str
    name_ar: str
    name_en: str

    model_config = ConfigDict(from_attributes=True)


class DistributionCreate(BaseModel):
    """Schema for deploying a job into a company or unit."""
    job_id: str = Field(..., min_length=1)
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None

    @model_validator(mode="after")
    def require_placement(self):
        if not any((self.company_id, self.sector_id, self.department_id, self.section_id)):
            raise ValueError("A distribution needs at least one of company, sector, department or section")
        return self


class DistributionResponse(BaseModel):
    """Schema for a distribution record."""
    id: str
    job_id: str
    company_id: str | None = None
    sector_id: str | None = None
    department_id: str | None = None
    section_id: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ValidScopesResponse(BaseModel):
    """Companies and sections a job may be scoped to."""
    job_id: str
    companies: list[str] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    global_only: bool = Field(..., description="True when the job has no active distribution")
