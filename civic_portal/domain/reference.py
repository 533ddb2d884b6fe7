"""Schemas for wards, departments, categories and SLA policy."""
from typing import Optional

from pydantic import BaseModel, Field

from civic_portal.models import ComplaintPriority


class WardCreate(BaseModel):
    ward_number: int = Field(ge=1)
    name: str = Field(min_length=2, max_length=255)
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    office_address: Optional[str] = None
    is_active: bool = True


class WardUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    office_address: Optional[str] = None
    is_active: Optional[bool] = None


class WardOut(WardCreate):
    id: str

    class Config:
        from_attributes = True


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    code: str = Field(min_length=2, max_length=32)
    description: Optional[str] = None
    is_active: bool = True


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class DepartmentOut(DepartmentCreate):
    id: str

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: Optional[str] = None
    default_department_id: Optional[str] = None
    default_sla_days: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = None
    default_department_id: Optional[str] = None
    default_sla_days: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class CategoryOut(CategoryCreate):
    id: str

    class Config:
        from_attributes = True


class SlaPolicyUpdate(BaseModel):
    resolution_hours: int = Field(ge=1, le=720)


class SlaPolicyOut(BaseModel):
    priority: ComplaintPriority
    resolution_hours: int
    is_default: bool
