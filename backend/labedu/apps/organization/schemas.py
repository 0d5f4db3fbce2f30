from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import SystemRole


# ---------------------------------------------------------------------------
# UNITS / SECTORS
# ---------------------------------------------------------------------------


class UnitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: Optional[str] = None
    technical_manager: Optional[str] = None


class UnitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    address: Optional[str] = None
    technical_manager: Optional[str] = None


class UnitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: Optional[str]
    technical_manager: Optional[str]
    created_at: datetime


class SectorCreate(BaseModel):
    unit_id: str
    name: str = Field(min_length=1, max_length=255)


class SectorUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class SectorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    unit_id: str
    name: str


# ---------------------------------------------------------------------------
# JOB ROLES
# ---------------------------------------------------------------------------


class JobRoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    is_critical_function: bool = False


class JobRoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_critical_function: Optional[bool] = None


class JobRoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_critical_function: bool


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


class EmployeeCreate(BaseModel):
    id: str = Field(
        min_length=1,
        max_length=36,
        description="Identity provider account id for this person.",
    )
    full_name: str = Field(min_length=1, max_length=255)
    national_id: str = Field(min_length=1, max_length=32)
    email: Optional[EmailStr] = None
    unit_id: Optional[str] = None
    sector_id: Optional[str] = None
    role_id: Optional[str] = None
    system_role: SystemRole = SystemRole.COLLABORATOR
    admission_date: date
    must_change_password: bool = True


class EmployeeUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    national_id: Optional[str] = Field(default=None, min_length=1, max_length=32)
    email: Optional[EmailStr] = None
    unit_id: Optional[str] = None
    sector_id: Optional[str] = None
    role_id: Optional[str] = None
    system_role: Optional[SystemRole] = None
    admission_date: Optional[date] = None
    must_change_password: Optional[bool] = None
    is_active: Optional[bool] = None


class EmployeeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    national_id: str
    email: Optional[str]
    unit_id: Optional[str]
    sector_id: Optional[str]
    role_id: Optional[str]
    system_role: SystemRole
    admission_date: date
    is_active: bool
    must_change_password: bool
    created_at: datetime
    updated_at: datetime
