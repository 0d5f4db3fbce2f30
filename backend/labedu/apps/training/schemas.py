from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import (
    EnrollmentStatus,
    LessonContentType,
    ModuleStatus,
    ScheduleStatus,
    TrainingType,
)


# ---------------------------------------------------------------------------
# MODULES / LESSONS
# ---------------------------------------------------------------------------


class ModuleBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    short_description: Optional[str] = Field(default=None, max_length=512)
    objectives: Optional[str] = None
    training_type: TrainingType = TrainingType.TECNICO
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    workload_hours: Optional[float] = Field(default=None, ge=0)
    min_score_approval: int = Field(default=70, ge=0, le=100)
    requires_quiz: bool = False
    rdc_reference: Optional[str] = None
    pop_id: Optional[str] = None


class ModuleCreate(ModuleBase):
    pass


class ModuleUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    short_description: Optional[str] = Field(default=None, max_length=512)
    objectives: Optional[str] = None
    training_type: Optional[TrainingType] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    workload_hours: Optional[float] = Field(default=None, ge=0)
    min_score_approval: Optional[int] = Field(default=None, ge=0, le=100)
    requires_quiz: Optional[bool] = None
    rdc_reference: Optional[str] = None
    pop_id: Optional[str] = None


class ModuleRead(ModuleBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: ModuleStatus
    created_at: datetime
    updated_at: datetime


class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content_type: LessonContentType = LessonContentType.TEXT
    content_url: Optional[str] = None
    description: Optional[str] = None
    order_index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Leave empty to append after the last lesson.",
    )


class LessonRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    module_id: str
    title: str
    content_type: LessonContentType
    content_url: Optional[str]
    description: Optional[str]
    order_index: int


# ---------------------------------------------------------------------------
# REQUIREMENT MATRIX
# ---------------------------------------------------------------------------


class RequirementSet(BaseModel):
    module_id: str
    is_mandatory: bool = True
    # Free text on purpose: unknown values fall back to ANNUAL.
    frequency: str = "ANNUAL"


class RequirementBulkUpsert(BaseModel):
    rows: List[RequirementSet]


class RequirementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role_id: str
    module_id: str
    is_mandatory: bool
    recertification_period_months: Optional[int]
    frequency: Optional[str] = None


# ---------------------------------------------------------------------------
# SCHEDULES / ENROLLMENTS
# ---------------------------------------------------------------------------


class ScheduleCreate(BaseModel):
    module_id: str
    unit_id: Optional[str] = None
    instructor_id: Optional[str] = None
    start_date: date
    end_date: date


class ScheduleStatusUpdate(BaseModel):
    status: ScheduleStatus


class ScheduleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    module_id: str
    unit_id: Optional[str]
    instructor_id: Optional[str]
    start_date: date
    end_date: date
    status: ScheduleStatus


class EnrollmentCreate(BaseModel):
    schedule_id: str
    employee_id: Optional[str] = Field(
        default=None,
        description="Defaults to the caller.",
    )


class ProgressUpdate(BaseModel):
    progress_pct: int


class CompletionCreate(BaseModel):
    final_score: float
    completed_at: Optional[datetime] = None


class EnrollmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    schedule_id: str
    employee_id: str
    status: EnrollmentStatus
    progress_pct: int
    final_score: Optional[float]
    completed_at: Optional[datetime]
    created_at: datetime


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


class CertificateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    enrollment_id: str
    employee_id: str
    verification_code: str
    issued_at: datetime
    pdf_storage_path: Optional[str]


class CertificateVerification(BaseModel):
    valid: bool
    verification_code: str
    employee_name: Optional[str] = None
    module_title: Optional[str] = None
    completed_at: Optional[datetime] = None
    final_score: Optional[float] = None
    issued_at: Optional[datetime] = None
    match_count: int = 0


# ---------------------------------------------------------------------------
# COMPLIANCE VIEW
# ---------------------------------------------------------------------------


class ComplianceStatus(str, enum.Enum):
    OK = "OK"
    WARNING = "WARNING"
    EXPIRED = "EXPIRED"
    MISSING = "MISSING"


class ComplianceViewItem(BaseModel):
    """
    Derived standing of one employee against one required module.

    next_due_date is None only for one-time modules that are already
    completed; such items are permanently OK.
    """

    employee_id: str
    employee_name: str
    role_id: str
    role_name: Optional[str] = None
    is_critical_function: bool = False
    module_id: str
    module_title: str
    recertification_period_months: Optional[int]
    last_completion_date: Optional[date]
    next_due_date: Optional[date]
    days_remaining: Optional[int]
    status: ComplianceStatus

    @model_validator(mode="after")
    def _due_fields_agree(self) -> "ComplianceViewItem":
        if (self.next_due_date is None) != (self.days_remaining is None):
            raise ValueError("next_due_date and days_remaining must both be set or both be empty")
        return self


class ComplianceSummary(BaseModel):
    employees: int
    items: int
    by_status: Dict[ComplianceStatus, int]
