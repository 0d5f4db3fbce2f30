from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...database import get_read_db, get_write_db
from ...security import get_current_employee, is_admin, require_admin, require_system_roles
from ..organization import models as org_models
from ..organization import schemas as org_schemas
from . import catalog, certificates, compliance, enrollment, matrix
from . import models as training_models
from . import schemas as training_schemas

router = APIRouter(prefix="/training", tags=["training"])

_require_manager = require_system_roles(org_models.SystemRole.UNIT_MANAGER)
_require_scheduler = require_system_roles(
    org_models.SystemRole.UNIT_MANAGER,
    org_models.SystemRole.INSTRUCTOR,
)

# Roles allowed to record a completion date other than "now".
_COMPLETION_RECORDERS = frozenset(
    {
        org_models.SystemRole.ADMIN,
        org_models.SystemRole.INSTRUCTOR,
        org_models.SystemRole.UNIT_MANAGER,
    }
)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _ensure_self_or_admin(current: org_models.Employee, employee_id: str) -> None:
    """
    Non-admin employees may only act on their own enrollments.
    """
    if is_admin(current) or current.id == employee_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only change your own enrollments.",
    )


def _scoped_unit(current: org_models.Employee, unit_id: Optional[str]) -> Optional[str]:
    # Unit managers are pinned to their own unit.
    if is_admin(current):
        return unit_id
    return current.unit_id


def _requirement_read(row: training_models.TrainingRequirement) -> training_schemas.RequirementRead:
    data = training_schemas.RequirementRead.model_validate(row)
    data.frequency = (
        matrix.frequency_from_months(row.recertification_period_months).value
        if row.is_mandatory
        else None
    )
    return data


# ---------------------------------------------------------------------------
# MODULES / LESSONS
# ---------------------------------------------------------------------------


@router.get("/modules", response_model=List[training_schemas.ModuleRead])
def list_modules(
    status_filter: Optional[training_models.ModuleStatus] = None,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return catalog.list_modules(db, status=status_filter)


@router.post(
    "/modules",
    response_model=training_schemas.ModuleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_module(
    payload: training_schemas.ModuleCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    module = catalog.create_module(db, data=payload.model_dump())
    db.commit()
    db.refresh(module)
    return module


@router.patch("/modules/{module_id}", response_model=training_schemas.ModuleRead)
def update_module(
    module_id: str,
    payload: training_schemas.ModuleUpdate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    module = catalog.update_module(
        db,
        module_id=module_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(module)
    return module


@router.post("/modules/{module_id}/publish", response_model=training_schemas.ModuleRead)
def publish_module(
    module_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    module = catalog.publish_module(db, module_id=module_id)
    db.commit()
    db.refresh(module)
    return module


@router.post("/modules/{module_id}/unpublish", response_model=training_schemas.ModuleRead)
def unpublish_module(
    module_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    module = catalog.set_module_status(
        db,
        module_id=module_id,
        status=training_models.ModuleStatus.DRAFT,
    )
    db.commit()
    db.refresh(module)
    return module


@router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_module(
    module_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    catalog.delete_module(db, module_id=module_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/modules/{module_id}/lessons", response_model=List[training_schemas.LessonRead])
def list_lessons(
    module_id: str,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return catalog.list_lessons(db, module_id=module_id)


@router.post(
    "/modules/{module_id}/lessons",
    response_model=training_schemas.LessonRead,
    status_code=status.HTTP_201_CREATED,
)
def add_lesson(
    module_id: str,
    payload: training_schemas.LessonCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    lesson = catalog.add_lesson(db, module_id=module_id, **payload.model_dump())
    db.commit()
    db.refresh(lesson)
    return lesson


@router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lesson(
    lesson_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    catalog.delete_lesson(db, lesson_id=lesson_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# JOB ROLES / REQUIREMENT MATRIX
# ---------------------------------------------------------------------------


@router.get("/roles", response_model=List[org_schemas.JobRoleRead])
def list_roles(
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return matrix.list_roles(db)


@router.post(
    "/roles",
    response_model=org_schemas.JobRoleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_role(
    payload: org_schemas.JobRoleCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    role = matrix.create_role(db, **payload.model_dump())
    db.commit()
    db.refresh(role)
    return role


@router.patch("/roles/{role_id}", response_model=org_schemas.JobRoleRead)
def update_role(
    role_id: str,
    payload: org_schemas.JobRoleUpdate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    role = matrix.update_role(db, role_id=role_id, changes=payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(role)
    return role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    matrix.remove_role(db, role_id=role_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/matrix", response_model=List[training_schemas.RequirementRead])
def list_matrix(
    role_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return [_requirement_read(row) for row in matrix.list_matrix(db, role_id=role_id)]


@router.put("/matrix/{role_id}", response_model=List[training_schemas.RequirementRead])
def bulk_upsert_matrix(
    role_id: str,
    payload: training_schemas.RequirementBulkUpsert,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    rows = matrix.bulk_upsert(
        db,
        role_id=role_id,
        rows=[row.model_dump() for row in payload.rows],
    )
    db.commit()
    return [_requirement_read(row) for row in rows]


@router.put("/matrix/{role_id}/{module_id}", response_model=training_schemas.RequirementRead)
def set_requirement(
    role_id: str,
    module_id: str,
    payload: training_schemas.RequirementSet,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    if payload.module_id != module_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Module id in the body does not match the URL.",
        )
    row = matrix.set_requirement(
        db,
        role_id=role_id,
        module_id=module_id,
        is_mandatory=payload.is_mandatory,
        frequency=payload.frequency,
    )
    db.commit()
    return _requirement_read(row)


# ---------------------------------------------------------------------------
# SCHEDULES
# ---------------------------------------------------------------------------


@router.get("/schedules/upcoming", response_model=List[training_schemas.ScheduleRead])
def list_upcoming_schedules(
    unit_id: Optional[str] = None,
    limit: int = 5,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return enrollment.list_upcoming_schedules(db, unit_id=unit_id, limit=limit)


@router.post(
    "/schedules",
    response_model=training_schemas.ScheduleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule(
    payload: training_schemas.ScheduleCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(_require_scheduler),
):
    data = payload.model_dump()
    # Default to the caller's unit and the caller as instructor.
    data["unit_id"] = data["unit_id"] or current.unit_id
    data["instructor_id"] = data["instructor_id"] or current.id
    schedule = enrollment.create_schedule(db, **data)
    db.commit()
    db.refresh(schedule)
    return schedule


@router.patch("/schedules/{schedule_id}/status", response_model=training_schemas.ScheduleRead)
def update_schedule_status(
    schedule_id: str,
    payload: training_schemas.ScheduleStatusUpdate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(_require_scheduler),
):
    schedule = enrollment.update_schedule_status(
        db,
        schedule_id=schedule_id,
        status=payload.status,
    )
    db.commit()
    db.refresh(schedule)
    return schedule


# ---------------------------------------------------------------------------
# ENROLLMENTS
# ---------------------------------------------------------------------------


class AlertEnrollmentRequest(BaseModel):
    employee_id: str
    module_id: str


@router.get("/enrollments/me", response_model=List[training_schemas.EnrollmentRead])
def list_my_enrollments(
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return enrollment.list_employee_enrollments(db, employee_id=current.id)


@router.post(
    "/enrollments",
    response_model=training_schemas.EnrollmentRead,
    status_code=status.HTTP_201_CREATED,
)
def enroll(
    payload: training_schemas.EnrollmentCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    employee_id = payload.employee_id or current.id
    _ensure_self_or_admin(current, employee_id)
    row = enrollment.enroll(db, schedule_id=payload.schedule_id, employee_id=employee_id)
    db.commit()
    db.refresh(row)
    return row


@router.post(
    "/enrollments/from-alert",
    response_model=training_schemas.EnrollmentRead,
    status_code=status.HTTP_201_CREATED,
)
def enroll_from_alert(
    payload: AlertEnrollmentRequest,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(require_admin),
):
    row = enrollment.enroll_in_next_schedule(
        db,
        employee_id=payload.employee_id,
        module_id=payload.module_id,
    )
    db.commit()
    db.refresh(row)
    return row


@router.patch(
    "/enrollments/{enrollment_id}/progress",
    response_model=training_schemas.EnrollmentRead,
)
def update_progress(
    enrollment_id: str,
    payload: training_schemas.ProgressUpdate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    row = enrollment.get_enrollment(db, enrollment_id)
    _ensure_self_or_admin(current, row.employee_id)
    row = enrollment.update_progress(
        db,
        enrollment_id=enrollment_id,
        progress_pct=payload.progress_pct,
    )
    db.commit()
    db.refresh(row)
    return row


@router.post(
    "/enrollments/{enrollment_id}/complete",
    response_model=training_schemas.EnrollmentRead,
)
def record_completion(
    enrollment_id: str,
    payload: training_schemas.CompletionCreate,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    row = enrollment.get_enrollment(db, enrollment_id)
    _ensure_self_or_admin(current, row.employee_id)
    # Self-service completions are stamped with the server time.
    completed_at = payload.completed_at if current.system_role in _COMPLETION_RECORDERS else None
    row = enrollment.record_completion(
        db,
        enrollment_id=enrollment_id,
        final_score=payload.final_score,
        completed_at=completed_at,
    )
    db.commit()
    db.refresh(row)
    return row


@router.post(
    "/enrollments/{enrollment_id}/cancel",
    response_model=training_schemas.EnrollmentRead,
)
def cancel_enrollment(
    enrollment_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    row = enrollment.get_enrollment(db, enrollment_id)
    _ensure_self_or_admin(current, row.employee_id)
    row = enrollment.cancel_enrollment(db, enrollment_id=enrollment_id)
    db.commit()
    db.refresh(row)
    return row


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


@router.post(
    "/enrollments/{enrollment_id}/certificate",
    response_model=training_schemas.CertificateRead,
)
def issue_certificate(
    enrollment_id: str,
    db: Session = Depends(get_write_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    row = enrollment.get_enrollment(db, enrollment_id)
    _ensure_self_or_admin(current, row.employee_id)
    certificate = certificates.issue_certificate(db, enrollment_id=enrollment_id)
    db.commit()
    db.refresh(certificate)
    return certificate


@router.get(
    "/certificates/verify/{code:path}",
    response_model=training_schemas.CertificateVerification,
)
def verify_certificate(code: str, db: Session = Depends(get_read_db)):
    return certificates.verify_certificate(db, code)


# ---------------------------------------------------------------------------
# COMPLIANCE
# ---------------------------------------------------------------------------


@router.get("/compliance/me", response_model=List[training_schemas.ComplianceViewItem])
def my_compliance(
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(get_current_employee),
):
    return compliance.evaluate_employee(db, current.id)


@router.get(
    "/compliance/employees/{employee_id}",
    response_model=List[training_schemas.ComplianceViewItem],
)
def employee_compliance(
    employee_id: str,
    on_date: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(_require_manager),
):
    if not is_admin(current):
        target = db.get(org_models.Employee, employee_id)
        if target is not None and target.unit_id != current.unit_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Employee belongs to another unit.",
            )
    return compliance.evaluate_employee(db, employee_id, today=on_date)


@router.get("/compliance/alerts", response_model=List[training_schemas.ComplianceViewItem])
def compliance_alerts(
    unit_id: Optional[str] = None,
    limit: int = 10,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(_require_manager),
):
    return compliance.list_alerts(db, unit_id=_scoped_unit(current, unit_id), limit=limit)


@router.get("/compliance/summary", response_model=training_schemas.ComplianceSummary)
def compliance_summary(
    unit_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(_require_manager),
):
    return compliance.summarize(db, unit_id=_scoped_unit(current, unit_id))
