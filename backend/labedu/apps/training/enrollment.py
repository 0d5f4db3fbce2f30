"""
Schedules and enrollments.

Lifecycle rules:
- only PUBLISHED modules can be scheduled, and end_date >= start_date
- enroll() is idempotent per (schedule, employee); a cancelled enrollment
  is reactivated instead of duplicated
- completed_at is set exactly when status becomes COMPLETED and never lies
  in the future
- scores and progress outside 0..100 are rejected, never clamped
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, FrozenSet, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import ServiceError, ErrorKind, conflict, not_found, validation_error
from ...utils.dates import as_naive_utc, utcnow
from ..organization import models as org_models
from . import models

logger = logging.getLogger(__name__)

ScheduleStatus = models.ScheduleStatus
EnrollmentStatus = models.EnrollmentStatus

_SCHEDULE_TRANSITIONS: Dict[ScheduleStatus, FrozenSet[ScheduleStatus]] = {
    ScheduleStatus.PLANNED: frozenset(
        {ScheduleStatus.ACTIVE, ScheduleStatus.FINISHED, ScheduleStatus.CANCELLED}
    ),
    ScheduleStatus.ACTIVE: frozenset({ScheduleStatus.FINISHED, ScheduleStatus.CANCELLED}),
    ScheduleStatus.FINISHED: frozenset(),
    ScheduleStatus.CANCELLED: frozenset(),
}

_CLOSED_SCHEDULE_STATUSES = (ScheduleStatus.FINISHED, ScheduleStatus.CANCELLED)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _check_percentage(field_name: str, value, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise validation_error(field_name, f"{label} must be a number between 0 and 100.")
    if not 0 <= value <= 100:
        raise validation_error(field_name, f"{label} must be between 0 and 100 (got {value}).")


def get_schedule(db: Session, schedule_id: str) -> models.TrainingSchedule:
    schedule = db.get(models.TrainingSchedule, schedule_id)
    if schedule is None:
        raise not_found("Schedule", schedule_id)
    return schedule


def get_enrollment(db: Session, enrollment_id: str) -> models.Enrollment:
    enrollment = db.get(models.Enrollment, enrollment_id)
    if enrollment is None:
        raise not_found("Enrollment", enrollment_id)
    return enrollment


def _find_enrollment(
    db: Session,
    schedule_id: str,
    employee_id: str,
) -> Optional[models.Enrollment]:
    return (
        db.query(models.Enrollment)
        .filter(
            models.Enrollment.schedule_id == schedule_id,
            models.Enrollment.employee_id == employee_id,
        )
        .first()
    )


# ---------------------------------------------------------------------------
# SCHEDULES
# ---------------------------------------------------------------------------


def create_schedule(
    db: Session,
    *,
    module_id: str,
    start_date: date,
    end_date: date,
    unit_id: Optional[str] = None,
    instructor_id: Optional[str] = None,
) -> models.TrainingSchedule:
    if start_date is None:
        raise validation_error("start_date", "Start date is required.")
    if end_date is None:
        raise validation_error("end_date", "End date is required.")
    if end_date < start_date:
        raise validation_error("end_date", "End date cannot be before the start date.")

    module = db.get(models.TrainingModule, module_id)
    if module is None:
        raise not_found("Training module", module_id)
    if not module.is_published:
        raise validation_error(
            "module_id",
            f"Module '{module.title}' is a draft and cannot be scheduled.",
            code="MODULE_NOT_PUBLISHED",
        )

    if unit_id and db.get(org_models.Unit, unit_id) is None:
        raise not_found("Unit", unit_id)
    if instructor_id:
        instructor = db.get(org_models.Employee, instructor_id)
        if instructor is None:
            raise not_found("Employee", instructor_id)
        if not instructor.is_active:
            raise validation_error("instructor_id", "The selected instructor is inactive.")

    schedule = models.TrainingSchedule(
        module_id=module_id,
        unit_id=unit_id,
        instructor_id=instructor_id,
        start_date=start_date,
        end_date=end_date,
        status=ScheduleStatus.PLANNED,
    )
    db.add(schedule)
    db.flush()
    return schedule


def update_schedule_status(
    db: Session,
    *,
    schedule_id: str,
    status: ScheduleStatus,
) -> models.TrainingSchedule:
    """
    Move a schedule through PLANNED -> ACTIVE -> FINISHED, or cancel it.

    Cancelling also cancels its pending and in-progress enrollments.
    """
    schedule = get_schedule(db, schedule_id)
    if status == schedule.status:
        return schedule
    if status not in _SCHEDULE_TRANSITIONS[schedule.status]:
        raise validation_error(
            "status",
            f"Cannot move a schedule from {schedule.status.value} to {status.value}.",
            code="INVALID_TRANSITION",
        )

    schedule.status = status
    db.add(schedule)

    if status == ScheduleStatus.CANCELLED:
        cancelled = (
            db.query(models.Enrollment)
            .filter(
                models.Enrollment.schedule_id == schedule_id,
                models.Enrollment.status.in_(models.OPEN_ENROLLMENT_STATUSES),
            )
            .all()
        )
        for enrollment in cancelled:
            enrollment.status = EnrollmentStatus.CANCELLED
            db.add(enrollment)
        logger.info(
            "Schedule cancelled",
            extra={"schedule_id": schedule_id, "enrollments_cancelled": len(cancelled)},
        )

    db.flush()
    return schedule


def list_upcoming_schedules(
    db: Session,
    *,
    unit_id: Optional[str] = None,
    limit: int = 5,
    today: Optional[date] = None,
) -> Sequence[models.TrainingSchedule]:
    today = today or date.today()
    qs = db.query(models.TrainingSchedule).filter(
        models.TrainingSchedule.status.notin_(_CLOSED_SCHEDULE_STATUSES),
        models.TrainingSchedule.end_date >= today,
    )
    if unit_id:
        qs = qs.filter(models.TrainingSchedule.unit_id == unit_id)
    return (
        qs.order_by(models.TrainingSchedule.start_date.asc(), models.TrainingSchedule.id.asc())
        .limit(max(1, min(limit, 100)))
        .all()
    )


# ---------------------------------------------------------------------------
# ENROLLMENTS
# ---------------------------------------------------------------------------


def enroll(db: Session, *, schedule_id: str, employee_id: str) -> models.Enrollment:
    """
    Enroll an employee in a schedule.

    Calling this again for the same pair returns the existing enrollment.
    """
    schedule = get_schedule(db, schedule_id)

    existing = _find_enrollment(db, schedule_id, employee_id)
    if existing is not None and existing.status != EnrollmentStatus.CANCELLED:
        logger.info(
            "Employee already enrolled",
            extra={"enrollment_id": existing.id, "schedule_id": schedule_id},
        )
        return existing

    if schedule.status in _CLOSED_SCHEDULE_STATUSES:
        raise validation_error(
            "schedule_id",
            f"This schedule is {schedule.status.value.lower()} and no longer accepts enrollments.",
            code="SCHEDULE_CLOSED",
        )

    employee = db.get(org_models.Employee, employee_id)
    if employee is None:
        raise not_found("Employee", employee_id)
    if not employee.is_active:
        raise validation_error("employee_id", "Inactive employees cannot be enrolled.")

    if existing is not None:
        # Reactivate the cancelled row; the pair stays unique.
        existing.status = EnrollmentStatus.PENDING
        existing.progress_pct = 0
        existing.final_score = None
        existing.completed_at = None
        db.add(existing)
        db.flush()
        logger.info("Enrollment reactivated", extra={"enrollment_id": existing.id})
        return existing

    enrollment = models.Enrollment(
        schedule_id=schedule_id,
        employee_id=employee_id,
        status=EnrollmentStatus.PENDING,
        progress_pct=0,
    )
    try:
        # Only the losing insert is undone; other pending work stays.
        with db.begin_nested():
            db.add(enrollment)
            db.flush()
    except IntegrityError:
        # Lost a race with a concurrent enroll() for the same pair.
        winner = _find_enrollment(db, schedule_id, employee_id)
        if winner is None:
            raise
        return winner
    return enrollment


def enroll_in_next_schedule(
    db: Session,
    *,
    employee_id: str,
    module_id: str,
    today: Optional[date] = None,
) -> models.Enrollment:
    """
    Enroll an employee in the earliest open schedule of a module, as done
    from a compliance alert.
    """
    today = today or date.today()
    schedule = (
        db.query(models.TrainingSchedule)
        .filter(
            models.TrainingSchedule.module_id == module_id,
            models.TrainingSchedule.status.notin_(_CLOSED_SCHEDULE_STATUSES),
            models.TrainingSchedule.end_date >= today,
        )
        .order_by(models.TrainingSchedule.start_date.asc(), models.TrainingSchedule.id.asc())
        .first()
    )
    if schedule is None:
        raise ServiceError(
            ErrorKind.NOT_FOUND,
            "There is no open schedule for this module; create one first.",
            code="NO_OPEN_SCHEDULE",
            details={"module_id": module_id},
        )
    return enroll(db, schedule_id=schedule.id, employee_id=employee_id)


def cancel_enrollment(db: Session, *, enrollment_id: str) -> models.Enrollment:
    enrollment = get_enrollment(db, enrollment_id)
    if enrollment.status == EnrollmentStatus.CANCELLED:
        return enrollment
    if enrollment.status == EnrollmentStatus.COMPLETED:
        raise conflict(
            "A completed enrollment cannot be cancelled.",
            code="ENROLLMENT_COMPLETED",
        )
    enrollment.status = EnrollmentStatus.CANCELLED
    db.add(enrollment)
    db.flush()
    return enrollment


def record_completion(
    db: Session,
    *,
    enrollment_id: str,
    final_score: float,
    completed_at: Optional[datetime] = None,
) -> models.Enrollment:
    """
    Mark an enrollment as completed with its final score.

    A score below the module's passing mark is still recorded; it simply
    does not count towards compliance.
    """
    _check_percentage("final_score", final_score, "Final score")

    now = utcnow()
    # naive values are taken as UTC
    if completed_at is not None and as_naive_utc(completed_at) > as_naive_utc(now):
        raise validation_error(
            "completed_at",
            "The completion date cannot be in the future.",
            code="COMPLETION_IN_FUTURE",
        )

    enrollment = get_enrollment(db, enrollment_id)
    if enrollment.status == EnrollmentStatus.COMPLETED:
        raise conflict(
            "This enrollment already has a recorded completion.",
            code="ENROLLMENT_ALREADY_COMPLETED",
        )
    if enrollment.status not in models.OPEN_ENROLLMENT_STATUSES:
        raise validation_error(
            "status",
            f"Cannot complete an enrollment that is {enrollment.status.value.lower()}.",
            code="ENROLLMENT_NOT_OPEN",
        )

    enrollment.status = EnrollmentStatus.COMPLETED
    enrollment.progress_pct = 100
    enrollment.final_score = final_score
    enrollment.completed_at = completed_at or now
    db.add(enrollment)
    db.flush()
    return enrollment


def update_progress(
    db: Session,
    *,
    enrollment_id: str,
    progress_pct: int,
) -> models.Enrollment:
    """
    Record lesson progress. Progress only moves forward; reaching 100 does
    not complete the enrollment (that needs a score).
    """
    _check_percentage("progress_pct", progress_pct, "Progress")
    if isinstance(progress_pct, float) and not progress_pct.is_integer():
        raise validation_error("progress_pct", "Progress must be a whole percentage.")

    enrollment = get_enrollment(db, enrollment_id)
    if enrollment.status not in models.OPEN_ENROLLMENT_STATUSES:
        raise validation_error(
            "status",
            f"Progress cannot change on an enrollment that is {enrollment.status.value.lower()}.",
            code="ENROLLMENT_NOT_OPEN",
        )
    if progress_pct < enrollment.progress_pct:
        raise validation_error(
            "progress_pct",
            f"Progress cannot go back from {enrollment.progress_pct}% to {progress_pct}%.",
            code="PROGRESS_REGRESSION",
        )

    enrollment.progress_pct = int(progress_pct)
    if enrollment.status == EnrollmentStatus.PENDING and progress_pct > 0:
        enrollment.status = EnrollmentStatus.IN_PROGRESS
    db.add(enrollment)
    db.flush()
    return enrollment


def list_employee_enrollments(
    db: Session,
    *,
    employee_id: str,
) -> Sequence[models.Enrollment]:
    return (
        db.query(models.Enrollment)
        .filter(models.Enrollment.employee_id == employee_id)
        .order_by(models.Enrollment.created_at.desc(), models.Enrollment.id.asc())
        .all()
    )
