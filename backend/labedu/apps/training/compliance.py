"""
Compliance evaluator.

For every mandatory (role, module) requirement of an employee this works
out when the module was last completed with a passing score, when it is due
again and how urgent it is:

- MISSING  : never completed; due from the admission date
- EXPIRED  : due date has passed
- WARNING  : due within the next 30 days (inclusive)
- OK       : due later, or a one-time module that is already done

This is a dashboard read path. Dangling references are logged and skipped
so one bad row never blanks the whole panel.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ...errors import not_found
from ...utils.dates import add_months, as_date, as_naive_utc
from ..organization import models as org_models
from . import models
from .schemas import ComplianceStatus, ComplianceSummary, ComplianceViewItem

logger = logging.getLogger(__name__)

WARNING_WINDOW_DAYS = 30
_MAX_ALERTS = 100

ALERT_STATUSES = (
    ComplianceStatus.MISSING,
    ComplianceStatus.EXPIRED,
    ComplianceStatus.WARNING,
)


# ---------------------------------------------------------------------------
# PURE HELPERS
# ---------------------------------------------------------------------------


def qualifies(enrollment: models.Enrollment, module: models.TrainingModule) -> bool:
    return (
        enrollment.status == models.EnrollmentStatus.COMPLETED
        and enrollment.completed_at is not None
        and enrollment.final_score is not None
        and enrollment.final_score >= module.min_score_approval
    )


def _recency_key(enrollment: models.Enrollment) -> Tuple:
    # Latest completion day, then highest score, then newest record.
    return (
        as_date(enrollment.completed_at),
        enrollment.final_score,
        as_naive_utc(enrollment.created_at),
        enrollment.id,
    )


def pick_latest_qualifying(
    enrollments: Sequence[models.Enrollment],
) -> Optional[models.Enrollment]:
    if not enrollments:
        return None
    return max(enrollments, key=_recency_key)


def compute_due(
    *,
    admission_date: date,
    last_completion: Optional[date],
    period_months: Optional[int],
) -> Optional[date]:
    """
    Next due date for one requirement.

    Never completed: due from the admission date, whatever the period.
    Completed one-time module: never due again (None).
    """
    if last_completion is None:
        return admission_date
    if period_months is None:
        return None
    return add_months(last_completion, period_months)


def classify(
    *,
    last_completion: Optional[date],
    days_remaining: Optional[int],
) -> ComplianceStatus:
    if last_completion is None:
        return ComplianceStatus.MISSING
    if days_remaining is None:
        return ComplianceStatus.OK
    if days_remaining < 0:
        return ComplianceStatus.EXPIRED
    if days_remaining <= WARNING_WINDOW_DAYS:
        return ComplianceStatus.WARNING
    return ComplianceStatus.OK


def _item_sort_key(item: ComplianceViewItem) -> Tuple:
    # Permanently satisfied items (no due date) go last.
    return (
        item.days_remaining is None,
        item.days_remaining if item.days_remaining is not None else 0,
        item.module_title,
    )


# ---------------------------------------------------------------------------
# EVALUATION
# ---------------------------------------------------------------------------


def _evaluate_many(
    db: Session,
    employees: Sequence[org_models.Employee],
    today: date,
) -> Dict[str, List[ComplianceViewItem]]:
    """
    Evaluate several employees with a fixed number of queries.
    """
    results: Dict[str, List[ComplianceViewItem]] = {e.id: [] for e in employees}
    with_role = [e for e in employees if e.role_id]
    if not with_role:
        return results

    role_ids = {e.role_id for e in with_role}
    roles = {
        r.id: r
        for r in db.query(org_models.JobRole).filter(org_models.JobRole.id.in_(role_ids)).all()
    }

    requirements_by_role: Dict[str, List[models.TrainingRequirement]] = defaultdict(list)
    for req in (
        db.query(models.TrainingRequirement)
        .filter(
            models.TrainingRequirement.role_id.in_(role_ids),
            models.TrainingRequirement.is_mandatory.is_(True),
        )
        .all()
    ):
        requirements_by_role[req.role_id].append(req)

    module_ids = {req.module_id for reqs in requirements_by_role.values() for req in reqs}
    modules = {
        m.id: m
        for m in db.query(models.TrainingModule)
        .filter(models.TrainingModule.id.in_(module_ids))
        .all()
    } if module_ids else {}

    completions: Dict[Tuple[str, str], List[models.Enrollment]] = defaultdict(list)
    if modules:
        rows = (
            db.query(models.Enrollment, models.TrainingSchedule.module_id)
            .join(
                models.TrainingSchedule,
                models.TrainingSchedule.id == models.Enrollment.schedule_id,
            )
            .filter(
                models.Enrollment.employee_id.in_([e.id for e in with_role]),
                models.Enrollment.status == models.EnrollmentStatus.COMPLETED,
                models.TrainingSchedule.module_id.in_(list(modules)),
            )
            .all()
        )
        for enrollment, module_id in rows:
            if qualifies(enrollment, modules[module_id]):
                completions[(enrollment.employee_id, module_id)].append(enrollment)

    for employee in with_role:
        role = roles.get(employee.role_id)
        if role is None:
            logger.warning(
                "Employee references a missing job role",
                extra={"employee_id": employee.id, "role_id": employee.role_id},
            )

        items: List[ComplianceViewItem] = []
        for req in requirements_by_role.get(employee.role_id, []):
            module = modules.get(req.module_id)
            if module is None:
                logger.warning(
                    "Skipping requirement with missing module",
                    extra={
                        "employee_id": employee.id,
                        "role_id": req.role_id,
                        "module_id": req.module_id,
                    },
                )
                continue

            latest = pick_latest_qualifying(completions.get((employee.id, module.id), []))
            last_completion = as_date(latest.completed_at) if latest else None
            next_due = compute_due(
                admission_date=employee.admission_date,
                last_completion=last_completion,
                period_months=req.recertification_period_months,
            )
            days_remaining = (next_due - today).days if next_due is not None else None

            items.append(
                ComplianceViewItem(
                    employee_id=employee.id,
                    employee_name=employee.full_name,
                    role_id=employee.role_id,
                    role_name=role.name if role else None,
                    is_critical_function=bool(role and role.is_critical_function),
                    module_id=module.id,
                    module_title=module.title,
                    recertification_period_months=req.recertification_period_months,
                    last_completion_date=last_completion,
                    next_due_date=next_due,
                    days_remaining=days_remaining,
                    status=classify(
                        last_completion=last_completion,
                        days_remaining=days_remaining,
                    ),
                )
            )

        items.sort(key=_item_sort_key)
        results[employee.id] = items

    return results


def evaluate_employee(
    db: Session,
    employee_id: str,
    *,
    today: Optional[date] = None,
) -> List[ComplianceViewItem]:
    """
    Compliance items for one employee, most urgent first.

    An employee without a job role has no requirements and gets an empty
    list.
    """
    employee = db.get(org_models.Employee, employee_id)
    if employee is None:
        raise not_found("Employee", employee_id)
    return _evaluate_many(db, [employee], today or date.today())[employee.id]


def _active_employees(db: Session, unit_id: Optional[str]) -> List[org_models.Employee]:
    qs = db.query(org_models.Employee).filter(org_models.Employee.is_active.is_(True))
    if unit_id:
        qs = qs.filter(org_models.Employee.unit_id == unit_id)
    return qs.order_by(org_models.Employee.full_name.asc()).all()


def list_alerts(
    db: Session,
    *,
    unit_id: Optional[str] = None,
    limit: int = 10,
    today: Optional[date] = None,
) -> List[ComplianceViewItem]:
    """
    Dashboard alert panel: MISSING / EXPIRED / WARNING items across active
    employees, most urgent first, critical functions ahead on ties.
    """
    limit = max(1, min(limit, _MAX_ALERTS))
    evaluated = _evaluate_many(db, _active_employees(db, unit_id), today or date.today())

    alerts = [
        item
        for items in evaluated.values()
        for item in items
        if item.status in ALERT_STATUSES
    ]
    alerts.sort(
        key=lambda item: (
            item.days_remaining,
            not item.is_critical_function,
            item.employee_name,
            item.module_title,
        )
    )
    return alerts[:limit]


def summarize(
    db: Session,
    *,
    unit_id: Optional[str] = None,
    today: Optional[date] = None,
) -> ComplianceSummary:
    employees = _active_employees(db, unit_id)
    evaluated = _evaluate_many(db, employees, today or date.today())

    counts: Counter = Counter()
    for items in evaluated.values():
        counts.update(item.status for item in items)

    return ComplianceSummary(
        employees=len(employees),
        items=sum(counts.values()),
        by_status={status: counts.get(status, 0) for status in ComplianceStatus},
    )
