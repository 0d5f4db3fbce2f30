from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...errors import conflict, not_found, validation_error
from ..training import models as training_models
from . import models

logger = logging.getLogger(__name__)


def _normalise_national_id(value: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise validation_error("national_id", "National id (CPF) is required.")
    return cleaned


def _apply_changes(obj, changes: dict) -> None:
    for field, value in changes.items():
        setattr(obj, field, value)


# ---------------------------------------------------------------------------
# UNITS
# ---------------------------------------------------------------------------


def get_unit(db: Session, unit_id: str) -> models.Unit:
    unit = db.get(models.Unit, unit_id)
    if unit is None:
        raise not_found("Unit", unit_id)
    return unit


def list_units(db: Session) -> Sequence[models.Unit]:
    return db.query(models.Unit).order_by(models.Unit.name.asc()).all()


def create_unit(
    db: Session,
    *,
    name: str,
    address: Optional[str] = None,
    technical_manager: Optional[str] = None,
) -> models.Unit:
    unit = models.Unit(
        name=name.strip(),
        address=address,
        technical_manager=technical_manager,
    )
    db.add(unit)
    db.flush()
    return unit


def update_unit(db: Session, *, unit_id: str, changes: dict) -> models.Unit:
    unit = get_unit(db, unit_id)
    _apply_changes(unit, changes)
    db.add(unit)
    db.flush()
    return unit


def delete_unit(db: Session, *, unit_id: str) -> None:
    """
    Delete a unit and its sectors. Units still referenced by employees or
    schedules cannot be removed.
    """
    unit = get_unit(db, unit_id)

    employee_count = (
        db.query(func.count(models.Employee.id))
        .filter(models.Employee.unit_id == unit_id)
        .scalar()
    ) or 0
    if employee_count:
        raise conflict(
            f"Unit is assigned to {employee_count} employee(s); reassign them first.",
            code="UNIT_IN_USE",
            blocking_count=employee_count,
        )

    schedule_count = (
        db.query(func.count(training_models.TrainingSchedule.id))
        .filter(training_models.TrainingSchedule.unit_id == unit_id)
        .scalar()
    ) or 0
    if schedule_count:
        raise conflict(
            f"Unit has {schedule_count} training schedule(s).",
            code="UNIT_IN_USE",
            blocking_count=schedule_count,
        )

    db.delete(unit)
    db.flush()
    logger.info("Unit deleted", extra={"unit_id": unit_id})


# ---------------------------------------------------------------------------
# SECTORS
# ---------------------------------------------------------------------------


def get_sector(db: Session, sector_id: str) -> models.Sector:
    sector = db.get(models.Sector, sector_id)
    if sector is None:
        raise not_found("Sector", sector_id)
    return sector


def list_sectors(db: Session, *, unit_id: Optional[str] = None) -> Sequence[models.Sector]:
    qs = db.query(models.Sector)
    if unit_id:
        qs = qs.filter(models.Sector.unit_id == unit_id)
    return qs.order_by(models.Sector.name.asc()).all()


def create_sector(db: Session, *, unit_id: str, name: str) -> models.Sector:
    unit = get_unit(db, unit_id)
    sector = models.Sector(name=name.strip())
    unit.sectors.append(sector)
    db.flush()
    return sector


def rename_sector(db: Session, *, sector_id: str, name: str) -> models.Sector:
    sector = get_sector(db, sector_id)
    sector.name = name.strip()
    db.add(sector)
    db.flush()
    return sector


def delete_sector(db: Session, *, sector_id: str) -> None:
    sector = get_sector(db, sector_id)
    employee_count = (
        db.query(func.count(models.Employee.id))
        .filter(models.Employee.sector_id == sector_id)
        .scalar()
    ) or 0
    if employee_count:
        raise conflict(
            f"Sector is assigned to {employee_count} employee(s); reassign them first.",
            code="SECTOR_IN_USE",
            blocking_count=employee_count,
        )
    sector.unit.sectors.remove(sector)
    db.flush()


# ---------------------------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------------------------


def get_employee(db: Session, employee_id: str) -> models.Employee:
    employee = db.get(models.Employee, employee_id)
    if employee is None:
        raise not_found("Employee", employee_id)
    return employee


def list_employees(
    db: Session,
    *,
    unit_id: Optional[str] = None,
    include_inactive: bool = False,
    search: Optional[str] = None,
) -> Sequence[models.Employee]:
    qs = db.query(models.Employee)
    if unit_id:
        qs = qs.filter(models.Employee.unit_id == unit_id)
    if not include_inactive:
        qs = qs.filter(models.Employee.is_active.is_(True))
    if search:
        term = f"%{search.strip()}%"
        qs = qs.filter(
            or_(
                models.Employee.full_name.ilike(term),
                models.Employee.national_id.ilike(term),
                models.Employee.email.ilike(term),
            )
        )
    return qs.order_by(models.Employee.full_name.asc()).all()


def _validate_placement(
    db: Session,
    *,
    unit_id: Optional[str],
    sector_id: Optional[str],
    role_id: Optional[str],
) -> None:
    if unit_id:
        get_unit(db, unit_id)
    if sector_id:
        sector = get_sector(db, sector_id)
        if unit_id and sector.unit_id != unit_id:
            raise validation_error("sector_id", "Sector does not belong to the selected unit.")
    if role_id and db.get(models.JobRole, role_id) is None:
        raise not_found("Job role", role_id)


def _ensure_unique_national_id(
    db: Session,
    national_id: str,
    *,
    exclude_employee_id: Optional[str] = None,
) -> None:
    qs = db.query(models.Employee.id).filter(models.Employee.national_id == national_id)
    if exclude_employee_id:
        qs = qs.filter(models.Employee.id != exclude_employee_id)
    if qs.first() is not None:
        raise conflict(
            "Another employee is already registered with this national id.",
            code="DUPLICATE_NATIONAL_ID",
        )


def create_employee(
    db: Session,
    *,
    employee_id: str,
    full_name: str,
    national_id: str,
    admission_date: date,
    email: Optional[str] = None,
    unit_id: Optional[str] = None,
    sector_id: Optional[str] = None,
    role_id: Optional[str] = None,
    system_role: models.SystemRole = models.SystemRole.COLLABORATOR,
    must_change_password: bool = True,
) -> models.Employee:
    """
    Register the profile paired with an identity provider account.
    """
    employee_id = (employee_id or "").strip()
    if not employee_id:
        raise validation_error("id", "Employee id is required.")
    if db.get(models.Employee, employee_id) is not None:
        raise conflict("An employee with this id already exists.", code="DUPLICATE_EMPLOYEE")

    national_id = _normalise_national_id(national_id)
    _ensure_unique_national_id(db, national_id)
    _validate_placement(db, unit_id=unit_id, sector_id=sector_id, role_id=role_id)

    employee = models.Employee(
        id=employee_id,
        full_name=full_name.strip(),
        national_id=national_id,
        email=email,
        unit_id=unit_id,
        sector_id=sector_id,
        role_id=role_id,
        system_role=system_role,
        admission_date=admission_date,
        is_active=True,
        must_change_password=must_change_password,
    )
    db.add(employee)
    db.flush()
    return employee


def update_employee(db: Session, *, employee_id: str, changes: dict) -> models.Employee:
    employee = get_employee(db, employee_id)

    if "national_id" in changes and changes["national_id"] is not None:
        changes["national_id"] = _normalise_national_id(changes["national_id"])
        _ensure_unique_national_id(db, changes["national_id"], exclude_employee_id=employee_id)

    if {"unit_id", "sector_id", "role_id"} & set(changes):
        _validate_placement(
            db,
            unit_id=changes.get("unit_id", employee.unit_id),
            sector_id=changes.get("sector_id", employee.sector_id),
            role_id=changes.get("role_id", employee.role_id),
        )

    _apply_changes(employee, changes)
    db.add(employee)
    db.flush()
    return employee


def set_employee_active(db: Session, *, employee_id: str, is_active: bool) -> models.Employee:
    employee = get_employee(db, employee_id)
    employee.is_active = is_active
    db.add(employee)
    db.flush()
    logger.info(
        "Employee active flag changed",
        extra={"employee_id": employee_id, "is_active": is_active},
    )
    return employee


def delete_employee(db: Session, *, employee_id: str) -> None:
    """
    Hard-delete an employee who has no training history. Anyone with
    enrollments must be deactivated instead.
    """
    employee = get_employee(db, employee_id)
    history = (
        db.query(func.count(training_models.Enrollment.id))
        .filter(training_models.Enrollment.employee_id == employee_id)
        .scalar()
    ) or 0
    if history:
        raise conflict(
            "Employee has training history; deactivate the account instead.",
            code="EMPLOYEE_HAS_HISTORY",
            blocking_count=history,
        )
    db.delete(employee)
    db.flush()
