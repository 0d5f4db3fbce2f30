"""
Requirement matrix: which job roles must complete which modules, and how
often.

Each cell is one `TrainingRequirement` row keyed by (role_id, module_id).
Writes are upserts on that pair, so the pair stays unique no matter how
often a screen re-submits the same matrix.
"""

from __future__ import annotations

import enum
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import ServiceError, conflict, not_found, translate_db_error, validation_error
from ..organization import models as org_models
from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# FREQUENCY <-> MONTHS
# ---------------------------------------------------------------------------


class Frequency(str, enum.Enum):
    ONCE = "ONCE"
    BIANNUAL = "BIANNUAL"
    ANNUAL = "ANNUAL"
    EVERY_3_YEARS = "EVERY_3_YEARS"


_MONTHS_BY_FREQUENCY: Dict[Frequency, Optional[int]] = {
    Frequency.ONCE: None,
    Frequency.BIANNUAL: 6,
    Frequency.ANNUAL: 12,
    Frequency.EVERY_3_YEARS: 36,
}

_DEFAULT_MONTHS = 12


def months_from_frequency(frequency: Union[Frequency, str, None]) -> Optional[int]:
    """
    Recertification period in months for a frequency; None means one-time.

    Unknown values fall back to ANNUAL so matrix edits keep working when
    screens start sending frequencies this service does not know yet.
    """
    if isinstance(frequency, str) and not isinstance(frequency, Frequency):
        frequency = frequency.strip().upper()
    try:
        key = Frequency(frequency)
    except ValueError:
        logger.warning(
            "Unknown recertification frequency, using ANNUAL",
            extra={"frequency": frequency},
        )
        return _DEFAULT_MONTHS
    return _MONTHS_BY_FREQUENCY[key]


def frequency_from_months(months: Optional[int]) -> Frequency:
    if months is None:
        return Frequency.ONCE
    for frequency, value in _MONTHS_BY_FREQUENCY.items():
        if value == months:
            return frequency
    return Frequency.ANNUAL


# ---------------------------------------------------------------------------
# JOB ROLES
# ---------------------------------------------------------------------------


def get_role(db: Session, role_id: str) -> org_models.JobRole:
    role = db.get(org_models.JobRole, role_id)
    if role is None:
        raise not_found("Job role", role_id)
    return role


def list_roles(db: Session) -> Sequence[org_models.JobRole]:
    return db.query(org_models.JobRole).order_by(org_models.JobRole.name.asc()).all()


def _ensure_unique_role_name(db: Session, name: str, *, exclude_id: Optional[str] = None) -> None:
    qs = db.query(org_models.JobRole.id).filter(
        func.lower(org_models.JobRole.name) == name.lower()
    )
    if exclude_id:
        qs = qs.filter(org_models.JobRole.id != exclude_id)
    if qs.first() is not None:
        raise conflict(f"A job role named '{name}' already exists.", code="DUPLICATE_ROLE_NAME")


def create_role(
    db: Session,
    *,
    name: str,
    is_critical_function: bool = False,
) -> org_models.JobRole:
    name = (name or "").strip()
    if not name:
        raise validation_error("name", "Role name is required.")
    _ensure_unique_role_name(db, name)
    role = org_models.JobRole(name=name, is_critical_function=is_critical_function)
    db.add(role)
    db.flush()
    return role


def update_role(db: Session, *, role_id: str, changes: dict) -> org_models.JobRole:
    role = get_role(db, role_id)
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise validation_error("name", "Role name is required.")
        _ensure_unique_role_name(db, changes["name"], exclude_id=role_id)
    for field, value in changes.items():
        if value is not None:
            setattr(role, field, value)
    db.add(role)
    db.flush()
    return role


def remove_role(db: Session, *, role_id: str) -> None:
    """
    Delete a job role together with its requirement rows.

    Refused with ROLE_IN_USE while any employee still holds the role.
    Requirement rows are removed before the role; if the role delete then
    fails the whole transaction is rolled back and ROLE_DELETE_FAILED is
    raised, so a retry starts from a consistent state.
    """
    role = get_role(db, role_id)

    blocking = (
        db.query(func.count(org_models.Employee.id))
        .filter(org_models.Employee.role_id == role_id)
        .scalar()
    ) or 0
    if blocking:
        raise conflict(
            f"Role '{role.name}' is assigned to {blocking} employee(s); reassign them first.",
            code="ROLE_IN_USE",
            blocking_count=blocking,
        )

    try:
        removed = (
            db.query(models.TrainingRequirement)
            .filter(models.TrainingRequirement.role_id == role_id)
            .delete(synchronize_session=False)
        )
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise translate_db_error(exc) from exc

    try:
        db.delete(role)
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        cause = translate_db_error(exc)
        raise ServiceError(
            cause.kind,
            "The role could not be deleted; no changes were saved.",
            code="ROLE_DELETE_FAILED",
            details={"cause": cause.code},
        ) from exc

    logger.info(
        "Job role deleted",
        extra={"role_id": role_id, "requirements_removed": removed},
    )


# ---------------------------------------------------------------------------
# REQUIREMENTS
# ---------------------------------------------------------------------------


def _existing_requirements(
    db: Session,
    role_id: str,
    module_ids: Iterable[str],
) -> Dict[str, models.TrainingRequirement]:
    module_ids = list(module_ids)
    if not module_ids:
        return {}
    rows = (
        db.query(models.TrainingRequirement)
        .filter(
            models.TrainingRequirement.role_id == role_id,
            models.TrainingRequirement.module_id.in_(module_ids),
        )
        .all()
    )
    return {row.module_id: row for row in rows}


def _check_activation(
    module: models.TrainingModule,
    existing: Optional[models.TrainingRequirement],
    is_mandatory: bool,
) -> None:
    if not is_mandatory or module.is_published:
        return
    if existing is not None and existing.is_mandatory:
        # Existing matrices keep working after a module goes back to draft.
        logger.warning(
            "Editing mandatory requirement for unpublished module",
            extra={"role_id": existing.role_id, "module_id": module.id},
        )
        return
    raise validation_error(
        "module_id",
        f"Module '{module.title}' must be published before it can be made mandatory.",
        code="MODULE_NOT_PUBLISHED",
    )


def _apply(
    db: Session,
    *,
    role_id: str,
    module_id: str,
    existing: Optional[models.TrainingRequirement],
    is_mandatory: bool,
    months: Optional[int],
) -> models.TrainingRequirement:
    row = existing
    if row is None:
        row = models.TrainingRequirement(role_id=role_id, module_id=module_id)
    row.is_mandatory = is_mandatory
    # Optional rows carry no period.
    row.recertification_period_months = months if is_mandatory else None
    db.add(row)
    return row


def set_requirement(
    db: Session,
    *,
    role_id: str,
    module_id: str,
    is_mandatory: bool,
    frequency: Union[Frequency, str, None] = Frequency.ANNUAL,
) -> models.TrainingRequirement:
    get_role(db, role_id)
    module = db.get(models.TrainingModule, module_id)
    if module is None:
        raise not_found("Training module", module_id)

    existing = _existing_requirements(db, role_id, [module_id]).get(module_id)
    _check_activation(module, existing, is_mandatory)

    row = _apply(
        db,
        role_id=role_id,
        module_id=module_id,
        existing=existing,
        is_mandatory=is_mandatory,
        months=months_from_frequency(frequency) if is_mandatory else None,
    )
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise translate_db_error(exc) from exc
    return row


def bulk_upsert(
    db: Session,
    *,
    role_id: str,
    rows: Sequence[dict],
) -> List[models.TrainingRequirement]:
    """
    Upsert every row for one role in a single transaction.

    Every row is validated before anything is written. Requirements for
    modules absent from `rows` are left as they are.
    """
    get_role(db, role_id)

    module_ids: List[str] = []
    for index, row in enumerate(rows):
        module_id = row.get("module_id")
        if not module_id:
            raise validation_error(f"rows[{index}].module_id", "Module id is required.")
        if module_id in module_ids:
            raise validation_error(
                f"rows[{index}].module_id",
                f"Module {module_id} appears more than once in the matrix payload.",
                code="DUPLICATE_MODULE_IN_PAYLOAD",
            )
        module_ids.append(module_id)

    modules = {
        m.id: m
        for m in db.query(models.TrainingModule)
        .filter(models.TrainingModule.id.in_(module_ids))
        .all()
    } if module_ids else {}
    missing = [m for m in module_ids if m not in modules]
    if missing:
        raise not_found("Training module", missing[0])

    existing = _existing_requirements(db, role_id, module_ids)

    planned = []
    for row in rows:
        module_id = row["module_id"]
        is_mandatory = bool(row.get("is_mandatory", True))
        _check_activation(modules[module_id], existing.get(module_id), is_mandatory)
        months = (
            months_from_frequency(row.get("frequency", Frequency.ANNUAL)) if is_mandatory else None
        )
        planned.append((module_id, is_mandatory, months))

    try:
        saved = [
            _apply(
                db,
                role_id=role_id,
                module_id=module_id,
                existing=existing.get(module_id),
                is_mandatory=is_mandatory,
                months=months,
            )
            for module_id, is_mandatory, months in planned
        ]
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise translate_db_error(exc) from exc
    return saved


def list_matrix(
    db: Session,
    *,
    role_id: Optional[str] = None,
) -> Sequence[models.TrainingRequirement]:
    qs = db.query(models.TrainingRequirement).join(
        models.TrainingModule,
        models.TrainingModule.id == models.TrainingRequirement.module_id,
    )
    if role_id:
        qs = qs.filter(models.TrainingRequirement.role_id == role_id)
    return qs.order_by(
        models.TrainingRequirement.role_id.asc(),
        models.TrainingModule.title.asc(),
    ).all()
