"""
Training module catalog: modules and their ordered lessons.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...errors import conflict, not_found, validation_error
from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# MODULES
# ---------------------------------------------------------------------------


def get_module(db: Session, module_id: str) -> models.TrainingModule:
    module = db.get(models.TrainingModule, module_id)
    if module is None:
        raise not_found("Training module", module_id)
    return module


def list_modules(
    db: Session,
    *,
    status: Optional[models.ModuleStatus] = None,
) -> Sequence[models.TrainingModule]:
    qs = db.query(models.TrainingModule)
    if status is not None:
        qs = qs.filter(models.TrainingModule.status == status)
    return qs.order_by(models.TrainingModule.title.asc()).all()


def _check_min_score(value) -> None:
    if value is None or not 0 <= value <= 100:
        raise validation_error(
            "min_score_approval",
            "Minimum passing score must be between 0 and 100.",
        )


def create_module(db: Session, *, data: dict) -> models.TrainingModule:
    """New modules always start as DRAFT."""
    _check_min_score(data.get("min_score_approval", 70))
    module = models.TrainingModule(status=models.ModuleStatus.DRAFT, **data)
    db.add(module)
    db.flush()
    return module


def update_module(db: Session, *, module_id: str, changes: dict) -> models.TrainingModule:
    module = get_module(db, module_id)
    if "min_score_approval" in changes:
        _check_min_score(changes["min_score_approval"])
    for field, value in changes.items():
        setattr(module, field, value)
    db.add(module)
    db.flush()
    return module


def set_module_status(
    db: Session,
    *,
    module_id: str,
    status: models.ModuleStatus,
) -> models.TrainingModule:
    module = get_module(db, module_id)
    module.status = status
    db.add(module)
    db.flush()
    logger.info("Module status changed", extra={"module_id": module_id, "status": status.value})
    return module


def publish_module(db: Session, *, module_id: str) -> models.TrainingModule:
    return set_module_status(db, module_id=module_id, status=models.ModuleStatus.PUBLISHED)


def delete_module(db: Session, *, module_id: str) -> None:
    module = get_module(db, module_id)

    schedules = (
        db.query(func.count(models.TrainingSchedule.id))
        .filter(models.TrainingSchedule.module_id == module_id)
        .scalar()
    ) or 0
    requirements = (
        db.query(func.count(models.TrainingRequirement.id))
        .filter(models.TrainingRequirement.module_id == module_id)
        .scalar()
    ) or 0
    if schedules or requirements:
        raise conflict(
            "Module is still used by schedules or the requirement matrix.",
            code="MODULE_IN_USE",
            blocking_count=schedules + requirements,
            schedules=schedules,
            requirements=requirements,
        )

    # Lessons go with the module (delete-orphan cascade).
    db.delete(module)
    db.flush()


# ---------------------------------------------------------------------------
# LESSONS
# ---------------------------------------------------------------------------


def list_lessons(db: Session, *, module_id: str) -> Sequence[models.TrainingLesson]:
    get_module(db, module_id)
    return (
        db.query(models.TrainingLesson)
        .filter(models.TrainingLesson.module_id == module_id)
        .order_by(models.TrainingLesson.order_index.asc())
        .all()
    )


def add_lesson(
    db: Session,
    *,
    module_id: str,
    title: str,
    content_type: models.LessonContentType = models.LessonContentType.TEXT,
    content_url: Optional[str] = None,
    description: Optional[str] = None,
    order_index: Optional[int] = None,
) -> models.TrainingLesson:
    """
    Add a lesson to a module.

    Without an explicit order_index the lesson goes after the current last
    one. Gaps are allowed, duplicates are not.
    """
    module = get_module(db, module_id)

    if order_index is None:
        current_max = (
            db.query(func.max(models.TrainingLesson.order_index))
            .filter(models.TrainingLesson.module_id == module_id)
            .scalar()
        )
        order_index = 0 if current_max is None else current_max + 1
    else:
        if order_index < 0:
            raise validation_error("order_index", "Lesson position cannot be negative.")
        taken = (
            db.query(models.TrainingLesson.id)
            .filter(
                models.TrainingLesson.module_id == module_id,
                models.TrainingLesson.order_index == order_index,
            )
            .first()
        )
        if taken is not None:
            raise conflict(
                f"Position {order_index} is already used by another lesson.",
                code="LESSON_ORDER_TAKEN",
            )

    lesson = models.TrainingLesson(
        module_id=module_id,
        title=title.strip(),
        content_type=content_type,
        content_url=content_url,
        description=description,
        order_index=order_index,
    )
    module.lessons.append(lesson)
    db.flush()
    return lesson


def delete_lesson(db: Session, *, lesson_id: str) -> None:
    lesson = db.get(models.TrainingLesson, lesson_id)
    if lesson is None:
        raise not_found("Lesson", lesson_id)
    # delete-orphan removes the row on flush
    lesson.module.lessons.remove(lesson)
    db.flush()
