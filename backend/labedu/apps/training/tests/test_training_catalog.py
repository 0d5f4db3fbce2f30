from __future__ import annotations

import pytest

from labedu.apps.training import catalog
from labedu.apps.training import matrix
from labedu.apps.training import models as training_models
from labedu.errors import ErrorKind, ServiceError


def _new_module(db_session, **overrides) -> training_models.TrainingModule:
    data = {
        "title": "Specimen Handling",
        "training_type": training_models.TrainingType.TECNICO,
        "min_score_approval": 70,
    }
    data.update(overrides)
    module = catalog.create_module(db_session, data=data)
    db_session.commit()
    return module


def test_new_modules_start_as_draft(db_session):
    module = _new_module(db_session)
    assert module.status == training_models.ModuleStatus.DRAFT

    published = catalog.publish_module(db_session, module_id=module.id)
    assert published.is_published is True


def test_create_module_rejects_out_of_range_passing_score(db_session):
    with pytest.raises(ServiceError) as excinfo:
        _new_module(db_session, min_score_approval=120)
    assert excinfo.value.field == "min_score_approval"


def test_lessons_append_in_order_and_reject_taken_positions(db_session):
    module = _new_module(db_session)

    first = catalog.add_lesson(db_session, module_id=module.id, title="Intro")
    second = catalog.add_lesson(db_session, module_id=module.id, title="Tubes")
    gap = catalog.add_lesson(db_session, module_id=module.id, title="Transport", order_index=5)
    after_gap = catalog.add_lesson(db_session, module_id=module.id, title="Review")
    db_session.commit()

    assert [first.order_index, second.order_index, gap.order_index, after_gap.order_index] == [0, 1, 5, 6]
    assert [lesson.title for lesson in catalog.list_lessons(db_session, module_id=module.id)] == [
        "Intro",
        "Tubes",
        "Transport",
        "Review",
    ]

    with pytest.raises(ServiceError) as excinfo:
        catalog.add_lesson(db_session, module_id=module.id, title="Clash", order_index=1)
    assert excinfo.value.code == "LESSON_ORDER_TAKEN"

    with pytest.raises(ServiceError) as excinfo:
        catalog.add_lesson(db_session, module_id=module.id, title="Negative", order_index=-1)
    assert excinfo.value.kind == ErrorKind.VALIDATION


def test_delete_module_blocked_by_requirements(db_session, job_role):
    module = _new_module(db_session)
    catalog.publish_module(db_session, module_id=module.id)
    matrix.set_requirement(
        db_session, role_id=job_role.id, module_id=module.id, is_mandatory=True
    )
    db_session.commit()

    with pytest.raises(ServiceError) as excinfo:
        catalog.delete_module(db_session, module_id=module.id)
    assert excinfo.value.code == "MODULE_IN_USE"
    assert excinfo.value.details["requirements"] == 1


def test_delete_module_removes_lessons(db_session):
    module = _new_module(db_session)
    lesson = catalog.add_lesson(db_session, module_id=module.id, title="Intro")
    db_session.commit()
    lesson_id = lesson.id

    catalog.delete_module(db_session, module_id=module.id)
    db_session.commit()

    assert db_session.get(training_models.TrainingModule, module.id) is None
    assert db_session.get(training_models.TrainingLesson, lesson_id) is None


def test_delete_lesson_keeps_remaining_order(db_session):
    module = _new_module(db_session)
    intro = catalog.add_lesson(db_session, module_id=module.id, title="Intro")
    tubes = catalog.add_lesson(db_session, module_id=module.id, title="Tubes")
    review = catalog.add_lesson(db_session, module_id=module.id, title="Review")
    db_session.commit()

    catalog.delete_lesson(db_session, lesson_id=tubes.id)
    db_session.commit()

    remaining = catalog.list_lessons(db_session, module_id=module.id)
    assert [lesson.id for lesson in remaining] == [intro.id, review.id]
    assert db_session.get(training_models.TrainingLesson, tubes.id) is None

    with pytest.raises(ServiceError) as excinfo:
        catalog.delete_lesson(db_session, lesson_id=tubes.id)
    assert excinfo.value.kind == ErrorKind.NOT_FOUND
