from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from labedu.apps.training import enrollment as enrollment_services
from labedu.apps.training import models as training_models
from labedu.errors import ErrorKind, ServiceError

EnrollmentStatus = training_models.EnrollmentStatus
ScheduleStatus = training_models.ScheduleStatus


@pytest.fixture()
def open_enrollment(db_session, make_employee, make_module, make_schedule):
    employee = make_employee()
    schedule = make_schedule(make_module())
    enrollment = enrollment_services.enroll(
        db_session, schedule_id=schedule.id, employee_id=employee.id
    )
    db_session.commit()
    return enrollment


def test_create_schedule_starts_planned(db_session, unit, make_module):
    module = make_module()
    schedule = enrollment_services.create_schedule(
        db_session,
        module_id=module.id,
        unit_id=unit.id,
        start_date=date(2024, 5, 1),
        end_date=date(2024, 5, 1),
    )
    assert schedule.status == ScheduleStatus.PLANNED


def test_create_schedule_rejects_inverted_dates(db_session, make_module):
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.create_schedule(
            db_session,
            module_id=make_module().id,
            start_date=date(2024, 5, 2),
            end_date=date(2024, 5, 1),
        )
    assert excinfo.value.kind == ErrorKind.VALIDATION
    assert excinfo.value.field == "end_date"


def test_create_schedule_rejects_draft_module(db_session, make_module):
    draft = make_module(status=training_models.ModuleStatus.DRAFT)
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.create_schedule(
            db_session,
            module_id=draft.id,
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 2),
        )
    assert excinfo.value.code == "MODULE_NOT_PUBLISHED"


def test_enroll_is_idempotent(db_session, open_enrollment):
    again = enrollment_services.enroll(
        db_session,
        schedule_id=open_enrollment.schedule_id,
        employee_id=open_enrollment.employee_id,
    )
    db_session.commit()

    assert again.id == open_enrollment.id
    count = (
        db_session.query(training_models.Enrollment)
        .filter(training_models.Enrollment.schedule_id == open_enrollment.schedule_id)
        .count()
    )
    assert count == 1


def test_enroll_rejects_inactive_employee(db_session, make_employee, make_module, make_schedule):
    employee = make_employee(is_active=False)
    schedule = make_schedule(make_module())
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.enroll(db_session, schedule_id=schedule.id, employee_id=employee.id)
    assert excinfo.value.field == "employee_id"


def test_enroll_rejects_closed_schedule(db_session, make_employee, make_module, make_schedule):
    schedule = make_schedule(make_module(), status=ScheduleStatus.FINISHED)
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.enroll(
            db_session, schedule_id=schedule.id, employee_id=make_employee().id
        )
    assert excinfo.value.code == "SCHEDULE_CLOSED"


def test_cancelled_enrollment_is_reactivated(db_session, open_enrollment):
    enrollment_services.update_progress(
        db_session, enrollment_id=open_enrollment.id, progress_pct=40
    )
    enrollment_services.cancel_enrollment(db_session, enrollment_id=open_enrollment.id)
    db_session.commit()

    again = enrollment_services.enroll(
        db_session,
        schedule_id=open_enrollment.schedule_id,
        employee_id=open_enrollment.employee_id,
    )
    assert again.id == open_enrollment.id
    assert again.status == EnrollmentStatus.PENDING
    assert again.progress_pct == 0


@pytest.mark.parametrize("score", [-1, 100.5, True, "90", None])
def test_record_completion_rejects_invalid_scores(db_session, open_enrollment, score):
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.record_completion(
            db_session, enrollment_id=open_enrollment.id, final_score=score
        )
    assert excinfo.value.kind == ErrorKind.VALIDATION
    assert excinfo.value.field == "final_score"
    assert open_enrollment.status == EnrollmentStatus.PENDING


def test_record_completion_sets_completed_at(db_session, open_enrollment):
    done = enrollment_services.record_completion(
        db_session, enrollment_id=open_enrollment.id, final_score=85.5
    )
    assert done.status == EnrollmentStatus.COMPLETED
    assert done.completed_at is not None
    assert done.progress_pct == 100
    assert done.final_score == 85.5

    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.record_completion(
            db_session, enrollment_id=open_enrollment.id, final_score=90
        )
    assert excinfo.value.code == "ENROLLMENT_ALREADY_COMPLETED"


def test_progress_moves_forward_only(db_session, open_enrollment):
    updated = enrollment_services.update_progress(
        db_session, enrollment_id=open_enrollment.id, progress_pct=60
    )
    assert updated.status == EnrollmentStatus.IN_PROGRESS

    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.update_progress(
            db_session, enrollment_id=open_enrollment.id, progress_pct=30
        )
    assert excinfo.value.code == "PROGRESS_REGRESSION"

    full = enrollment_services.update_progress(
        db_session, enrollment_id=open_enrollment.id, progress_pct=100
    )
    assert full.status == EnrollmentStatus.IN_PROGRESS
    assert full.completed_at is None


def test_progress_rejects_fractional_percentage(db_session, open_enrollment):
    with pytest.raises(ServiceError):
        enrollment_services.update_progress(
            db_session, enrollment_id=open_enrollment.id, progress_pct=12.5
        )


def test_cancelling_schedule_cancels_open_enrollments(db_session, open_enrollment):
    enrollment_services.update_schedule_status(
        db_session, schedule_id=open_enrollment.schedule_id, status=ScheduleStatus.CANCELLED
    )
    db_session.commit()

    assert open_enrollment.status == EnrollmentStatus.CANCELLED
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.update_schedule_status(
            db_session, schedule_id=open_enrollment.schedule_id, status=ScheduleStatus.ACTIVE
        )
    assert excinfo.value.code == "INVALID_TRANSITION"


def test_completed_enrollment_cannot_be_cancelled(db_session, open_enrollment):
    enrollment_services.record_completion(
        db_session, enrollment_id=open_enrollment.id, final_score=90
    )
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.cancel_enrollment(db_session, enrollment_id=open_enrollment.id)
    assert excinfo.value.code == "ENROLLMENT_COMPLETED"


def test_enroll_in_next_schedule_picks_earliest_open(
    db_session, make_employee, make_module, make_schedule
):
    module = make_module()
    make_schedule(module, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
    later = make_schedule(module, start_date=date(2024, 9, 1), end_date=date(2024, 9, 30))
    sooner = make_schedule(module, start_date=date(2024, 6, 1), end_date=date(2024, 6, 30))
    employee = make_employee()

    enrollment = enrollment_services.enroll_in_next_schedule(
        db_session, employee_id=employee.id, module_id=module.id, today=date(2024, 5, 15)
    )
    assert enrollment.schedule_id == sooner.id
    assert enrollment.schedule_id != later.id

    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.enroll_in_next_schedule(
            db_session, employee_id=employee.id, module_id=module.id, today=date(2025, 1, 1)
        )
    assert excinfo.value.code == "NO_OPEN_SCHEDULE"


def test_upcoming_schedules_skip_closed_and_past(db_session, unit, make_module, make_schedule):
    module = make_module()
    make_schedule(module, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
    make_schedule(module, start_date=date(2024, 7, 1), end_date=date(2024, 7, 2), status=ScheduleStatus.CANCELLED)
    upcoming = make_schedule(module, start_date=date(2024, 7, 10), end_date=date(2024, 7, 12))

    schedules = enrollment_services.list_upcoming_schedules(
        db_session, unit_id=unit.id, today=date(2024, 6, 1)
    )
    assert [s.id for s in schedules] == [upcoming.id]


def test_list_employee_enrollments_only_returns_own_rows(
    db_session, open_enrollment, make_employee, make_module, make_schedule
):
    second_schedule = make_schedule(make_module(title="Hand Hygiene"))
    second = enrollment_services.enroll(
        db_session, schedule_id=second_schedule.id, employee_id=open_enrollment.employee_id
    )
    colleague = make_employee()
    enrollment_services.enroll(db_session, schedule_id=second_schedule.id, employee_id=colleague.id)
    db_session.commit()

    rows = enrollment_services.list_employee_enrollments(
        db_session, employee_id=open_enrollment.employee_id
    )
    assert {row.id for row in rows} == {open_enrollment.id, second.id}


@pytest.mark.parametrize(
    "completed_at",
    [
        datetime(2099, 1, 1, tzinfo=timezone.utc),
        datetime(2099, 1, 1),
    ],
)
def test_record_completion_rejects_future_dates(db_session, open_enrollment, completed_at):
    with pytest.raises(ServiceError) as excinfo:
        enrollment_services.record_completion(
            db_session,
            enrollment_id=open_enrollment.id,
            final_score=100,
            completed_at=completed_at,
        )
    assert excinfo.value.kind == ErrorKind.VALIDATION
    assert excinfo.value.code == "COMPLETION_IN_FUTURE"
    assert excinfo.value.field == "completed_at"
    assert open_enrollment.status == EnrollmentStatus.PENDING
    assert open_enrollment.completed_at is None


def test_lost_enroll_race_returns_winner_and_keeps_pending_work(
    db_session, open_enrollment, monkeypatch
):
    from labedu.apps.organization import models as org_models

    pending_unit = org_models.Unit(name="Satellite Lab")
    db_session.add(pending_unit)
    db_session.flush()

    # The first lookup misses the row, as if another request inserted it meanwhile.
    real_lookup = enrollment_services._find_enrollment
    calls = {"n": 0}

    def racing_lookup(db, schedule_id, employee_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_lookup(db, schedule_id, employee_id)

    monkeypatch.setattr(enrollment_services, "_find_enrollment", racing_lookup)

    result = enrollment_services.enroll(
        db_session,
        schedule_id=open_enrollment.schedule_id,
        employee_id=open_enrollment.employee_id,
    )
    db_session.commit()

    assert result.id == open_enrollment.id
    assert db_session.get(org_models.Unit, pending_unit.id) is not None
