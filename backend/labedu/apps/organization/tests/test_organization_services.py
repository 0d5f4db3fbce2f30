from __future__ import annotations

from datetime import date

import pytest

from labedu.apps.organization import models as org_models
from labedu.apps.organization import services as org_services
from labedu.errors import ErrorKind, ServiceError


def test_create_employee_links_unit_sector_and_role(db_session, unit, job_role):
    sector = org_services.create_sector(db_session, unit_id=unit.id, name="Collection")
    employee = org_services.create_employee(
        db_session,
        employee_id="auth-001",
        full_name="  Ana Lima ",
        national_id=" 12345678900 ",
        admission_date=date(2024, 1, 10),
        email="ana@lab.example",
        unit_id=unit.id,
        sector_id=sector.id,
        role_id=job_role.id,
    )
    db_session.commit()

    assert employee.full_name == "Ana Lima"
    assert employee.national_id == "12345678900"
    assert employee.system_role == org_models.SystemRole.COLLABORATOR
    assert employee.is_active is True
    assert employee.must_change_password is True


def test_create_employee_rejects_duplicate_national_id(db_session, unit, make_employee):
    existing = make_employee()

    with pytest.raises(ServiceError) as excinfo:
        org_services.create_employee(
            db_session,
            employee_id="auth-002",
            full_name="Other",
            national_id=existing.national_id,
            admission_date=date(2024, 1, 10),
            unit_id=unit.id,
        )
    assert excinfo.value.kind == ErrorKind.CONFLICT
    assert excinfo.value.code == "DUPLICATE_NATIONAL_ID"


def test_create_employee_rejects_sector_from_other_unit(db_session, unit):
    other_unit = org_services.create_unit(db_session, name="Branch Lab")
    foreign_sector = org_services.create_sector(db_session, unit_id=other_unit.id, name="Reception")
    db_session.commit()

    with pytest.raises(ServiceError) as excinfo:
        org_services.create_employee(
            db_session,
            employee_id="auth-003",
            full_name="Bruno",
            national_id="99999999999",
            admission_date=date(2024, 1, 10),
            unit_id=unit.id,
            sector_id=foreign_sector.id,
        )
    assert excinfo.value.kind == ErrorKind.VALIDATION
    assert excinfo.value.field == "sector_id"


def test_create_employee_with_unknown_role_is_not_found(db_session, unit):
    with pytest.raises(ServiceError) as excinfo:
        org_services.create_employee(
            db_session,
            employee_id="auth-004",
            full_name="Carla",
            national_id="88888888888",
            admission_date=date(2024, 1, 10),
            unit_id=unit.id,
            role_id="ROLE-MISSING",
        )
    assert excinfo.value.kind == ErrorKind.NOT_FOUND


def test_list_employees_hides_inactive_and_filters_by_search(db_session, make_employee):
    make_employee(full_name="Ana Lima")
    make_employee(full_name="Bruno Costa")
    make_employee(full_name="Carla Dias", is_active=False)

    active = org_services.list_employees(db_session)
    assert [e.full_name for e in active] == ["Ana Lima", "Bruno Costa"]

    everyone = org_services.list_employees(db_session, include_inactive=True)
    assert len(everyone) == 3

    found = org_services.list_employees(db_session, search="bruno")
    assert [e.full_name for e in found] == ["Bruno Costa"]


def test_delete_unit_blocked_while_employees_assigned(db_session, unit, make_employee):
    make_employee()

    with pytest.raises(ServiceError) as excinfo:
        org_services.delete_unit(db_session, unit_id=unit.id)
    assert excinfo.value.code == "UNIT_IN_USE"
    assert excinfo.value.details["blocking_count"] == 1


def test_delete_unit_removes_its_sectors(db_session):
    unit = org_services.create_unit(db_session, name="Temporary Lab")
    sector = org_services.create_sector(db_session, unit_id=unit.id, name="Storage")
    db_session.commit()
    sector_id = sector.id

    org_services.delete_unit(db_session, unit_id=unit.id)
    db_session.commit()

    assert db_session.get(org_models.Unit, unit.id) is None
    assert db_session.get(org_models.Sector, sector_id) is None


def test_delete_employee_with_history_requires_deactivation(
    db_session, make_employee, make_module, make_schedule
):
    from labedu.apps.training import enrollment as enrollment_services

    employee = make_employee()
    schedule = make_schedule(make_module())
    enrollment_services.enroll(db_session, schedule_id=schedule.id, employee_id=employee.id)
    db_session.commit()

    with pytest.raises(ServiceError) as excinfo:
        org_services.delete_employee(db_session, employee_id=employee.id)
    assert excinfo.value.code == "EMPLOYEE_HAS_HISTORY"

    org_services.set_employee_active(db_session, employee_id=employee.id, is_active=False)
    db_session.commit()
    assert org_services.get_employee(db_session, employee.id).is_active is False


def test_sectors_rename_and_delete(db_session, unit, make_employee):
    sector = org_services.create_sector(db_session, unit_id=unit.id, name="Collection")
    spare = org_services.create_sector(db_session, unit_id=unit.id, name="Archive")
    db_session.commit()

    renamed = org_services.rename_sector(db_session, sector_id=sector.id, name=" Sample Collection ")
    assert renamed.name == "Sample Collection"

    employee = make_employee()
    org_services.update_employee(db_session, employee_id=employee.id, changes={"sector_id": sector.id})
    db_session.commit()

    with pytest.raises(ServiceError) as excinfo:
        org_services.delete_sector(db_session, sector_id=sector.id)
    assert excinfo.value.code == "SECTOR_IN_USE"
    assert excinfo.value.details["blocking_count"] == 1

    org_services.delete_sector(db_session, sector_id=spare.id)
    db_session.commit()
    assert [s.id for s in org_services.list_sectors(db_session, unit_id=unit.id)] == [sector.id]


def test_delete_employee_without_history(db_session, make_employee):
    employee = make_employee()

    org_services.delete_employee(db_session, employee_id=employee.id)
    db_session.commit()

    with pytest.raises(ServiceError) as excinfo:
        org_services.get_employee(db_session, employee.id)
    assert excinfo.value.kind == ErrorKind.NOT_FOUND
