from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from labedu.apps.organization import models as org_models
from labedu.database import Database
from labedu.main import create_app
from labedu.security import create_access_token


@pytest.fixture()
def database(tmp_path):
    database = Database(f"sqlite+pysqlite:///{tmp_path / 'labedu.db'}")
    database.create_all()
    session = database.WriteSession()
    session.add_all(
        [
            org_models.Employee(
                id="admin-1",
                full_name="Admin",
                national_id="11111111111",
                system_role=org_models.SystemRole.ADMIN,
                admission_date=date(2023, 1, 2),
            ),
            org_models.Employee(
                id="user-2",
                full_name="Collaborator",
                national_id="22222222222",
                system_role=org_models.SystemRole.COLLABORATOR,
                admission_date=date(2023, 1, 2),
            ),
            org_models.Employee(
                id="gone-3",
                full_name="Former",
                national_id="33333333333",
                admission_date=date(2020, 1, 2),
                is_active=False,
            ),
        ]
    )
    session.commit()
    session.close()
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture()
def client(database):
    with TestClient(create_app(database=database)) as test_client:
        yield test_client


def _auth(employee_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': employee_id})}"}


def test_health_endpoints(client):
    assert client.get("/health").json() == {"status": "ok"}

    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["status"] == "HEALTHY"


def test_requests_need_a_valid_active_employee(client):
    assert client.get("/organization/employees/me").status_code == 401
    assert client.get("/organization/employees/me", headers={"Authorization": "Bearer junk"}).status_code == 401
    assert client.get("/organization/employees/me", headers=_auth("nobody")).status_code == 401
    assert client.get("/organization/employees/me", headers=_auth("gone-3")).status_code == 403

    me = client.get("/organization/employees/me", headers=_auth("user-2"))
    assert me.status_code == 200
    assert me.json()["id"] == "user-2"


def test_collaborator_cannot_author_modules(client):
    response = client.post("/training/modules", json={"title": "Biosafety"}, headers=_auth("user-2"))
    assert response.status_code == 403


def test_service_errors_map_to_status_and_code(client):
    created = client.post("/training/modules", json={"title": "Biosafety"}, headers=_auth("admin-1"))
    assert created.status_code == 201
    module = created.json()
    assert module["status"] == "DRAFT"

    draft_schedule = client.post(
        "/training/schedules",
        json={"module_id": module["id"], "start_date": "2024-05-01", "end_date": "2024-05-02"},
        headers=_auth("admin-1"),
    )
    assert draft_schedule.status_code == 400
    assert draft_schedule.json()["code"] == "MODULE_NOT_PUBLISHED"
    assert draft_schedule.json()["retryable"] is False

    missing = client.get("/training/modules/MOD-NOPE/lessons", headers=_auth("admin-1"))
    assert missing.status_code == 404
    assert missing.json()["code"] == "TRAINING_MODULE_NOT_FOUND"


def test_enrollment_flow_through_api(client):
    admin = _auth("admin-1")
    module = client.post(
        "/training/modules", json={"title": "Hand Hygiene", "min_score_approval": 70}, headers=admin
    ).json()
    assert client.post(f"/training/modules/{module['id']}/publish", headers=admin).status_code == 200

    schedule = client.post(
        "/training/schedules",
        json={"module_id": module["id"], "start_date": "2024-05-01", "end_date": "2024-05-31"},
        headers=admin,
    ).json()

    user = _auth("user-2")
    enrollment = client.post("/training/enrollments", json={"schedule_id": schedule["id"]}, headers=user)
    assert enrollment.status_code == 201
    enrollment_id = enrollment.json()["id"]

    other = client.post(
        "/training/enrollments",
        json={"schedule_id": schedule["id"], "employee_id": "admin-1"},
        headers=user,
    )
    assert other.status_code == 403

    done = client.post(
        f"/training/enrollments/{enrollment_id}/complete", json={"final_score": 92}, headers=user
    )
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"

    certificate = client.post(f"/training/enrollments/{enrollment_id}/certificate", headers=user)
    assert certificate.status_code == 200
    code = certificate.json()["verification_code"]

    verified = client.get(f"/training/certificates/verify/{code}")
    assert verified.status_code == 200
    assert verified.json()["valid"] is True
    assert verified.json()["module_title"] == "Hand Hygiene"


def test_unknown_certificate_code_is_not_valid(client):
    response = client.get("/training/certificates/verify/ABCDEFGHIJKLMNOP")
    assert response.status_code == 200
    assert response.json()["valid"] is False


def test_content_endpoints_report_missing_configuration(client):
    response = client.post("/content/quiz", json={"content": "Procedure"}, headers=_auth("admin-1"))
    assert response.status_code == 500
    assert response.json()["code"] == "CONTENT_SERVICE_NOT_CONFIGURED"


def test_diagnostics_for_admin(client):
    assert client.get("/diagnostics/run", headers=_auth("user-2")).status_code == 403

    report = client.get("/diagnostics/run", headers=_auth("admin-1"))
    assert report.status_code == 200
    assert report.json()["ok"] is True


def _open_enrollment(client, employee_header: dict) -> str:
    admin = _auth("admin-1")
    module = client.post("/training/modules", json={"title": "Waste Disposal"}, headers=admin).json()
    client.post(f"/training/modules/{module['id']}/publish", headers=admin)
    schedule = client.post(
        "/training/schedules",
        json={"module_id": module["id"], "start_date": "2024-02-01", "end_date": "2024-03-31"},
        headers=admin,
    ).json()
    response = client.post(
        "/training/enrollments", json={"schedule_id": schedule["id"]}, headers=employee_header
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_self_service_completion_ignores_supplied_date(client):
    user = _auth("user-2")
    enrollment_id = _open_enrollment(client, user)

    done = client.post(
        f"/training/enrollments/{enrollment_id}/complete",
        json={"final_score": 100, "completed_at": "2020-01-01T00:00:00Z"},
        headers=user,
    )
    assert done.status_code == 200
    assert date.fromisoformat(done.json()["completed_at"][:10]) >= date.today() - timedelta(days=1)


def test_admin_may_backdate_but_not_postdate_completion(client):
    admin = _auth("admin-1")
    enrollment_id = _open_enrollment(client, admin)

    future = client.post(
        f"/training/enrollments/{enrollment_id}/complete",
        json={"final_score": 90, "completed_at": "2099-01-01T00:00:00Z"},
        headers=admin,
    )
    assert future.status_code == 400
    assert future.json()["code"] == "COMPLETION_IN_FUTURE"

    past = client.post(
        f"/training/enrollments/{enrollment_id}/complete",
        json={"final_score": 90, "completed_at": "2024-03-01T09:00:00Z"},
        headers=admin,
    )
    assert past.status_code == 200
    assert past.json()["completed_at"].startswith("2024-03-01")
