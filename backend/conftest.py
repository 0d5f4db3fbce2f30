from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret-key"
os.environ.pop("GENAI_API_KEY", None)

import labedu  # noqa: E402,F401
from labedu.database import Base  # noqa: E402
from labedu.apps.organization import models as org_models  # noqa: E402
from labedu.apps.training import models as training_models  # noqa: E402


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    TestingSession = sessionmaker(
        bind=db_engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# SEED HELPERS
# ---------------------------------------------------------------------------


@pytest.fixture()
def unit(db_session) -> org_models.Unit:
    unit = org_models.Unit(name="Central Lab", technical_manager="Dr. Souza")
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture()
def job_role(db_session) -> org_models.JobRole:
    role = org_models.JobRole(name="Phlebotomist", is_critical_function=True)
    db_session.add(role)
    db_session.commit()
    return role


@pytest.fixture()
def make_employee(db_session, unit):
    counter = {"n": 0}

    def _make(
        *,
        role_id=None,
        admission_date=date(2024, 1, 10),
        system_role=org_models.SystemRole.COLLABORATOR,
        is_active=True,
        full_name=None,
        unit_id=None,
    ) -> org_models.Employee:
        counter["n"] += 1
        n = counter["n"]
        employee = org_models.Employee(
            id=f"user-{n}",
            full_name=full_name or f"Employee {n}",
            national_id=f"000000000{n:02d}",
            email=f"employee{n}@lab.example",
            unit_id=unit_id or unit.id,
            role_id=role_id,
            system_role=system_role,
            admission_date=admission_date,
            is_active=is_active,
        )
        db_session.add(employee)
        db_session.commit()
        return employee

    return _make


@pytest.fixture()
def make_module(db_session):
    def _make(
        *,
        title="Biosafety Basics",
        status=training_models.ModuleStatus.PUBLISHED,
        min_score_approval=70,
    ) -> training_models.TrainingModule:
        module = training_models.TrainingModule(
            title=title,
            training_type=training_models.TrainingType.BIOSSEGURANCA,
            min_score_approval=min_score_approval,
            status=status,
        )
        db_session.add(module)
        db_session.commit()
        return module

    return _make


@pytest.fixture()
def make_schedule(db_session, unit):
    def _make(
        module,
        *,
        start_date=date(2024, 5, 1),
        end_date=date(2024, 6, 30),
        status=training_models.ScheduleStatus.ACTIVE,
    ) -> training_models.TrainingSchedule:
        schedule = training_models.TrainingSchedule(
            module_id=module.id,
            unit_id=unit.id,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        db_session.add(schedule)
        db_session.commit()
        return schedule

    return _make
