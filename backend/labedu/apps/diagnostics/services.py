"""
Store health checks.

Failures are classified from typed store errors (SQLSTATE / exception
class), never from message text. A permission failure is not a healthy
connection: it is reported as DEGRADED with its own reason so operators fix
grants instead of retrying.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import Base
from ...errors import ErrorKind, ServiceError, not_found, translate_db_error, user_message
from ..organization import models as org_models
from .schemas import (
    ConnectionHealth,
    ConnectionStatus,
    DiagnosticsReport,
    DiagnosticStep,
    StepStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def _apply_statement_timeout(db: Session, timeout_seconds: float) -> None:
    bind = db.get_bind()
    if bind.dialect.name == "postgresql":
        # SET does not take bind parameters; the value is an int we built.
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))


def _health_from_error(error: ServiceError) -> ConnectionHealth:
    if error.kind == ErrorKind.TRANSIENT:
        status = ConnectionStatus.UNREACHABLE
    else:
        status = ConnectionStatus.DEGRADED
    return ConnectionHealth(
        status=status,
        reason=error.code,
        error_kind=error.kind,
        message=user_message(error),
    )


def check_connection(
    db: Session,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> ConnectionHealth:
    """
    Probe the store with a cheap count on `units`.

    HEALTHY      : query answered
    DEGRADED     : reachable, but permission denied or schema missing
    UNREACHABLE  : timeout or connection failure
    """
    started = time.monotonic()
    try:
        _apply_statement_timeout(db, timeout_seconds)
        db.execute(select(func.count()).select_from(org_models.Unit.__table__)).scalar()
    except SQLAlchemyError as exc:
        db.rollback()
        health = _health_from_error(translate_db_error(exc))
        logger.warning(
            "Store health check failed",
            extra={"status": health.status.value, "reason": health.reason},
        )
        return health

    latency_ms = int((time.monotonic() - started) * 1000)
    db.rollback()
    return ConnectionHealth(status=ConnectionStatus.HEALTHY, latency_ms=latency_ms)


# ---------------------------------------------------------------------------
# SYSTEM DIAGNOSIS
# ---------------------------------------------------------------------------


def _run_step(
    db: Session,
    step_id: str,
    label: str,
    action: Callable[[], str],
) -> DiagnosticStep:
    try:
        message = action()
    except SQLAlchemyError as exc:
        db.rollback()
        error = translate_db_error(exc)
    except ServiceError as exc:
        error = exc
    else:
        return DiagnosticStep(id=step_id, label=label, status=StepStatus.SUCCESS, message=message)

    return DiagnosticStep(
        id=step_id,
        label=label,
        status=StepStatus.ERROR,
        message=user_message(error),
        error_kind=error.kind,
        error_code=error.code,
    )


def _skipped(step_id: str, label: str, message: str) -> DiagnosticStep:
    return DiagnosticStep(id=step_id, label=label, status=StepStatus.SKIPPED, message=message)


def run_diagnostics(db: Session, *, employee_id: Optional[str] = None) -> DiagnosticsReport:
    """
    Ordered checks: connection, session, required tables, employee read,
    own-profile read. Later steps are skipped when the store is unreachable.
    """
    steps: List[DiagnosticStep] = []

    health = check_connection(db)
    if health.status == ConnectionStatus.HEALTHY:
        steps.append(
            DiagnosticStep(
                id="connection",
                label="Store connection",
                status=StepStatus.SUCCESS,
                message=f"Connected ({health.latency_ms} ms)",
            )
        )
    else:
        steps.append(
            DiagnosticStep(
                id="connection",
                label="Store connection",
                status=StepStatus.ERROR,
                message=health.message,
                error_kind=health.error_kind,
                error_code=health.reason,
            )
        )

    if health.status == ConnectionStatus.UNREACHABLE:
        for step_id, label in (
            ("session", "Employee session"),
            ("tables", "Required tables"),
            ("employees", "Employees table read"),
            ("own_profile", "Own profile read"),
        ):
            steps.append(_skipped(step_id, label, "Skipped: the store is unreachable."))
        return DiagnosticsReport(ok=False, steps=steps)

    if employee_id:
        steps.append(
            DiagnosticStep(
                id="session",
                label="Employee session",
                status=StepStatus.SUCCESS,
                message=f"Signed in as {employee_id}",
            )
        )
    else:
        steps.append(
            DiagnosticStep(
                id="session",
                label="Employee session",
                status=StepStatus.ERROR,
                message="No signed-in employee.",
                error_kind=ErrorKind.PERMISSION_DENIED,
                error_code="NO_SESSION",
            )
        )

    def _tables() -> str:
        existing = set(inspect(db.get_bind()).get_table_names())
        missing = sorted(set(Base.metadata.tables) - existing)
        if missing:
            raise ServiceError(
                ErrorKind.INTERNAL,
                f"Missing tables: {', '.join(missing)}. Run the database migrations.",
                code="STORE_SCHEMA_MISSING",
                details={"missing_tables": missing},
            )
        return f"{len(existing)} tables present"

    steps.append(_run_step(db, "tables", "Required tables", _tables))

    def _employees() -> str:
        db.query(org_models.Employee.id).limit(1).all()
        return "Employees table readable"

    steps.append(_run_step(db, "employees", "Employees table read", _employees))

    if employee_id:

        def _own_profile() -> str:
            if db.get(org_models.Employee, employee_id) is None:
                raise not_found("Employee", employee_id)
            return "Own profile readable"

        steps.append(_run_step(db, "own_profile", "Own profile read", _own_profile))
    else:
        steps.append(_skipped("own_profile", "Own profile read", "Skipped: no signed-in employee."))

    ok = all(step.status == StepStatus.SUCCESS for step in steps)
    return DiagnosticsReport(ok=ok, steps=steps)
