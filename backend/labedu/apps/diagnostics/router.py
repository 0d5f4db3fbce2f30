from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...security import require_admin
from ..organization import models as org_models
from . import schemas, services

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


@router.get("/connection", response_model=schemas.ConnectionHealth)
def connection_health(
    timeout_seconds: float = services.DEFAULT_TIMEOUT_SECONDS,
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(require_admin),
):
    return services.check_connection(db, timeout_seconds=timeout_seconds)


@router.get("/run", response_model=schemas.DiagnosticsReport)
def run_diagnostics(
    db: Session = Depends(get_read_db),
    current: org_models.Employee = Depends(require_admin),
):
    return services.run_diagnostics(db, employee_id=current.id)
