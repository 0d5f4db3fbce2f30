from __future__ import annotations

import enum
from typing import List, Optional

from pydantic import BaseModel

from ...errors import ErrorKind


class ConnectionStatus(str, enum.Enum):
    HEALTHY = "HEALTHY"
    # Reachable, but this account cannot use the schema as expected.
    DEGRADED = "DEGRADED"
    UNREACHABLE = "UNREACHABLE"


class ConnectionHealth(BaseModel):
    status: ConnectionStatus
    reason: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    latency_ms: Optional[int] = None


class StepStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"


class DiagnosticStep(BaseModel):
    id: str
    label: str
    status: StepStatus
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_code: Optional[str] = None


class DiagnosticsReport(BaseModel):
    ok: bool
    steps: List[DiagnosticStep]
