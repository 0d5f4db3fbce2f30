# backend/labedu/errors.py
"""
Typed errors shared by every LabEdu service.

Services raise `ServiceError` with an `ErrorKind`; routers never see raw
driver exceptions because `translate_db_error` maps them at the store
boundary by SQLSTATE code. The FastAPI handler at the bottom turns a
`ServiceError` into a short JSON body with a human-readable `detail`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    TRANSIENT = "TRANSIENT"
    # Generative service answered, but not with JSON matching the schema.
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INTERNAL = "INTERNAL"


HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INVALID_RESPONSE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass(eq=False)
class ServiceError(Exception):
    kind: ErrorKind
    message: str
    code: Optional[str] = None
    field: Optional[str] = None
    details: Dict[str, Any] = dataclass_field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "detail": user_message(self),
            "kind": self.kind.value,
            "code": self.code or self.kind.value,
            "field": self.field,
            "retryable": self.retryable,
        }
        payload.update(self.details)
        return payload


# ---------------------------------------------------------------------------
# CONSTRUCTORS
# ---------------------------------------------------------------------------


def validation_error(field_name: str, message: str, code: str = "VALIDATION") -> ServiceError:
    return ServiceError(ErrorKind.VALIDATION, message, code=code, field=field_name)


def not_found(entity: str, entity_id: Any) -> ServiceError:
    return ServiceError(
        ErrorKind.NOT_FOUND,
        f"{entity} {entity_id} was not found.",
        code=f"{entity.upper().replace(' ', '_')}_NOT_FOUND",
        details={"entity": entity, "entity_id": str(entity_id)},
    )


def conflict(message: str, code: str = "CONFLICT", **details: Any) -> ServiceError:
    return ServiceError(ErrorKind.CONFLICT, message, code=code, details=details)


# ---------------------------------------------------------------------------
# STORE BOUNDARY
# ---------------------------------------------------------------------------

# SQLSTATE codes (PostgreSQL) that carry a specific meaning for callers.
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"
_INSUFFICIENT_PRIVILEGE = "42501"
_QUERY_CANCELED = "57014"  # statement_timeout fired
_UNDEFINED_TABLE = "42P01"
_UNDEFINED_COLUMN = "42703"


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, exc):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None


def translate_db_error(exc: BaseException) -> ServiceError:
    """
    Map a SQLAlchemy / DBAPI exception to a typed ServiceError.

    Classification is by SQLSTATE and exception class only.
    """
    if isinstance(exc, ServiceError):
        return exc

    code = _sqlstate(exc)

    if code == _INSUFFICIENT_PRIVILEGE:
        return ServiceError(
            ErrorKind.PERMISSION_DENIED,
            "The database refused this operation for your account.",
            code="STORE_PERMISSION_DENIED",
        )
    if code == _UNIQUE_VIOLATION:
        return conflict("A record with the same data already exists.", code="DUPLICATE_RECORD")
    if code == _FOREIGN_KEY_VIOLATION:
        return conflict(
            "This record is still referenced by other records.",
            code="REFERENCED_RECORD",
        )
    if code == _QUERY_CANCELED:
        return ServiceError(
            ErrorKind.TRANSIENT,
            "The database took too long to answer.",
            code="STORE_TIMEOUT",
        )
    if code in (_UNDEFINED_TABLE, _UNDEFINED_COLUMN):
        return ServiceError(
            ErrorKind.INTERNAL,
            "The database schema is missing a table or column required by this operation.",
            code="STORE_SCHEMA_MISSING",
            details={"sqlstate": code},
        )

    if isinstance(exc, sa_exc.IntegrityError):
        return conflict("This change conflicts with existing records.", code="INTEGRITY_CONFLICT")
    if isinstance(exc, sa_exc.TimeoutError):
        return ServiceError(
            ErrorKind.TRANSIENT,
            "No database connection became available in time.",
            code="STORE_TIMEOUT",
        )
    if isinstance(exc, sa_exc.OperationalError) or (
        isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated
    ):
        return ServiceError(
            ErrorKind.TRANSIENT,
            "The database could not be reached.",
            code="STORE_UNAVAILABLE",
        )

    logger.error("Unclassified store error", extra={"error": str(exc), "sqlstate": code})
    return ServiceError(
        ErrorKind.INTERNAL,
        "The database reported an unexpected error.",
        code="STORE_ERROR",
        details={"sqlstate": code} if code else {},
    )


# ---------------------------------------------------------------------------
# USER-FACING MESSAGES
# ---------------------------------------------------------------------------


def user_message(exc: BaseException) -> str:
    """
    One short sentence suitable for showing to the operator.
    """
    if isinstance(exc, ServiceError):
        message = exc.message.strip() or "The operation failed."
        if exc.retryable and "try again" not in message.lower():
            message = f"{message} Please try again."
        return message
    if isinstance(exc, sa_exc.SQLAlchemyError):
        return user_message(translate_db_error(exc))
    return "An unexpected error occurred."


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.kind in (ErrorKind.TRANSIENT, ErrorKind.INTERNAL, ErrorKind.INVALID_RESPONSE):
        logger.warning(
            "Request failed",
            extra={"path": request.url.path, "kind": exc.kind.value, "code": exc.code},
        )
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND[exc.kind], content=exc.as_dict())
