# backend/labedu/security.py

"""
Security helpers for LabEdu.

Responsibilities:
- Decoding bearer JWTs issued by the external identity provider
- FastAPI dependencies for the current employee
- System-role access helpers for router dependencies

Passwords, sign-in and sign-up are owned by the identity provider; this
service never holds a privileged credential on behalf of a client.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .apps.organization import models as org_models
from .apps.organization.models import SystemRole
from .database import get_read_db

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------


def _jwt_secret() -> str:
    secret = os.getenv("AUTH_JWT_SECRET")
    if not secret:
        raise RuntimeError("AUTH_JWT_SECRET is not set.")
    return secret


def _jwt_algorithm() -> str:
    return os.getenv("AUTH_JWT_ALGORITHM", "HS256")


def _jwt_audience() -> Optional[str]:
    return os.getenv("AUTH_JWT_AUDIENCE") or None


bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT with the same claims the identity provider issues.

    Used by local tooling and tests; production tokens come from the
    identity provider. `data` must include the subject:
        {"sub": employee.id}
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=60)
    )
    to_encode.update({"exp": expire})
    audience = _jwt_audience()
    if audience and "aud" not in to_encode:
        to_encode["aud"] = audience
    return jwt.encode(to_encode, _jwt_secret(), algorithm=_jwt_algorithm())


def decode_access_token(token: str) -> dict:
    audience = _jwt_audience()
    return jwt.decode(
        token,
        _jwt_secret(),
        algorithms=[_jwt_algorithm()],
        audience=audience,
        options={"verify_aud": audience is not None},
    )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_employee(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_read_db),
) -> org_models.Employee:
    """
    Decode the bearer token and return the matching active Employee.

    The token's `sub` claim is the identity provider account id, which is
    also the employee id.
    """
    if credentials is None or not credentials.credentials:
        raise _credentials_exception()
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise _credentials_exception()

    employee_id = payload.get("sub")
    if not employee_id:
        raise _credentials_exception()

    employee = db.get(org_models.Employee, str(employee_id).strip())
    if employee is None:
        raise _credentials_exception()
    if not employee.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive employee account",
        )
    return employee


def is_admin(employee: org_models.Employee) -> bool:
    return employee.system_role == SystemRole.ADMIN


def require_system_roles(
    *allowed_roles: Union[SystemRole, str],
) -> Callable[[org_models.Employee], org_models.Employee]:
    """
    Dependency factory to enforce that the current employee has one of the
    given system roles.

    Usage:
        @router.post(...)
        def endpoint(
            current: Employee = Depends(require_system_roles("UNIT_MANAGER")),
        ):
            ...

    ADMIN always passes, even if not listed.
    """
    normalised_roles: Set[SystemRole] = set()
    for r in allowed_roles:
        if isinstance(r, SystemRole):
            normalised_roles.add(r)
        else:
            try:
                normalised_roles.add(SystemRole(r))
            except ValueError:
                raise ValueError(f"Unknown role {r!r} passed to require_system_roles()")

    def dependency(
        current: org_models.Employee = Depends(get_current_employee),
    ) -> org_models.Employee:
        if is_admin(current):
            return current
        if current.system_role not in normalised_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current

    return dependency


require_admin = require_system_roles(SystemRole.ADMIN)
