"""
Certificate verification codes and issuance.

The verification code printed on a certificate is derived from the
completion facts only: employee name, module title, completion date and
score, joined with "|". The same facts always give the same code, so a
reprint carries the code of the original.

This is a low-stakes check for printed paper and NOT a security control:
there is no secret, the code is truncated to 16 characters, and anyone who
knows the facts can compute it. Never use it for access decisions.

The printed code is base64 of the raw canonical bytes, so only the first 12
bytes (usually just the employee name) reach it and two certificates of the
same person often share a code. derive_hashed_verification_code() is the
score-sensitive alternative for callers that need distinct codes.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import not_found, validation_error
from ..organization import models as org_models
from . import models
from .compliance import qualifies
from .schemas import CertificateVerification

logger = logging.getLogger(__name__)

CODE_LENGTH = 16
DELIMITER = "|"
CERTIFICATE_DATE_FORMAT = "%d/%m/%Y"

DateLike = Union[str, date, datetime]


def _format_date(value: DateLike) -> str:
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime(CERTIFICATE_DATE_FORMAT)
    return str(value)


def _format_score(score: Union[int, float]) -> str:
    # 85.0 prints as "85", the way it appears on the certificate.
    if isinstance(score, float) and score.is_integer():
        return str(int(score))
    return str(score)


def canonical_certificate_string(
    employee_name: str,
    module_title: str,
    completion_date: DateLike,
    score: Union[int, float],
) -> str:
    return DELIMITER.join(
        [employee_name, module_title, _format_date(completion_date), _format_score(score)]
    )


def derive_verification_code(
    employee_name: str,
    module_title: str,
    completion_date: DateLike,
    score: Union[int, float],
) -> str:
    """
    Code printed on certificates: base64 of the raw UTF-8 bytes of the
    canonical string, first 16 characters, uppercased.

    >>> derive_verification_code("Maria Souza", "Biosseguranca", "01/06/2024", 85)
    'TWFYAWEGU291EMF8'
    """
    canonical = canonical_certificate_string(employee_name, module_title, completion_date, score)
    return base64.b64encode(canonical.encode("utf-8")).decode("ascii")[:CODE_LENGTH].upper()


def derive_hashed_verification_code(
    employee_name: str,
    module_title: str,
    completion_date: DateLike,
    score: Union[int, float],
) -> str:
    """
    Same shape as derive_verification_code() but taken from the SHA-256
    digest of the canonical string, so every fact (score included) changes
    the code. Still unsalted and NOT a security control.
    """
    canonical = canonical_certificate_string(employee_name, module_title, completion_date, score)
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")[:CODE_LENGTH].upper()


# ---------------------------------------------------------------------------
# ISSUANCE / VERIFICATION
# ---------------------------------------------------------------------------


def _existing_certificate(db: Session, enrollment_id: str) -> Optional[models.Certificate]:
    return (
        db.query(models.Certificate)
        .filter(models.Certificate.enrollment_id == enrollment_id)
        .first()
    )


def issue_certificate(
    db: Session,
    *,
    enrollment_id: str,
    pdf_storage_path: Optional[str] = None,
) -> models.Certificate:
    """
    Issue (or return the already issued) certificate for an enrollment.

    Only qualifying enrollments get one: completed with a score at or above
    the module's passing mark.
    """
    existing = _existing_certificate(db, enrollment_id)
    if existing is not None:
        return existing

    enrollment = db.get(models.Enrollment, enrollment_id)
    if enrollment is None:
        raise not_found("Enrollment", enrollment_id)

    schedule = db.get(models.TrainingSchedule, enrollment.schedule_id)
    module = db.get(models.TrainingModule, schedule.module_id) if schedule else None
    if module is None:
        raise not_found("Training module", schedule.module_id if schedule else enrollment.schedule_id)

    if not qualifies(enrollment, module):
        raise validation_error(
            "enrollment_id",
            "Certificates are only issued for completed enrollments with a passing score.",
            code="ENROLLMENT_NOT_QUALIFYING",
        )

    employee = db.get(org_models.Employee, enrollment.employee_id)
    if employee is None:
        raise not_found("Employee", enrollment.employee_id)

    certificate = models.Certificate(
        enrollment_id=enrollment.id,
        employee_id=employee.id,
        verification_code=derive_verification_code(
            employee.full_name,
            module.title,
            enrollment.completed_at,
            enrollment.final_score,
        ),
        pdf_storage_path=pdf_storage_path,
    )
    try:
        with db.begin_nested():
            db.add(certificate)
            db.flush()
    except IntegrityError:
        # Issued concurrently; only the savepoint is rolled back.
        winner = _existing_certificate(db, enrollment_id)
        if winner is None:
            raise
        return winner

    logger.info(
        "Certificate issued",
        extra={"enrollment_id": enrollment.id, "verification_code": certificate.verification_code},
    )
    return certificate


def verify_certificate(db: Session, code: str) -> CertificateVerification:
    normalised = (code or "").strip().upper()
    if len(normalised) != CODE_LENGTH:
        return CertificateVerification(valid=False, verification_code=normalised)

    matches = (
        db.query(models.Certificate)
        .filter(models.Certificate.verification_code == normalised)
        .order_by(models.Certificate.issued_at.asc(), models.Certificate.id.asc())
        .all()
    )
    if not matches:
        return CertificateVerification(valid=False, verification_code=normalised)
    # Codes of the same person can coincide; report the first issued one.
    certificate = matches[0]

    enrollment = db.get(models.Enrollment, certificate.enrollment_id)
    employee = db.get(org_models.Employee, certificate.employee_id)
    schedule = db.get(models.TrainingSchedule, enrollment.schedule_id) if enrollment else None
    module = db.get(models.TrainingModule, schedule.module_id) if schedule else None

    return CertificateVerification(
        valid=True,
        verification_code=normalised,
        employee_name=employee.full_name if employee else None,
        module_title=module.title if module else None,
        completed_at=enrollment.completed_at if enrollment else None,
        final_score=enrollment.final_score if enrollment else None,
        issued_at=certificate.issued_at,
        match_count=len(matches),
    )
