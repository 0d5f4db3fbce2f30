from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from labedu.errors import (
    ErrorKind,
    ServiceError,
    conflict,
    not_found,
    translate_db_error,
    user_message,
)
from labedu.utils.dates import add_months, as_date, as_naive_utc


class _DriverError(Exception):
    def __init__(self, message: str, pgcode: str | None = None):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "exc, kind, code",
    [
        (
            ProgrammingError("UPDATE roles", {}, _DriverError("permission denied", "42501")),
            ErrorKind.PERMISSION_DENIED,
            "STORE_PERMISSION_DENIED",
        ),
        (
            IntegrityError("INSERT INTO roles", {}, _DriverError("duplicate key", "23505")),
            ErrorKind.CONFLICT,
            "DUPLICATE_RECORD",
        ),
        (
            IntegrityError("DELETE FROM roles", {}, _DriverError("still referenced", "23503")),
            ErrorKind.CONFLICT,
            "REFERENCED_RECORD",
        ),
        (
            OperationalError("SELECT 1", {}, _DriverError("canceling statement", "57014")),
            ErrorKind.TRANSIENT,
            "STORE_TIMEOUT",
        ),
        (
            ProgrammingError("SELECT * FROM units", {}, _DriverError("no such relation", "42P01")),
            ErrorKind.INTERNAL,
            "STORE_SCHEMA_MISSING",
        ),
        (
            IntegrityError("INSERT", {}, _DriverError("constraint failed")),
            ErrorKind.CONFLICT,
            "INTEGRITY_CONFLICT",
        ),
        (
            OperationalError("SELECT 1", {}, _DriverError("could not connect")),
            ErrorKind.TRANSIENT,
            "STORE_UNAVAILABLE",
        ),
    ],
)
def test_translate_db_error_uses_sqlstate_and_class(exc, kind, code):
    error = translate_db_error(exc)
    assert error.kind == kind
    assert error.code == code


def test_translate_db_error_ignores_message_text():
    # A message that merely mentions "permission" is not a permission error.
    exc = ProgrammingError("SELECT", {}, _DriverError("permission column is ambiguous", "42702"))
    error = translate_db_error(exc)
    assert error.kind == ErrorKind.INTERNAL
    assert error.details == {"sqlstate": "42702"}


def test_user_message_adds_retry_hint_only_for_transient_errors():
    transient = ServiceError(ErrorKind.TRANSIENT, "The database could not be reached.")
    assert user_message(transient) == "The database could not be reached. Please try again."
    assert user_message(conflict("Already exists.")) == "Already exists."
    assert user_message(RuntimeError("boom")) == "An unexpected error occurred."


def test_service_error_payload():
    error = not_found("Training module", "MOD-1")
    payload = error.as_dict()
    assert payload["code"] == "TRAINING_MODULE_NOT_FOUND"
    assert payload["kind"] == "NOT_FOUND"
    assert payload["entity_id"] == "MOD-1"
    assert payload["retryable"] is False


@pytest.mark.parametrize(
    "base, months, expected",
    [
        (date(2024, 6, 1), 12, date(2025, 6, 1)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 8, 31), 6, date(2025, 2, 28)),
        (date(2024, 2, 29), 36, date(2027, 2, 28)),
        (date(2024, 11, 15), 2, date(2025, 1, 15)),
    ],
)
def test_add_months(base, months, expected):
    assert add_months(base, months) == expected


def test_as_naive_utc_and_as_date():
    aware = datetime(2024, 6, 1, 1, 30, tzinfo=timezone(timedelta(hours=3)))
    assert as_naive_utc(aware) == datetime(2024, 5, 31, 22, 30)
    assert as_naive_utc(None) is None
    assert as_date(aware) == date(2024, 6, 1)
    assert as_date(date(2024, 6, 1)) == date(2024, 6, 1)
