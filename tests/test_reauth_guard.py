"""Step-up guard tests: recent window, lockout, password and second factor."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pyotp
import pytest
from sqlalchemy import func, select

from payportal.core.config import settings
from payportal.models import AuditLog, Employee
from payportal.services.account_service import upsert_employee
from payportal.services.errors import (
    InvalidCredentials,
    InvalidSecondFactor,
    ReauthRequired,
    TooManyAttempts,
)
from payportal.services.reauth_service import clear_reauth_state, ensure_step_up, requires_step_up
from payportal.utils.time import ensure_utc

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
PASSWORD = "Teller#Pass2026"


def _audit_rows(db) -> list[AuditLog]:
    return list(db.scalars(select(AuditLog).order_by(AuditLog.id)).all())


def _audit_count(db) -> int:
    return db.scalar(select(func.count()).select_from(AuditLog))


def test_threshold_is_inclusive() -> None:
    assert requires_step_up(Decimal("9999.99")) is False
    assert requires_step_up(Decimal("10000.00")) is True
    assert requires_step_up(Decimal("250000")) is True


def test_password_step_up_sets_watermark_and_audits(db, make_employee) -> None:
    employee = make_employee()

    result = ensure_step_up(db, employee.id, password=PASSWORD, payment_id="PAY-1", now=T0)

    assert ensure_utc(result.last_reauth_at) == T0
    assert result.reauth_failure_count == 0
    rows = _audit_rows(db)
    assert [row.action for row in rows] == ["reauth_success"]
    assert rows[0].details == {"method": "password", "totp_provided": False}
    assert rows[0].payment_id == "PAY-1"
    assert rows[0].sequence >= 1
    assert rows[0].signature


def test_recent_window_boundaries(db, make_employee) -> None:
    employee = make_employee()
    ensure_step_up(db, employee.id, password=PASSWORD, now=T0)
    window = settings.reauth_window_seconds

    inside = ensure_step_up(db, employee.id, now=T0 + timedelta(seconds=window - 1))
    assert ensure_utc(inside.last_reauth_at) == T0

    with pytest.raises(ReauthRequired):
        ensure_step_up(db, employee.id, now=T0 + timedelta(seconds=window + 1))

    methods = [row.details.get("method") for row in _audit_rows(db)]
    assert methods == ["password", "recent-window", None]


def test_missing_password_does_not_count_as_failure(db, make_employee) -> None:
    employee = make_employee()

    with pytest.raises(ReauthRequired):
        ensure_step_up(db, employee.id, now=T0)

    db.refresh(employee)
    assert employee.reauth_failure_count == 0
    assert _audit_rows(db)[-1].details == {"reason": "reauth_required", "failure_count": 0}


def test_lockout_after_consecutive_failures(db, make_employee) -> None:
    employee = make_employee()

    for attempt in range(1, settings.max_reauth_failures + 1):
        with pytest.raises(InvalidCredentials):
            ensure_step_up(db, employee.id, password="wrong-password", now=T0)
        db.refresh(employee)
        assert employee.reauth_failure_count == attempt

    with pytest.raises(TooManyAttempts):
        ensure_step_up(db, employee.id, password=PASSWORD, now=T0)

    db.refresh(employee)
    assert employee.reauth_failure_count == settings.max_reauth_failures
    assert employee.last_reauth_at is None
    last = _audit_rows(db)[-1]
    assert last.action == "reauth_failure"
    assert last.details["reason"] == "too_many_attempts"


def test_success_resets_failure_counter(db, make_employee) -> None:
    employee = make_employee()
    for _ in range(settings.max_reauth_failures - 1):
        with pytest.raises(InvalidCredentials):
            ensure_step_up(db, employee.id, password="nope", now=T0)

    ensure_step_up(db, employee.id, password=PASSWORD, now=T0)

    db.refresh(employee)
    assert employee.reauth_failure_count == 0


def test_logout_clears_watermark_and_counter(db, make_employee) -> None:
    employee = make_employee()
    ensure_step_up(db, employee.id, password=PASSWORD, now=T0)
    with pytest.raises(ReauthRequired):
        ensure_step_up(db, employee.id, now=T0 + timedelta(hours=1))

    clear_reauth_state(db, employee.id)

    db.refresh(employee)
    assert employee.last_reauth_at is None
    assert employee.reauth_failure_count == 0
    with pytest.raises(ReauthRequired):
        ensure_step_up(db, employee.id, now=T0 + timedelta(seconds=1))


def test_enrolled_second_factor_is_required(db) -> None:
    employee, secret = upsert_employee(db, "EMP002", PASSWORD, full_name="Lerato Khumalo", enroll_totp=True)
    assert secret is not None
    totp = pyotp.TOTP(secret)
    wrong_code = "000000" if totp.at(T0) != "000000" else "111111"

    with pytest.raises(InvalidSecondFactor):
        ensure_step_up(db, employee.id, password=PASSWORD, now=T0)
    with pytest.raises(InvalidCredentials):
        ensure_step_up(db, employee.id, password=PASSWORD, totp_code=wrong_code, now=T0)

    db.refresh(employee)
    assert employee.reauth_failure_count == 2

    result = ensure_step_up(db, employee.id, password=PASSWORD, totp_code=totp.at(T0), now=T0)

    assert result.reauth_failure_count == 0
    rows = _audit_rows(db)
    assert [row.details.get("reason") for row in rows[:2]] == ["invalid_second_factor", "invalid_second_factor"]
    assert rows[-1].details == {"method": "password", "totp_provided": True}


def test_second_factor_failure_is_public_invalid_credentials(db) -> None:
    employee, _ = upsert_employee(db, "EMP003", PASSWORD, enroll_totp=True)

    with pytest.raises(InvalidCredentials) as excinfo:
        ensure_step_up(db, employee.id, password=PASSWORD, totp_code="123", now=T0)

    assert excinfo.value.code == "invalid_credentials"
    assert excinfo.value.message == InvalidCredentials.message


def test_unreadable_second_factor_secret_is_a_typed_failure(db, monkeypatch) -> None:
    employee, secret = upsert_employee(db, "EMP004", PASSWORD, enroll_totp=True)
    monkeypatch.setattr(settings, "app_env", "production")
    monkeypatch.setattr(settings, "field_enc_key", "")

    with pytest.raises(InvalidSecondFactor):
        ensure_step_up(db, employee.id, password=PASSWORD, totp_code=pyotp.TOTP(secret).at(T0), now=T0)

    db.refresh(employee)
    assert employee.reauth_failure_count == 1
    assert _audit_rows(db)[-1].details["reason"] == "invalid_second_factor"


def test_future_watermark_does_not_satisfy_window(db, make_employee) -> None:
    employee = make_employee()
    employee.last_reauth_at = T0 + timedelta(days=1)
    db.commit()

    with pytest.raises(ReauthRequired):
        ensure_step_up(db, employee.id, now=T0)


def test_unknown_employee_fails_with_one_audit_record(db) -> None:
    with pytest.raises(InvalidCredentials):
        ensure_step_up(db, 999, password=PASSWORD, now=T0)

    rows = _audit_rows(db)
    assert len(rows) == 1
    assert rows[0].employee_id is None
    assert rows[0].details["reason"] == "unknown_employee"


def test_exactly_one_audit_record_per_guard_call(db, make_employee) -> None:
    employee = make_employee()
    outcomes = [
        {"password": None},
        {"password": "bad"},
        {"password": PASSWORD},
        {"password": None},
    ]

    for index, kwargs in enumerate(outcomes, start=1):
        try:
            ensure_step_up(db, employee.id, now=T0, **kwargs)
        except (ReauthRequired, InvalidCredentials):
            pass
        assert _audit_count(db) == index


def test_guard_reads_state_from_database(db, make_employee, session_factory) -> None:
    employee = make_employee()

    with session_factory() as other:
        stale = other.get(Employee, employee.id)
        ensure_step_up(db, employee.id, password=PASSWORD, now=T0)
        refreshed = ensure_step_up(other, stale.id, now=T0 + timedelta(seconds=5))

        assert ensure_utc(refreshed.last_reauth_at) == T0
