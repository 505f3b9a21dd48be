"""Step-up (re-authentication) guard for irreversible payment actions.

Callers decide whether an action needs step-up at all (:func:`requires_step_up`);
:func:`ensure_step_up` decides whether the step-up is satisfied. The guard reads
the employee's watermark and failure counter from the database, never from
session claims.

The read-modify-write on the employee row is not atomic: two concurrent
attempts by the same employee can lose a failure-count update. Accounts are
single-operator, so this is accepted rather than locked.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from payportal.core.config import settings
from payportal.core.security import verify_password, verify_second_factor
from payportal.models import Employee
from payportal.schemas.audit import ReauthFailureDetails, ReauthSuccessDetails
from payportal.services.audit_service import record_event
from payportal.services.errors import (
    InvalidCredentials,
    InvalidSecondFactor,
    PolicyError,
    ReauthRequired,
    TooManyAttempts,
)
from payportal.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def requires_step_up(amount: Decimal) -> bool:
    """Return whether acting on a payment of ``amount`` needs fresh credentials."""
    return Decimal(amount) >= settings.payment_step_up_threshold


def within_reauth_window(employee: Employee, now: datetime) -> bool:
    last = ensure_utc(employee.last_reauth_at)
    if last is None:
        return False
    elapsed = (now - last).total_seconds()
    # A watermark ahead of the clock is skew, not a recent step-up.
    return 0 <= elapsed <= settings.reauth_window_seconds


def ensure_step_up(
    db: Session,
    employee_id: int,
    *,
    amount: Decimal | None = None,
    password: str | None = None,
    totp_code: str | None = None,
    payment_id: str | None = None,
    now: datetime | None = None,
) -> Employee:
    """Require a recent or freshly proven step-up for ``employee_id``.

    ``amount`` is accepted for future tiered policies and does not affect the
    outcome. Exactly one ``reauth_success`` or ``reauth_failure`` audit record
    is written per call.

    Raises:
        TooManyAttempts: failure counter reached the lockout threshold.
        ReauthRequired: no recent step-up and no password supplied.
        InvalidCredentials: unknown employee or wrong password.
        InvalidSecondFactor: enrolled TOTP code missing or wrong.
    """
    now = now or utcnow()
    employee = db.get(Employee, employee_id)
    if employee is None:
        logger.warning("[REAUTH] Step-up requested for unknown employee pk=%s", employee_id)
        record_event(
            db,
            employee=None,
            details=ReauthFailureDetails(reason="unknown_employee", failure_count=0),
            payment_id=payment_id,
            now=now,
        )
        raise InvalidCredentials()
    db.refresh(employee)

    try:
        method = _check_step_up(db, employee, password=password, totp_code=totp_code, now=now)
    except PolicyError as exc:
        # Audit keeps the precise reason; clients only see the public code.
        reason = "invalid_second_factor" if isinstance(exc, InvalidSecondFactor) else exc.code
        record_event(
            db,
            employee=employee,
            details=ReauthFailureDetails(reason=reason, failure_count=employee.reauth_failure_count),
            payment_id=payment_id,
            now=now,
        )
        raise

    record_event(
        db,
        employee=employee,
        details=ReauthSuccessDetails(method=method, totp_provided=bool(totp_code)),
        payment_id=payment_id,
        now=now,
    )
    return employee


def _check_step_up(
    db: Session,
    employee: Employee,
    *,
    password: str | None,
    totp_code: str | None,
    now: datetime,
) -> str:
    if within_reauth_window(employee, now):
        return "recent-window"

    if employee.reauth_failure_count >= settings.max_reauth_failures:
        logger.warning("[REAUTH] Lockout in effect for %s", employee.employee_id)
        raise TooManyAttempts()

    if not password:
        raise ReauthRequired()

    if not verify_password(password, employee.password_hash):
        _register_failure(db, employee)
        raise InvalidCredentials()

    if employee.totp_enrolled and not verify_second_factor(employee.totp_secret_encrypted, totp_code, now=now):
        _register_failure(db, employee)
        raise InvalidSecondFactor()

    employee.reauth_failure_count = 0
    employee.last_reauth_at = now
    db.commit()
    db.refresh(employee)
    logger.info("[REAUTH] Step-up succeeded for %s", employee.employee_id)
    return "password"


def _register_failure(db: Session, employee: Employee) -> None:
    employee.reauth_failure_count = (employee.reauth_failure_count or 0) + 1
    db.commit()
    db.refresh(employee)
    logger.warning(
        "[REAUTH] Step-up failed for %s (%d consecutive)",
        employee.employee_id,
        employee.reauth_failure_count,
    )


def clear_reauth_state(db: Session, employee_id: int) -> None:
    """Drop the watermark and failure counter so the next login starts clean."""
    employee = db.get(Employee, employee_id)
    if employee is None:
        return
    employee.last_reauth_at = None
    employee.reauth_failure_count = 0
    db.commit()
