"""Payment store helpers and the employee verify/send workflow."""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from payportal.models import Customer, Employee, Payment
from payportal.schemas.audit import SendDetails, VerifyDetails
from payportal.schemas.payment import PaymentCreate
from payportal.services.audit_service import record_event
from payportal.services.errors import (
    AlreadySent,
    ConfirmationMismatch,
    InvalidCredentials,
    InvalidState,
    NotFound,
)
from payportal.services.payment_status import apply_transition, can_transition, lifecycle_state
from payportal.services.reauth_service import ensure_step_up, requires_step_up
from payportal.services.session_service import SessionMaterial, rotate_session
from payportal.utils.masking import mask_account_number, mask_swift
from payportal.utils.time import utcnow

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class TransitionResult:
    payment: Payment
    session: SessionMaterial
    stepped_up: bool


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_payment_identifiers(now: datetime) -> tuple[str, str]:
    millis = int(now.timestamp() * 1000)
    return f"PAY-{millis}-{_random_suffix(6)}", f"REF-{millis}-{_random_suffix(8)}"


def get_payment_by_payment_id(db: Session, payment_id: str) -> Payment | None:
    return db.scalar(select(Payment).where(Payment.payment_id == payment_id).limit(1))


def list_payments(
    db: Session,
    *,
    statuses: Iterable[str] | None = None,
    sent_to_swift: bool | None = None,
    owner_id: int | None = None,
    include_acknowledged: bool = True,
    limit: int | None = None,
    newest_first: bool = True,
) -> list[Payment]:
    query = select(Payment)
    if statuses is not None:
        query = query.where(Payment.status.in_(list(statuses)))
    if sent_to_swift is not None:
        query = query.where(Payment.sent_to_swift.is_(sent_to_swift))
    if owner_id is not None:
        query = query.where(Payment.owner_id == owner_id)
    if not include_acknowledged:
        query = query.where(Payment.acknowledged.is_(False))
    order = Payment.created_at.desc() if newest_first else Payment.created_at.asc()
    query = query.order_by(order, Payment.id.desc() if newest_first else Payment.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return list(db.scalars(query).all())


def employee_queue(db: Session, limit: int = 50) -> list[Payment]:
    """Payments still awaiting an employee: pending, or verified but unsent."""
    return list_payments(
        db,
        statuses=("pending", "verified"),
        sent_to_swift=False,
        limit=limit,
        newest_first=False,
    )


def create_payment(db: Session, owner: Customer, payload: PaymentCreate, now: datetime | None = None) -> Payment:
    now = now or utcnow()
    payment_id, reference_number = generate_payment_identifiers(now)
    payment = Payment(
        payment_id=payment_id,
        reference_number=reference_number,
        owner_id=owner.id,
        amount=payload.amount,
        currency=payload.currency,
        payment_provider=payload.payment_provider,
        recipient_name=payload.recipient_name.strip(),
        recipient_bank_name=payload.recipient_bank_name.strip(),
        recipient_account_number=payload.recipient_account_number,
        swift_code=payload.swift_code,
        reference=payload.reference.strip(),
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info("[PAYMENT] Created %s for customer %s", payment.payment_id, owner.user_name)
    return payment


def acknowledge_payment(db: Session, owner_id: int, payment_id: str, now: datetime | None = None) -> Payment:
    """Mark a verified payment as seen by its owner; other owners get NotFound."""
    payment = get_payment_by_payment_id(db, payment_id)
    if payment is None or payment.owner_id != owner_id:
        raise NotFound()
    if payment.status != "verified":
        raise InvalidState("Only verified payments can be acknowledged")
    payment.acknowledged = True
    payment.updated_at = now or utcnow()
    db.commit()
    db.refresh(payment)
    return payment


def _load_for_transition(db: Session, payment_id: str) -> Payment:
    payment = get_payment_by_payment_id(db, payment_id)
    if payment is None:
        raise NotFound()
    db.refresh(payment)
    return payment


def _ensure_can_verify(payment: Payment) -> None:
    if not can_transition(lifecycle_state(payment), "verified"):
        raise InvalidState("Payment is not pending")


def _ensure_can_send(payment: Payment) -> None:
    state = lifecycle_state(payment)
    if state == "sent":
        raise AlreadySent()
    if not can_transition(state, "sent"):
        raise InvalidState("Only verified payments may be sent to SWIFT")


def _authorize(
    db: Session,
    employee_id: int,
    payment: Payment,
    *,
    password: str | None,
    totp_code: str | None,
    now: datetime,
) -> tuple[Employee, bool]:
    if requires_step_up(payment.amount):
        employee = ensure_step_up(
            db,
            employee_id,
            amount=payment.amount,
            password=password,
            totp_code=totp_code,
            payment_id=payment.payment_id,
            now=now,
        )
        return employee, True
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise InvalidCredentials()
    return employee, False


def verify_payment(
    db: Session,
    employee_id: int,
    payment_id: str,
    *,
    confirm_swift: str | None = None,
    password: str | None = None,
    totp_code: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Move a pending payment to verified.

    Raises NotFound, InvalidState, ConfirmationMismatch or any step-up failure.
    """
    now = now or utcnow()
    payment = _load_for_transition(db, payment_id)
    _ensure_can_verify(payment)

    employee, stepped_up = _authorize(db, employee_id, payment, password=password, totp_code=totp_code, now=now)

    confirmation_supplied = confirm_swift is not None
    if confirmation_supplied and confirm_swift.strip().upper() != payment.swift_code.upper():
        raise ConfirmationMismatch()

    # Re-read after step-up: another request may have moved the payment meanwhile.
    db.refresh(payment)
    _ensure_can_verify(payment)
    apply_transition(payment, "verified", now, employee)
    db.commit()
    db.refresh(payment)
    logger.info("[PAYMENT] %s verified by %s", payment.payment_id, employee.employee_id)

    session = rotate_session(employee, now=now)
    record_event(
        db,
        employee=employee,
        details=VerifyDetails(swift_match=True, confirmation_supplied=confirmation_supplied),
        payment_id=payment.payment_id,
        now=now,
    )
    return TransitionResult(payment=payment, session=session, stepped_up=stepped_up)


def send_payment(
    db: Session,
    employee_id: int,
    payment_id: str,
    *,
    password: str | None = None,
    totp_code: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Release a verified payment to SWIFT (simulated).

    Raises NotFound, AlreadySent, InvalidState or any step-up failure.
    """
    now = now or utcnow()
    payment = _load_for_transition(db, payment_id)
    _ensure_can_send(payment)

    employee, stepped_up = _authorize(db, employee_id, payment, password=password, totp_code=totp_code, now=now)

    db.refresh(payment)
    _ensure_can_send(payment)
    apply_transition(payment, "sent", now, employee)
    db.commit()
    db.refresh(payment)
    _transmit_to_swift(payment)

    session = rotate_session(employee, now=now)
    record_event(
        db,
        employee=employee,
        details=SendDetails(
            swift_code=mask_swift(payment.swift_code),
            recipient_account=mask_account_number(payment.recipient_account_number),
        ),
        payment_id=payment.payment_id,
        now=now,
    )
    return TransitionResult(payment=payment, session=session, stepped_up=stepped_up)


def _transmit_to_swift(payment: Payment) -> None:
    # No network integration; the stamped swift_sent_at is the only effect.
    logger.info(
        "[SWIFT] Simulated transmission of %s to %s",
        payment.payment_id,
        mask_swift(payment.swift_code),
    )
