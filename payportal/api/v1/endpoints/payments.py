"""Payment endpoints for customers (submit, review) and employees (verify, send)."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from payportal.auth import rate_limit, require_csrf, require_customer, require_employee, set_session_cookies
from payportal.db.session import get_db
from payportal.models import Customer, Payment
from payportal.schemas.auth import MessageResponse
from payportal.schemas.payment import (
    PaymentActionRequest,
    PaymentActionResponse,
    PaymentCreate,
    PaymentResponse,
    QueuedPaymentResponse,
)
from payportal.services.account_service import get_customer_by_id
from payportal.services.payment_service import (
    TransitionResult,
    acknowledge_payment,
    create_payment,
    employee_queue,
    list_payments,
    send_payment,
    verify_payment,
)
from payportal.services.reauth_service import requires_step_up
from payportal.services.session_service import SessionClaims
from payportal.utils.masking import mask_account_number, mask_swift

router: APIRouter = APIRouter()


def _customer_for(claims: SessionClaims, db: Session) -> Customer:
    customer = get_customer_by_id(db, claims.subject_id)
    if customer is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return customer


def _queue_entry(payment: Payment) -> QueuedPaymentResponse:
    return QueuedPaymentResponse(
        payment_id=payment.payment_id,
        amount=payment.amount,
        currency=payment.currency,
        recipient_name=payment.recipient_name,
        recipient_bank_name=payment.recipient_bank_name,
        recipient_account=mask_account_number(payment.recipient_account_number),
        swift_code=mask_swift(payment.swift_code),
        status=payment.status,
        sent_to_swift=payment.sent_to_swift,
        requires_step_up=requires_step_up(payment.amount),
        created_at=payment.created_at,
    )


def _action_response(message: str, result: TransitionResult, response: Response) -> PaymentActionResponse:
    set_session_cookies(response, result.session)
    return PaymentActionResponse(
        message=message,
        payment_id=result.payment.payment_id,
        status=result.payment.status,
        sent_to_swift=result.payment.sent_to_swift,
        csrf_token=result.session.csrf_token,
    )


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("payments")), Depends(require_csrf)],
)
def submit_payment(
    payload: PaymentCreate,
    claims: SessionClaims = Depends(require_customer),
    db: Session = Depends(get_db),
) -> PaymentResponse:
    payment = create_payment(db, _customer_for(claims, db), payload)
    return PaymentResponse.model_validate(payment)


@router.get("/me", response_model=list[PaymentResponse], dependencies=[Depends(rate_limit("general"))])
def my_payments(
    all_payments: bool = Query(default=False, alias="all"),
    limit: int = Query(default=5, ge=1, le=100),
    claims: SessionClaims = Depends(require_customer),
    db: Session = Depends(get_db),
) -> list[PaymentResponse]:
    """Recent unacknowledged payments, or the full history with ``all=true``."""
    customer = _customer_for(claims, db)
    payments = list_payments(
        db,
        owner_id=customer.id,
        include_acknowledged=all_payments,
        limit=None if all_payments else limit,
    )
    return [PaymentResponse.model_validate(payment) for payment in payments]


@router.post(
    "/{payment_id}/acknowledge",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit("general")), Depends(require_csrf)],
)
def acknowledge(
    payment_id: str,
    claims: SessionClaims = Depends(require_customer),
    db: Session = Depends(get_db),
) -> MessageResponse:
    acknowledge_payment(db, _customer_for(claims, db).id, payment_id)
    return MessageResponse(message="Payment acknowledged")


@router.get("/queue", response_model=list[QueuedPaymentResponse], dependencies=[Depends(rate_limit("general"))])
def payment_queue(
    limit: int = Query(default=50, ge=1, le=200),
    claims: SessionClaims = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[QueuedPaymentResponse]:
    return [_queue_entry(payment) for payment in employee_queue(db, limit=limit)]


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentActionResponse,
    dependencies=[Depends(rate_limit("general")), Depends(require_csrf)],
)
def verify(
    payment_id: str,
    response: Response,
    payload: PaymentActionRequest | None = None,
    claims: SessionClaims = Depends(require_employee),
    db: Session = Depends(get_db),
) -> PaymentActionResponse:
    payload = payload or PaymentActionRequest()
    result = verify_payment(
        db,
        claims.subject_id,
        payment_id,
        confirm_swift=payload.confirm_swift,
        password=payload.password,
        totp_code=payload.totp_code,
    )
    return _action_response("Payment verified", result, response)


@router.post(
    "/{payment_id}/send",
    response_model=PaymentActionResponse,
    dependencies=[Depends(rate_limit("general")), Depends(require_csrf)],
)
def send(
    payment_id: str,
    response: Response,
    payload: PaymentActionRequest | None = None,
    claims: SessionClaims = Depends(require_employee),
    db: Session = Depends(get_db),
) -> PaymentActionResponse:
    payload = payload or PaymentActionRequest()
    result = send_payment(
        db,
        claims.subject_id,
        payment_id,
        password=payload.password,
        totp_code=payload.totp_code,
    )
    return _action_response("Payment sent to SWIFT (simulated)", result, response)
