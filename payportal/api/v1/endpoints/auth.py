"""Authentication, step-up and session endpoints."""

import logging
import secrets

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from payportal.auth import (
    clear_session_cookies,
    get_current_session,
    rate_limit,
    require_csrf,
    require_employee,
    set_csrf_cookie,
    set_session_cookies,
)
from payportal.core.config import settings
from payportal.db.session import get_db
from payportal.models.user import EMPLOYEE_ROLE
from payportal.schemas.auth import (
    CsrfTokenResponse,
    EmployeeLoginRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ReauthRequest,
    ReauthResponse,
    RegisterRequest,
    SessionStatusResponse,
    SessionUser,
)
from payportal.services.account_service import (
    get_employee_by_id,
    login_customer,
    login_employee,
    logout,
    register_customer,
)
from payportal.services.errors import NotFound
from payportal.services.payment_service import get_payment_by_payment_id
from payportal.services.reauth_service import ensure_step_up
from payportal.services.session_service import SessionClaims
from payportal.utils.time import ensure_utc, from_epoch

router: APIRouter = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/csrf-token", response_model=CsrfTokenResponse)
def csrf_token(response: Response) -> CsrfTokenResponse:
    """Issue a pre-login anti-forgery token for the login and register forms."""
    token = secrets.token_urlsafe(32)
    set_csrf_cookie(response, token)
    return CsrfTokenResponse(csrf_token=token)


@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth")), Depends(require_csrf)],
)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> MessageResponse:
    register_customer(db, payload)
    return MessageResponse(message="User registered successfully")


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limit("auth")), Depends(require_csrf)])
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)) -> LoginResponse:
    customer, material = login_customer(db, payload.user_name, payload.account_number, payload.password)
    set_session_cookies(response, material)
    return LoginResponse(
        message="Login successful",
        user=SessionUser(user_name=customer.user_name, full_name=customer.full_name, role=customer.role),
        csrf_token=material.csrf_token,
    )


@router.post(
    "/employee-login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("auth")), Depends(require_csrf)],
)
def employee_login(payload: EmployeeLoginRequest, response: Response, db: Session = Depends(get_db)) -> LoginResponse:
    employee, material = login_employee(db, payload.employee_id, payload.password)
    set_session_cookies(response, material)
    return LoginResponse(
        message="Employee login successful",
        user=SessionUser(user_name=employee.employee_id, full_name=employee.full_name, role=employee.role),
        csrf_token=material.csrf_token,
    )


@router.post("/reauth", response_model=ReauthResponse, dependencies=[Depends(rate_limit("auth")), Depends(require_csrf)])
def reauth(
    payload: ReauthRequest,
    claims: SessionClaims = Depends(require_employee),
    db: Session = Depends(get_db),
) -> ReauthResponse:
    """Perform a step-up ahead of a verify/send so the action itself needs no password."""
    payment = None
    if payload.payment_id:
        payment = get_payment_by_payment_id(db, payload.payment_id)
        if payment is None:
            raise NotFound()
    employee = ensure_step_up(
        db,
        claims.subject_id,
        amount=payment.amount if payment is not None else None,
        password=payload.password,
        totp_code=payload.totp_code,
        payment_id=payment.payment_id if payment is not None else None,
    )
    return ReauthResponse(
        last_reauth_at=ensure_utc(employee.last_reauth_at),
        reauth_window_seconds=settings.reauth_window_seconds,
    )


@router.get("/session", response_model=SessionStatusResponse)
def session_status(
    claims: SessionClaims = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> SessionStatusResponse:
    """Expose expiries and the re-auth watermark for the countdown display."""
    last_reauth_at = None
    if claims.role == EMPLOYEE_ROLE:
        employee = get_employee_by_id(db, claims.subject_id)
        if employee is not None:
            last_reauth_at = ensure_utc(employee.last_reauth_at)
    return SessionStatusResponse(
        user_name=claims.user_name,
        role=claims.role,
        session_id=claims.session_id,
        issued_at=from_epoch(claims.issued_at),
        idle_expires_at=claims.idle_expires_at,
        absolute_expires_at=claims.absolute_expires_at,
        last_reauth_at=last_reauth_at,
        reauth_window_seconds=settings.reauth_window_seconds,
    )


@router.post("/logout", response_model=MessageResponse, dependencies=[Depends(require_csrf)])
def logout_endpoint(
    response: Response,
    claims: SessionClaims = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> MessageResponse:
    logout(db, claims)
    clear_session_cookies(response)
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate"
    return MessageResponse(message="Logged out successfully")
