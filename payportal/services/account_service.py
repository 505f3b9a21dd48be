"""Account provisioning and login helpers for customers and employees."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from payportal.core.field_encryption import encrypt_field
from payportal.core.security import generate_totp_secret, get_password_hash, verify_password
from payportal.models import Customer, Employee
from payportal.models.user import CUSTOMER_ROLE, EMPLOYEE_ROLE
from payportal.schemas.audit import LoginDetails
from payportal.schemas.auth import RegisterRequest
from payportal.services.audit_service import record_event
from payportal.services.errors import AccountConflict, InvalidCredentials
from payportal.services.reauth_service import clear_reauth_state
from payportal.services.session_service import SessionClaims, SessionMaterial, rotate_session
from payportal.utils.time import utcnow

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return get_password_hash("payportal-timing-equaliser")


def get_employee_by_id(db: Session, employee_pk: int) -> Employee | None:
    return db.get(Employee, employee_pk)


def get_employee_by_employee_id(db: Session, employee_id: str) -> Employee | None:
    return db.scalar(select(Employee).where(Employee.employee_id == employee_id).limit(1))


def get_customer_by_id(db: Session, customer_pk: int) -> Customer | None:
    return db.get(Customer, customer_pk)


def register_customer(db: Session, payload: RegisterRequest) -> Customer:
    existing = db.scalar(
        select(Customer)
        .where(
            or_(
                Customer.user_name == payload.user_name,
                Customer.id_number == payload.id_number,
                Customer.account_number == payload.account_number,
            )
        )
        .limit(1)
    )
    if existing is not None:
        raise AccountConflict()
    customer = Customer(
        full_name=payload.full_name.strip(),
        user_name=payload.user_name,
        id_number=payload.id_number,
        account_number=payload.account_number,
        password_hash=get_password_hash(payload.password),
        role=CUSTOMER_ROLE,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def authenticate_customer(db: Session, user_name: str, account_number: str, password: str) -> Customer | None:
    customer = db.scalar(
        select(Customer)
        .where(Customer.user_name == user_name.strip(), Customer.account_number == account_number.strip())
        .limit(1)
    )
    if customer is None:
        verify_password(password, _dummy_hash())
        return None
    if not verify_password(password, customer.password_hash):
        return None
    return customer


def authenticate_employee(db: Session, employee_id: str, password: str) -> Employee | None:
    employee = get_employee_by_employee_id(db, employee_id.strip())
    if employee is None:
        verify_password(password, _dummy_hash())
        return None
    if not verify_password(password, employee.password_hash):
        return None
    return employee


def login_customer(
    db: Session, user_name: str, account_number: str, password: str, now: datetime | None = None
) -> tuple[Customer, SessionMaterial]:
    customer = authenticate_customer(db, user_name, account_number, password)
    if customer is None:
        raise InvalidCredentials("Invalid username, account number, or password")
    return customer, rotate_session(customer, now=now)


def login_employee(
    db: Session, employee_id: str, password: str, now: datetime | None = None
) -> tuple[Employee, SessionMaterial]:
    """Authenticate an employee, open a fresh session and audit the login."""
    now = now or utcnow()
    employee = authenticate_employee(db, employee_id, password)
    if employee is None:
        logger.info("[AUTH] Employee login rejected")
        raise InvalidCredentials("Invalid employee credentials")
    material = rotate_session(employee, now=now)
    record_event(db, employee=employee, details=LoginDetails(employee_id=employee.employee_id), now=now)
    return employee, material


def logout(db: Session, claims: SessionClaims) -> None:
    if claims.role == EMPLOYEE_ROLE:
        clear_reauth_state(db, claims.subject_id)
    logger.info("[AUTH] Logged out %s", claims.user_name)


def upsert_employee(
    db: Session,
    employee_id: str,
    password: str,
    full_name: str | None = None,
    enroll_totp: bool = False,
) -> tuple[Employee, str | None]:
    """Create or update an employee; returns the plain TOTP secret when enrolling."""
    employee = get_employee_by_employee_id(db, employee_id)
    if employee is None:
        employee = Employee(
            employee_id=employee_id,
            full_name=full_name or "Unnamed Employee",
            password_hash=get_password_hash(password),
            role=EMPLOYEE_ROLE,
        )
        db.add(employee)
        logger.info("[BOOTSTRAP] Creating employee %s", employee_id)
    else:
        employee.password_hash = get_password_hash(password)
        if full_name:
            employee.full_name = full_name
        logger.info("[BOOTSTRAP] Updating employee %s", employee_id)

    totp_secret: str | None = None
    if enroll_totp:
        totp_secret = generate_totp_secret()
        employee.totp_secret_encrypted = encrypt_field(totp_secret)
        employee.totp_enrolled = True
    db.commit()
    db.refresh(employee)
    return employee, totp_secret
