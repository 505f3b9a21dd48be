"""Shared fixtures: isolated SQLite database, audit sink and rate limiter per test."""

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

# Settings are read at import time, so the environment must be prepared first.
os.environ.setdefault("JWT_SECRET_KEY", "payportal-test-secret-key-0123456789abcdef")
os.environ.setdefault("AUDIT_SIGN_KEY", "5f" * 32)
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_SINK_PATH", str(Path(tempfile.mkdtemp()) / "audit.log"))
os.environ["SESSION_COOKIE_SECURE"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import payportal.main as main_module
from payportal.core.config import settings
from payportal.core.security import get_password_hash
from payportal.db import session as db_session
from payportal.db.base import Base
from payportal.models import Customer, Employee, Payment
from payportal.schemas.payment import PaymentCreate
from payportal.services import audit_sink
from payportal.services import rate_limiter as rate_limiter_module
from payportal.services.account_service import upsert_employee
from payportal.services.payment_service import create_payment

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
EMPLOYEE_PASSWORD = "Teller#Pass2026"
CUSTOMER_PASSWORD = "Customer#Pass1"


def _build_test_engine(db_file: Path) -> Engine:
    return create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False},
    )


@pytest.fixture(autouse=True)
def isolated_side_channels(tmp_path: Path, monkeypatch) -> audit_sink.AuditSink:
    """Fresh audit sink file and empty rate-limit windows for every test."""
    sink = audit_sink.AuditSink(tmp_path / "audit" / "audit.log", settings.audit_sign_key)
    monkeypatch.setattr(audit_sink, "default_sink", sink)
    monkeypatch.setattr(rate_limiter_module, "rate_limiter", rate_limiter_module.build_default_limiter())
    return sink


@pytest.fixture
def session_factory(tmp_path: Path, monkeypatch) -> sessionmaker:
    engine = _build_test_engine(tmp_path / "payportal_test.db")
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "SessionLocal", testing_session_local)
    monkeypatch.setattr(main_module, "engine", engine)
    return testing_session_local


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    with TestClient(main_module.app) as test_client:
        yield test_client


@pytest.fixture
def make_employee(db: Session) -> Callable[..., Employee]:
    def _make(employee_id: str = "EMP001", password: str = EMPLOYEE_PASSWORD, full_name: str = "Thandi Mokoena") -> Employee:
        employee, _ = upsert_employee(db, employee_id, password, full_name=full_name)
        return employee

    return _make


@pytest.fixture
def make_customer(db: Session) -> Callable[..., Customer]:
    def _make(user_name: str = "jdoe", account_number: str = "1234567890", id_number: str = "9001015009087") -> Customer:
        customer = Customer(
            full_name="Jane Doe",
            user_name=user_name,
            id_number=id_number,
            account_number=account_number,
            password_hash=get_password_hash(CUSTOMER_PASSWORD),
        )
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    return _make


@pytest.fixture
def make_payment(db: Session, make_customer) -> Callable[..., Payment]:
    owner: dict[str, Customer] = {}

    def _make(amount: str = "2500.00", swift_code: str = "ABSAZAJJ", now: datetime = T0) -> Payment:
        if "customer" not in owner:
            owner["customer"] = make_customer()
        payload = PaymentCreate(
            amount=Decimal(amount),
            currency="ZAR",
            recipient_name="Acme Suppliers",
            recipient_bank_name="Absa",
            recipient_account_number="DE89370400440532013000",
            swift_code=swift_code,
            reference="Invoice 4411",
        )
        return create_payment(db, owner["customer"], payload, now=now)

    return _make
