"""Customer and employee ORM models."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payportal.db.base import Base

CUSTOMER_ROLE = "user"
EMPLOYEE_ROLE = "employee"


class Customer(Base):
    """Account holder who submits international payments."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    user_name: Mapped[str] = mapped_column(String(30), nullable=False, unique=True, index=True)
    id_number: Mapped[str] = mapped_column(String(13), nullable=False, unique=True)
    account_number: Mapped[str] = mapped_column(String(11), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=CUSTOMER_ROLE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    payments: Mapped[list["Payment"]] = relationship(back_populates="owner")


class Employee(Base):
    """Operator allowed to verify and release payments.

    ``last_reauth_at`` and ``reauth_failure_count`` are owned by the step-up
    guard; nothing else writes them except logout, which clears both.
    """

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(16), nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=EMPLOYEE_ROLE)
    totp_secret_encrypted: Mapped[str | None] = mapped_column(String(512), nullable=True)
    totp_enrolled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_reauth_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reauth_failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
