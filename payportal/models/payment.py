"""Payment instruction model."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payportal.db.base import Base

CURRENCIES = ("ZAR", "EUR", "GBP", "USD", "AUD", "CAD", "CHF", "JPY")
PAYMENT_STATUSES = ("pending", "verified", "cancelled")


class Payment(Base):
    """International (SWIFT) payment submitted by a customer.

    ``verified_by`` is set exactly when status has reached ``verified`` and
    ``sent_to_swift`` implies ``verified``.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    payment_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True, index=True)
    reference_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(Enum(*CURRENCIES, name="payment_currency"), nullable=False, default="ZAR")
    payment_provider: Mapped[str] = mapped_column(String(16), nullable=False, default="SWIFT")
    recipient_name: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_account_number: Mapped[str] = mapped_column(String(34), nullable=False)
    swift_code: Mapped[str] = mapped_column(String(11), nullable=False)
    reference: Mapped[str] = mapped_column(String(140), nullable=False, default="")
    status: Mapped[str] = mapped_column(Enum(*PAYMENT_STATUSES, name="payment_status"), nullable=False, default="pending")
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_to_swift: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    swift_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    owner: Mapped["Customer"] = relationship(back_populates="payments")

    __table_args__ = (
        Index("ix_payments_owner_created", "owner_id", "created_at"),
        Index("ix_payments_status_created", "status", "created_at"),
    )
