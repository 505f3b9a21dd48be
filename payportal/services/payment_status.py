"""Payment lifecycle transition helpers."""

from __future__ import annotations

from datetime import datetime

from payportal.models import Employee, Payment

# "sent" is not a stored status: it is ``verified`` with ``sent_to_swift`` set.
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"verified", "cancelled"},
    "verified": {"sent"},
    "sent": set(),
    "cancelled": set(),
}


def lifecycle_state(payment: Payment) -> str:
    if payment.sent_to_swift:
        return "sent"
    return payment.status


def can_transition(current: str, new: str) -> bool:
    """Return whether a payment can move from current to new state."""
    return new in ALLOWED_TRANSITIONS.get(current, set())


def apply_transition(payment: Payment, new_state: str, now: datetime, employee: Employee) -> None:
    """Set state fields and the matching approver/timestamp columns."""
    if new_state == "verified":
        payment.status = "verified"
        payment.verified_by = employee.id
        payment.verified_at = now
    elif new_state == "sent":
        payment.sent_to_swift = True
        payment.swift_sent_at = now
    else:
        raise ValueError(f"Unsupported employee transition: {new_state}")
    payment.updated_at = now
