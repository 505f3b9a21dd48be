"""Application models package."""

from payportal.models.audit_log import AuditLog
from payportal.models.payment import Payment
from payportal.models.user import Customer, Employee

__all__ = ["AuditLog", "Customer", "Employee", "Payment"]
