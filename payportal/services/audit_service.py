"""Audit log helpers."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payportal.models import AuditLog, Employee
from payportal.schemas.audit import AuditDetails
from payportal.services import audit_sink
from payportal.utils.time import utcnow

logger = logging.getLogger(__name__)


def record_event(
    db: Session,
    *,
    employee: Employee | None,
    details: AuditDetails,
    payment_id: str | None = None,
    now: datetime | None = None,
) -> AuditLog | None:
    """Write one audit record to the signed sink and the audit table.

    Must be called after the triggering change has been committed: a failed
    insert rolls back only the audit row and is logged, never raised.
    """
    now = now or utcnow()
    employee_pk = employee.id if employee is not None else None
    identifier = employee.employee_id if employee is not None else "anonymous"
    detail_map = details.model_dump(exclude={"action"})

    entry = audit_sink.default_sink.record(
        {
            "employee_id": employee_pk,
            "employee_identifier": identifier,
            "action": details.action,
            "payment_id": payment_id,
            "details": detail_map,
            "created_at": now.isoformat(),
        },
        now=now,
    )

    row = AuditLog(
        created_at=now,
        employee_id=employee_pk,
        employee_identifier=identifier,
        action=details.action,
        payment_id=payment_id,
        details=detail_map,
        sequence=entry.seq,
        signature=entry.signature,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[AUDIT] Failed to store audit record action=%s seq=%s", details.action, entry.seq)
        return None
    return row
