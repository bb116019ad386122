"""Audit sink. Events join the caller's transaction and commit with it."""
from typing import Optional

from sqlalchemy.orm import Session

from tipline.models.audit import AuditEvent
from tipline.models.domain import Report, StaffUser


def record_event(
    db: Session,
    action: str,
    description: str,
    report: Optional[Report] = None,
    staff_user: Optional[StaffUser] = None,
    ip_address: Optional[str] = None,
) -> AuditEvent:
    event = AuditEvent(
        action=action,
        description=description,
        report=report,
        staff_user=staff_user,
        ip_address=ip_address,
    )
    db.add(event)
    return event
