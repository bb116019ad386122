"""
Internal audit logging model - NOT a user-facing domain object.

This model exists to provide an append-only trail of who touched which
report and from where. It is not exposed in reporter-facing APIs.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from tipline.database import Base
from tipline.models.domain import utcnow


class AuditEvent(Base):
    """
    Immutable audit event.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - Written in the same transaction as the action it describes
    """
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(String, nullable=False, index=True)  # e.g., "REPORT_CREATED"
    description = Column(String, nullable=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=True, index=True)
    staff_user_id = Column(Integer, ForeignKey("staff_users.id"), nullable=True)  # Null for reporters
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    report = relationship("Report")
    staff_user = relationship("StaffUser")


class AuditAction:
    """Enumeration of audit actions."""
    # Reporter side
    REPORT_CREATED = "REPORT_CREATED"
    REPORT_ACCESSED = "REPORT_ACCESSED"
    REPORT_ACCESS_DENIED = "REPORT_ACCESS_DENIED"
    REPORT_UPDATED_BY_REPORTER = "REPORT_UPDATED_BY_REPORTER"

    # Staff side
    REPORT_UPDATED_BY_ADMIN = "REPORT_UPDATED_BY_ADMIN"
    REPORT_UPDATED_BY_AGENCY = "REPORT_UPDATED_BY_AGENCY"
    STATUS_UPDATED = "STATUS_UPDATED"
    CATEGORY_ASSIGNED = "CATEGORY_ASSIGNED"
    AGENCY_ASSIGNED = "AGENCY_ASSIGNED"
    INTERNAL_NOTES_UPDATED = "INTERNAL_NOTES_UPDATED"
