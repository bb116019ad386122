"""
Status state machine for reports.

All status changes MUST go through here so the resolved flag and the
status history stay consistent with the status itself.
"""
from typing import Optional

from tipline.models.domain import Report, StaffUser, StatusChange, utcnow
from tipline.models.enums import ReportStatus


class ReportStateMachine:
    """
    Enforces the status transition rules.

    No status is terminal: resolved and closed reports can be reopened by
    moving them back to pending or under review.
    """

    def start(self, report: Report) -> None:
        """Put a new report in pending with its first history entry."""
        report.status = ReportStatus.PENDING
        report.is_resolved = False
        report.status_history.append(StatusChange(status=ReportStatus.PENDING, changed_at=utcnow()))

    def transition(
        self,
        report: Report,
        new_status: ReportStatus,
        changed_by: Optional[StaffUser] = None
    ) -> bool:
        """
        Move a report to ``new_status``. Returns False when nothing changed.

        Flag rules:
        - resolved sets is_resolved
        - closed leaves is_resolved alone (closing an unresolved case does not resolve it)
        - pending / under review clear is_resolved (a reopen)

        Every observed change appends exactly one history entry.
        """
        new_status = ReportStatus(new_status)
        if report.status == new_status:
            return False

        # Load the history before dirtying the row, so an autoflush cannot fire mid-transition
        history = report.status_history

        if new_status == ReportStatus.RESOLVED:
            report.is_resolved = True
        elif new_status == ReportStatus.CLOSED:
            pass
        else:
            report.is_resolved = False

        now = utcnow()
        report.status = new_status
        report.updated_at = now
        history.append(StatusChange(
            status=new_status,
            changed_by_id=changed_by.id if changed_by is not None else None,
            changed_at=now
        ))
        return True
