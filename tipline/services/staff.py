"""Staff accounts and what each role may do to a report."""
import logging
from typing import Optional, assert_never

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tipline.models.domain import Agency, Report, StaffUser
from tipline.models.enums import CommentRole, StaffRole
from tipline.services.errors import ConflictError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)


def create_staff_user(
    db: Session,
    username: str,
    role: StaffRole,
    name: Optional[str] = None,
    email: Optional[str] = None,
    agency: Optional[Agency] = None
) -> StaffUser:
    """
    Create a staff account.

    The single-admin rule is enforced by the database; a second admin
    surfaces here as ConflictError however the two inserts interleave.
    """
    role = StaffRole(role)
    if role == StaffRole.AGENCY and agency is None:
        raise ValidationError("Agency staff must belong to an agency")
    if role == StaffRole.ADMIN and agency is not None:
        raise ValidationError("Admins are not linked to an agency")

    user = StaffUser(username=username, role=role, name=name, email=email, agency=agency)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Staff user rejected by unique constraint", extra={"username": username, "role": role.value})
        raise ConflictError(
            f"Could not create staff user {username}: {e.orig}",
            safe_message="A staff user with this username, or an admin, already exists."
        ) from e
    db.refresh(user)
    return user


def comment_role_for(staff: StaffUser) -> CommentRole:
    role = staff.role
    if role is StaffRole.ADMIN:
        return CommentRole.ADMIN
    elif role is StaffRole.AGENCY:
        return CommentRole.AGENCY
    else:
        assert_never(role)


def can_access(staff: StaffUser, report: Report) -> bool:
    """Admins see every report; agency staff only those routed to their agency."""
    role = staff.role
    if role is StaffRole.ADMIN:
        return True
    elif role is StaffRole.AGENCY:
        return staff.agency_id is not None and report.agency_id == staff.agency_id
    else:
        assert_never(role)


def require_access(staff: StaffUser, report: Report) -> None:
    if not can_access(staff, report):
        raise PermissionDeniedError(
            f"Staff user {staff.id} may not act on report {report.case_id}",
            safe_message="This report is not assigned to your agency."
        )


def require_admin(staff: StaffUser) -> None:
    if staff.role is not StaffRole.ADMIN:
        raise PermissionDeniedError(
            f"Staff user {staff.id} attempted an admin-only action",
            safe_message="Only an administrator can do this."
        )
