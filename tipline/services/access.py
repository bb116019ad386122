"""
Access verifier: turns a case password into the report it opens.

Verification is always (1) a digest lookup returning at most one candidate,
then (2) one bcrypt comparison against that candidate. The password is never
compared against every stored hash in turn.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tipline.config import Settings, get_settings
from tipline.models.audit import AuditAction
from tipline.models.domain import Report
from tipline.services.audit import record_event
from tipline.services.credentials import check_case_password, lookup_digest, normalize_case_password
from tipline.services.errors import AuthenticationError, NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class AccessVerifier:
    """Resolves case passwords to reports."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def verify(self, candidate: Optional[str], ip_address: Optional[str] = None) -> Report:
        """
        Return the report the candidate password opens.

        Raises NotFoundError when no report carries the digest and
        AuthenticationError when the bcrypt check fails. Both carry the same
        client-facing message. Rejections are audited before raising.
        """
        secret = normalize_case_password(candidate)
        if not secret:
            raise ValidationError("Case password is required.")

        digest = lookup_digest(secret, self.settings.lookup_pepper)
        report = self.db.query(Report).filter(Report.secret_digest == digest).one_or_none()

        if report is None:
            self._reject(None, ip_address, "no report matches digest")
            raise NotFoundError("No report matches the supplied case password")

        if not check_case_password(secret, report.secret_hash):
            self._reject(report, ip_address, "credential hash mismatch")
            raise AuthenticationError(f"Case password hash mismatch for report {report.case_id}")

        return report

    def _reject(self, report: Optional[Report], ip_address: Optional[str], reason: str) -> None:
        logger.warning(
            "Case password rejected",
            extra={"reason": reason, "case_id": report.case_id if report else None, "ip_address": ip_address}
        )
        record_event(
            self.db,
            AuditAction.REPORT_ACCESS_DENIED,
            "Follow-up attempted with an invalid case password",
            report=report,
            ip_address=ip_address,
        )
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Could not record rejected access: {e}") from e
