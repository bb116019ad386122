"""
Report service: creation, reporter follow-ups and staff triage.

Derived fields (case id, lookup digest, credential hash, first history
entry) are computed explicitly in ``create_report``; nothing is filled in
by ORM lifecycle hooks.
"""
import logging
import math
import secrets
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tipline.config import Settings, get_settings
from tipline.models.audit import AuditAction
from tipline.models.domain import (
    Agency,
    Category,
    Comment,
    EvidenceFile,
    Report,
    StaffUser,
    utcnow,
)
from tipline.models.enums import CommentRole, ReporterType, ReportStatus, StaffRole
from tipline.services.access import AccessVerifier
from tipline.services.audit import record_event
from tipline.services.credentials import generate_case_password, hash_case_password, lookup_digest
from tipline.services.defaults import default_agency, default_category
from tipline.services.errors import ConflictError, ResourceNotFoundError, UpstreamError, ValidationError
from tipline.services.staff import comment_role_for, require_access, require_admin
from tipline.services.state_machine import ReportStateMachine
from tipline.services.storage import EvidenceStorage, Upload, validate_upload, validate_upload_count

logger = logging.getLogger(__name__)


@dataclass
class NewReport:
    title: str
    description: str
    reporter_type: str
    location: Optional[str] = None
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_phone: Optional[str] = None


@dataclass
class CreatedReport:
    """A freshly created report plus the plaintext password, which exists nowhere else."""
    report: Report
    case_password: str


@dataclass
class ReportPage:
    reports: List[Report]
    page: int
    total_pages: int
    total: int


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ReportService:
    """Every mutation of a Report goes through here."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        storage: Optional[EvidenceStorage] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.storage = storage
        self.state_machine = ReportStateMachine()

    # Reporter side

    def create_report(
        self,
        data: NewReport,
        uploads: Sequence[Upload] = (),
        ip_address: Optional[str] = None
    ) -> CreatedReport:
        """
        Create a report and mint its case password.

        Validation rules:
        - title and description are required
        - anonymous reports carry no name, email or phone
        - confidential reports carry at least a name and an email

        A digest collision, seen either by the pre-insert lookup or by the
        unique index at commit, is retried with a fresh password. After
        ``secret_max_attempts`` tries it surfaces as ConflictError.

        Evidence is uploaded first; if the report is never committed the
        stored objects are deleted again.
        """
        reporter_type = self._validate_new_report(data)
        evidence = self._store_uploads(uploads)
        try:
            return self._insert_report(data, reporter_type, evidence, ip_address)
        except Exception:
            self._discard_uploads(evidence)
            raise

    def _insert_report(
        self,
        data: NewReport,
        reporter_type: ReporterType,
        evidence: List[EvidenceFile],
        ip_address: Optional[str]
    ) -> CreatedReport:
        for attempt in range(1, self.settings.secret_max_attempts + 1):
            case_password = generate_case_password(self.settings.secret_bytes)
            digest = lookup_digest(case_password, self.settings.lookup_pepper)

            if self.db.query(Report.id).filter(Report.secret_digest == digest).first() is not None:
                logger.warning("Case password collision, regenerating", extra={"attempt": attempt})
                continue

            report = self._build_report(data, reporter_type, case_password, digest, evidence)
            self.db.add(report)
            record_event(
                self.db,
                AuditAction.REPORT_CREATED,
                f"Report created with case id {report.case_id}",
                report=report,
                ip_address=ip_address,
            )
            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race on secret_digest or case_id; start over with new values
                self.db.rollback()
                logger.warning("Unique constraint hit on report insert, regenerating", extra={"attempt": attempt})
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                raise UpstreamError(f"Could not persist report: {e}") from e

            self.db.refresh(report)
            logger.info("Report created", extra={"case_id": report.case_id, "reporter_type": reporter_type.value})
            return CreatedReport(report=report, case_password=case_password)

        raise ConflictError(
            f"No unique case password after {self.settings.secret_max_attempts} attempts",
            safe_message="Could not create the report. Please try again."
        )

    def follow_up(self, password: Optional[str], ip_address: Optional[str] = None) -> Report:
        """Read a report with its case password."""
        report = AccessVerifier(self.db, self.settings).verify(password, ip_address)
        record_event(
            self.db,
            AuditAction.REPORT_ACCESSED,
            f"Reporter viewed case {report.case_id}",
            report=report,
            ip_address=ip_address,
        )
        self._commit()
        return report

    def add_reporter_message(
        self,
        password: Optional[str],
        message: Optional[str],
        uploads: Sequence[Upload] = (),
        ip_address: Optional[str] = None
    ) -> Report:
        """
        Append a reporter comment, and optionally evidence, to the report
        the password opens. Nothing is uploaded until the password checks out.
        """
        message = _clean(message)
        if not message:
            raise ValidationError("Password and message are required.")

        validate_upload_count(len(uploads), self.settings.max_upload_files)

        report = AccessVerifier(self.db, self.settings).verify(password, ip_address)

        evidence = self._store_uploads(uploads)
        try:
            for stored in evidence:
                report.evidence_files.append(stored)
            report.comments.append(Comment(role=CommentRole.REPORTER, message=message, created_at=utcnow()))

            record_event(
                self.db,
                AuditAction.REPORT_UPDATED_BY_REPORTER,
                f"Reporter added message to case {report.case_id}",
                report=report,
                ip_address=ip_address,
            )
            self._commit()
        except Exception:
            self._discard_uploads(evidence)
            raise
        self.db.refresh(report)
        return report

    # Staff side

    def get_report(self, report_id: int, staff: StaffUser) -> Report:
        report = self.db.query(Report).filter(Report.id == report_id).first()
        if not report:
            raise ResourceNotFoundError(f"Report {report_id} not found", safe_message="Report not found.")
        require_access(staff, report)
        return report

    def list_reports(
        self,
        staff: StaffUser,
        page: int = 1,
        limit: int = 10,
        keyword: str = "",
        status: Optional[ReportStatus] = None,
        unassigned_only: bool = False
    ) -> ReportPage:
        """Newest first. Agency staff only ever see their own agency's reports."""
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        query = self.db.query(Report)
        if staff.role is StaffRole.AGENCY:
            query = query.filter(Report.agency_id == staff.agency_id)
        if unassigned_only:
            require_admin(staff)
            sentinel = default_agency(self.db)
            query = query.filter(Report.agency_id == (sentinel.id if sentinel else None))
        if keyword:
            pattern = f"%{keyword}%"
            query = query.filter(or_(
                Report.case_id.ilike(pattern),
                Report.title.ilike(pattern),
                Report.description.ilike(pattern),
            ))
        if status is not None:
            query = query.filter(Report.status == ReportStatus(status))

        total = query.count()
        reports = (
            query.order_by(Report.created_at.desc(), Report.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return ReportPage(reports=reports, page=page, total_pages=math.ceil(total / limit), total=total)

    def update_status(
        self,
        report: Report,
        new_status: ReportStatus,
        staff: StaffUser,
        expected_version: Optional[int] = None,
        ip_address: Optional[str] = None
    ) -> Report:
        """
        Change the status on behalf of a staff member.

        Concurrent updates are detected with the report's version counter:
        a stale ``expected_version`` or a concurrent commit raises ConflictError.
        """
        require_access(staff, report)
        if expected_version is not None and expected_version != report.version:
            raise ConflictError(
                f"Report {report.case_id} is at version {report.version}, not {expected_version}",
                safe_message="The report was changed by someone else. Reload and try again."
            )

        if not self.state_machine.transition(report, new_status, changed_by=staff):
            return report

        record_event(
            self.db,
            AuditAction.STATUS_UPDATED,
            f"Status of report {report.case_id} changed to '{report.status.value}'",
            report=report,
            staff_user=staff,
            ip_address=ip_address,
        )
        self._commit()
        self.db.refresh(report)
        logger.info("Report status changed", extra={"case_id": report.case_id, "status": report.status.value})
        return report

    def add_staff_message(
        self,
        report: Report,
        message: str,
        staff: StaffUser,
        ip_address: Optional[str] = None
    ) -> Report:
        require_access(staff, report)
        message = _clean(message)
        if not message:
            raise ValidationError("Message content is required.")

        role = comment_role_for(staff)
        default_author = "System Admin" if role is CommentRole.ADMIN else "Agency Representative"
        report.comments.append(Comment(
            role=role,
            author=staff.name or staff.username or default_author,
            message=message,
            created_at=utcnow()
        ))

        action = (
            AuditAction.REPORT_UPDATED_BY_ADMIN if role is CommentRole.ADMIN
            else AuditAction.REPORT_UPDATED_BY_AGENCY
        )
        record_event(
            self.db,
            action,
            f"{role.value.capitalize()} added message to case {report.case_id}",
            report=report,
            staff_user=staff,
            ip_address=ip_address,
        )
        self._commit()
        self.db.refresh(report)
        return report

    def update_internal_notes(
        self,
        report: Report,
        notes: Optional[str],
        staff: StaffUser,
        ip_address: Optional[str] = None
    ) -> Report:
        """Replace the staff-only notes. Blank notes clear them."""
        require_access(staff, report)
        report.internal_notes = _clean(notes)
        report.updated_at = utcnow()
        record_event(
            self.db,
            AuditAction.INTERNAL_NOTES_UPDATED,
            f"Internal notes of report {report.case_id} updated",
            report=report,
            staff_user=staff,
            ip_address=ip_address,
        )
        self._commit()
        self.db.refresh(report)
        return report

    def assign_category(
        self,
        report: Report,
        category_id: int,
        staff: StaffUser,
        ip_address: Optional[str] = None
    ) -> Report:
        require_admin(staff)
        category = self.db.query(Category).filter(Category.id == category_id).first()
        if not category:
            raise ResourceNotFoundError(f"Category {category_id} not found", safe_message="Category not found.")

        report.category = category
        report.updated_at = utcnow()
        record_event(
            self.db,
            AuditAction.CATEGORY_ASSIGNED,
            f"Category '{category.name}' assigned to report {report.case_id}",
            report=report,
            staff_user=staff,
            ip_address=ip_address,
        )
        self._commit()
        self.db.refresh(report)
        return report

    def assign_agency(
        self,
        report: Report,
        agency_id: int,
        staff: StaffUser,
        ip_address: Optional[str] = None
    ) -> Report:
        require_admin(staff)
        agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
        if not agency:
            raise ResourceNotFoundError(f"Agency {agency_id} not found", safe_message="Agency not found.")

        report.agency = agency
        report.updated_at = utcnow()
        record_event(
            self.db,
            AuditAction.AGENCY_ASSIGNED,
            f"Report {report.case_id} assigned to agency '{agency.name}'",
            report=report,
            staff_user=staff,
            ip_address=ip_address,
        )
        self._commit()
        self.db.refresh(report)
        return report

    # Helpers

    def _validate_new_report(self, data: NewReport) -> ReporterType:
        if not _clean(data.title) or not _clean(data.description):
            raise ValidationError("Title and description are required fields.")

        try:
            reporter_type = ReporterType(data.reporter_type)
        except ValueError:
            raise ValidationError("Invalid reporter type. Must be 'anonymous' or 'confidential'.")

        identity = [_clean(data.reporter_name), _clean(data.reporter_email), _clean(data.reporter_phone)]
        if reporter_type == ReporterType.ANONYMOUS and any(identity):
            raise ValidationError("Anonymous reports cannot include name, email, or phone information.")
        if reporter_type == ReporterType.CONFIDENTIAL and not (identity[0] and identity[1]):
            raise ValidationError("Confidential reports must include reporter name and email address.")

        return reporter_type

    def _build_report(
        self,
        data: NewReport,
        reporter_type: ReporterType,
        case_password: str,
        digest: str,
        evidence: List[EvidenceFile]
    ) -> Report:
        confidential = reporter_type == ReporterType.CONFIDENTIAL
        now = utcnow()
        report = Report(
            case_id=self._next_case_id(now.year),
            reporter_type=reporter_type,
            reporter_name=_clean(data.reporter_name) if confidential else None,
            reporter_email=_clean(data.reporter_email) if confidential else None,
            reporter_phone=_clean(data.reporter_phone) if confidential else None,
            title=data.title.strip(),
            description=data.description.strip(),
            location=_clean(data.location),
            secret_digest=digest,
            secret_hash=hash_case_password(case_password, self.settings.bcrypt_rounds),
            category=default_category(self.db),
            agency=default_agency(self.db),
            created_at=now,
            updated_at=now,
        )
        # Fresh EvidenceFile rows per attempt; a rolled-back attempt must not keep them
        for item in evidence:
            report.evidence_files.append(EvidenceFile(
                reference=item.reference,
                content_type=item.content_type,
                original_name=item.original_name,
                uploaded_at=item.uploaded_at,
            ))
        self.state_machine.start(report)
        return report

    def _next_case_id(self, year: int) -> str:
        """``<prefix>-<year>-<sequence>-<suffix>``; the suffix keeps racing inserts apart."""
        prefix = f"{self.settings.case_prefix}-{year}-"
        count = self.db.query(Report.id).filter(Report.case_id.like(f"{prefix}%")).count()
        suffix = 100 + secrets.randbelow(900)
        return f"{prefix}{count + 1:05d}-{suffix}"

    def _store_uploads(self, uploads: Sequence[Upload]) -> List[EvidenceFile]:
        if not uploads:
            return []
        validate_upload_count(len(uploads), self.settings.max_upload_files)
        for upload in uploads:
            validate_upload(upload, self.settings.max_upload_bytes)
        if self.storage is None:
            raise UpstreamError("Evidence storage is not configured")

        stored = []
        try:
            for upload in uploads:
                obj = self.storage.upload(upload.original_name, upload.content_type, upload.data)
                stored.append(EvidenceFile(
                    reference=obj.reference,
                    content_type=obj.content_type,
                    original_name=obj.original_name,
                    uploaded_at=utcnow(),
                ))
        except UpstreamError:
            self._discard_uploads(stored)
            raise
        return stored

    def _discard_uploads(self, evidence: Sequence[EvidenceFile]) -> None:
        """Delete objects whose report was never committed. The original error still propagates."""
        for item in evidence:
            try:
                self.storage.delete(item.reference)
            except UpstreamError:
                logger.error("Orphaned evidence file left in storage", extra={"key": item.reference}, exc_info=True)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError(
                f"Concurrent update detected: {e}",
                safe_message="The report was changed by someone else. Reload and try again."
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Database commit failed: {e}") from e
