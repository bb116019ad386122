"""API routes for reporters and staff."""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from tipline.config import Settings, get_settings
from tipline.database import get_db
from tipline.models.domain import StaffUser
from tipline.models.enums import ReportStatus
from tipline.services.errors import TiplineError, ValidationError
from tipline.services.reports import NewReport, ReportService
from tipline.services.storage import EvidenceStorage, LocalEvidenceStorage, Upload, validate_upload_count
from tipline.services.visibility import project_comments, project_evidence, project_report
from tipline.api.schemas import (
    AgencyAssign,
    CategoryAssign,
    CommentsEnvelope,
    CreatedReportEnvelope,
    ErrorResponse,
    FollowUpRequest,
    InternalNotesUpdate,
    ReportEnvelope,
    ReportListEnvelope,
    StaffMessageCreate,
    StatusUpdate,
    ThreadData,
    ThreadEnvelope,
)

router = APIRouter()

_REJECTIONS = {
    400: {"model": ErrorResponse, "description": "Missing or contradictory fields"},
    401: {"model": ErrorResponse, "description": "Case password rejected"},
}


def get_storage(settings: Settings = Depends(get_settings)) -> EvidenceStorage:
    """Dependency for the evidence store. Overridden in tests."""
    return LocalEvidenceStorage(settings.evidence_dir)


def get_report_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    storage: EvidenceStorage = Depends(get_storage)
) -> ReportService:
    return ReportService(db, settings=settings, storage=storage)


def get_staff_user(
    x_staff_user: int = Header(..., description="Authenticated staff user id, set by the auth gateway"),
    db: Session = Depends(get_db)
) -> StaffUser:
    staff = db.query(StaffUser).filter(StaffUser.id == x_staff_user).first()
    if not staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"message": "Unknown staff user."})
    return staff


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _http_error(e: TiplineError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"message": e.safe_message})


async def _read_uploads(files: Optional[List[UploadFile]], settings: Settings) -> List[Upload]:
    """Enforce the count and size limits before any file is pulled into memory."""
    files = files or []
    validate_upload_count(len(files), settings.max_upload_files)

    uploads = []
    for f in files:
        if f.size is not None and f.size > settings.max_upload_bytes:
            raise ValidationError(f"File '{f.filename}' exceeds the {settings.max_upload_bytes} byte upload limit")
        # One byte over the limit is enough for validate_upload to reject it
        uploads.append(Upload(
            original_name=f.filename or "upload",
            content_type=f.content_type or "application/octet-stream",
            data=await f.read(settings.max_upload_bytes + 1)
        ))
    return uploads


# Reporter endpoints
@router.post("/reports", response_model=CreatedReportEnvelope, status_code=status.HTTP_201_CREATED, responses={
    409: {"model": ErrorResponse, "description": "No unique case password could be minted"},
    502: {"model": ErrorResponse, "description": "Evidence storage or database failure"},
})
async def create_report(
    request: Request,
    title: str = Form(...),
    description: str = Form(...),
    reporter_type: str = Form(...),
    location: Optional[str] = Form(None),
    reporter_name: Optional[str] = Form(None),
    reporter_email: Optional[str] = Form(None),
    reporter_phone: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    service: ReportService = Depends(get_report_service)
):
    """
    Submit a report.

    The case password in the response is the only copy that will ever exist.
    """
    data = NewReport(
        title=title,
        description=description,
        reporter_type=reporter_type,
        location=location,
        reporter_name=reporter_name,
        reporter_email=reporter_email,
        reporter_phone=reporter_phone,
    )
    try:
        uploads = await _read_uploads(files, service.settings)
        created = await run_in_threadpool(service.create_report, data, uploads, _client_ip(request))
    except TiplineError as e:
        raise _http_error(e)

    return CreatedReportEnvelope(
        message="Report submitted successfully",
        data=project_report(created.report),
        case_password=created.case_password,
    )


@router.post("/reports/follow-up", response_model=ReportEnvelope, responses=_REJECTIONS)
def follow_up(
    body: FollowUpRequest,
    request: Request,
    service: ReportService = Depends(get_report_service)
):
    """Retrieve a report with its case password."""
    try:
        report = service.follow_up(body.password, ip_address=_client_ip(request))
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Report retrieved successfully.", data=project_report(report))


@router.post("/reports/message", response_model=ThreadEnvelope, status_code=status.HTTP_201_CREATED,
             responses=_REJECTIONS)
async def add_reporter_message(
    request: Request,
    password: str = Form(...),
    message: str = Form(...),
    files: Optional[List[UploadFile]] = File(None),
    service: ReportService = Depends(get_report_service)
):
    """Add a message, and optionally evidence, to the report the password opens."""
    try:
        uploads = await _read_uploads(files, service.settings)
        report = await run_in_threadpool(
            service.add_reporter_message, password, message, uploads, _client_ip(request)
        )
    except TiplineError as e:
        raise _http_error(e)
    return ThreadEnvelope(
        message="Message added successfully.",
        data=ThreadData(comments=project_comments(report), evidence_files=project_evidence(report)),
    )


# Staff endpoints
@router.get("/staff/reports", response_model=ReportListEnvelope)
def list_reports(
    page: int = 1,
    limit: int = 10,
    keyword: str = "",
    report_status: Optional[ReportStatus] = Query(None, alias="status"),
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    """List reports, newest first, with keyword search and status filter."""
    result = service.list_reports(staff, page=page, limit=limit, keyword=keyword, status=report_status)
    return ReportListEnvelope(
        current_page=result.page,
        total_pages=result.total_pages,
        total_reports=result.total,
        count=len(result.reports),
        data=[project_report(r, staff_view=True) for r in result.reports],
    )


@router.get("/staff/reports/unassigned", response_model=ReportListEnvelope)
def list_unassigned_reports(
    page: int = 1,
    limit: int = 10,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    """Reports still on the 'unassigned' agency. Admin only."""
    try:
        result = service.list_reports(staff, page=page, limit=limit, unassigned_only=True)
    except TiplineError as e:
        raise _http_error(e)
    return ReportListEnvelope(
        current_page=result.page,
        total_pages=result.total_pages,
        total_reports=result.total,
        count=len(result.reports),
        data=[project_report(r, staff_view=True) for r in result.reports],
    )


@router.get("/staff/reports/{report_id}", response_model=ReportEnvelope)
def get_report(
    report_id: int,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    try:
        report = service.get_report(report_id, staff)
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Report retrieved successfully.", data=project_report(report, staff_view=True))


@router.patch("/staff/reports/{report_id}/status", response_model=ReportEnvelope, responses={
    409: {"model": ErrorResponse, "description": "Report changed since it was read"}
})
def update_status(
    report_id: int,
    body: StatusUpdate,
    request: Request,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    """
    Change a report's status.
    Side effect: resolved sets is_resolved, reopening clears it, closing leaves it.
    """
    try:
        report = service.get_report(report_id, staff)
        report = service.update_status(
            report,
            body.status,
            staff,
            expected_version=body.expected_version,
            ip_address=_client_ip(request)
        )
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Report status updated successfully.", data=project_report(report, staff_view=True))


@router.post("/staff/reports/{report_id}/messages", response_model=CommentsEnvelope,
             status_code=status.HTTP_201_CREATED)
def add_staff_message(
    report_id: int,
    body: StaffMessageCreate,
    request: Request,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    try:
        report = service.get_report(report_id, staff)
        report = service.add_staff_message(report, body.message, staff, ip_address=_client_ip(request))
    except TiplineError as e:
        raise _http_error(e)
    return CommentsEnvelope(message="Message added successfully.", data=project_comments(report))


@router.patch("/staff/reports/{report_id}/category", response_model=ReportEnvelope)
def assign_category(
    report_id: int,
    body: CategoryAssign,
    request: Request,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    try:
        report = service.get_report(report_id, staff)
        report = service.assign_category(report, body.category_id, staff, ip_address=_client_ip(request))
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Category assigned successfully", data=project_report(report, staff_view=True))


@router.patch("/staff/reports/{report_id}/agency", response_model=ReportEnvelope)
def assign_agency(
    report_id: int,
    body: AgencyAssign,
    request: Request,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    try:
        report = service.get_report(report_id, staff)
        report = service.assign_agency(report, body.agency_id, staff, ip_address=_client_ip(request))
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Agency assigned successfully", data=project_report(report, staff_view=True))


@router.patch("/staff/reports/{report_id}/notes", response_model=ReportEnvelope)
def update_internal_notes(
    report_id: int,
    body: InternalNotesUpdate,
    request: Request,
    staff: StaffUser = Depends(get_staff_user),
    service: ReportService = Depends(get_report_service)
):
    """Staff-only notes. They never appear in reporter-facing responses."""
    try:
        report = service.get_report(report_id, staff)
        report = service.update_internal_notes(report, body.internal_notes, staff, ip_address=_client_ip(request))
    except TiplineError as e:
        raise _http_error(e)
    return ReportEnvelope(message="Internal notes updated", data=project_report(report, staff_view=True))
