"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tipline.models.enums import CommentRole, ReporterType, ReportStatus


# Nested views
class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


class AgencyRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


class EvidenceFileView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reference: str
    content_type: Optional[str]
    original_name: Optional[str]
    uploaded_at: datetime


class CommentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: CommentRole
    author: Optional[str]
    message: str
    created_at: datetime


class StatusChangeView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: ReportStatus
    changed_at: datetime


class ReportView(BaseModel):
    """
    Public projection of a report.

    The credential columns and internal notes are not declared, so they never
    reach a reporter. Identity fields are dropped for anonymous reports by
    ``tipline.services.visibility.project_report``.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    case_id: str
    reporter_type: ReporterType
    reporter_name: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_phone: Optional[str] = None
    title: str
    description: str
    location: Optional[str]
    status: ReportStatus
    is_resolved: bool
    category: Optional[CategoryRef]
    agency: Optional[AgencyRef]
    evidence_files: List[EvidenceFileView]
    comments: List[CommentView]
    status_history: List[StatusChangeView]
    version: int
    created_at: datetime
    updated_at: datetime


# Reporter requests
class FollowUpRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)


# Staff requests
class StatusUpdate(BaseModel):
    status: ReportStatus
    expected_version: Optional[int] = None


class StaffMessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)


class InternalNotesUpdate(BaseModel):
    internal_notes: Optional[str] = Field(None, max_length=5000)


class CategoryAssign(BaseModel):
    category_id: int


class AgencyAssign(BaseModel):
    agency_id: int


# Responses
class ReportEnvelope(BaseModel):
    success: bool = True
    message: str
    data: Dict[str, Any]


class CreatedReportEnvelope(ReportEnvelope):
    # Only ever present in the creation response
    case_password: str


class ThreadData(BaseModel):
    comments: List[Dict[str, Any]]
    evidence_files: List[Dict[str, Any]]


class ThreadEnvelope(BaseModel):
    success: bool = True
    message: str
    data: ThreadData


class CommentsEnvelope(BaseModel):
    success: bool = True
    message: str
    data: List[Dict[str, Any]]


class ReportListEnvelope(BaseModel):
    success: bool = True
    current_page: int
    total_pages: int
    total_reports: int
    count: int
    data: List[Dict[str, Any]]


# Error response
class ErrorResponse(BaseModel):
    """Response when an action is rejected."""
    message: str
