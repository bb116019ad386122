"""
External representations of a report.

Every response that carries report data is built here. The credential
columns are never part of a projection, and anonymous reports lose the
identity fields whoever is asking.
"""
from typing import Any, Dict, List

from tipline.api.schemas import CommentView, EvidenceFileView, ReportView
from tipline.models.domain import Report
from tipline.models.enums import ReporterType

IDENTITY_FIELDS = {"reporter_name", "reporter_email", "reporter_phone"}


def project_report(report: Report, staff_view: bool = False) -> Dict[str, Any]:
    """Internal notes are added only to staff views."""
    exclude = IDENTITY_FIELDS if report.reporter_type == ReporterType.ANONYMOUS else set()
    view = ReportView.model_validate(report).model_dump(mode="json", exclude=exclude)
    if staff_view:
        view["internal_notes"] = report.internal_notes
    return view


def project_comments(report: Report) -> List[Dict[str, Any]]:
    return [CommentView.model_validate(c).model_dump(mode="json") for c in report.comments]


def project_evidence(report: Report) -> List[Dict[str, Any]]:
    return [EvidenceFileView.model_validate(e).model_dump(mode="json") for e in report.evidence_files]
