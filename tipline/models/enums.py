"""Enums for the reporting system - these define the valid values for states and roles."""
from enum import Enum


class ReporterType(str, Enum):
    """How much of the reporter's identity is captured. Immutable after creation."""
    ANONYMOUS = "anonymous"
    CONFIDENTIAL = "confidential"


class ReportStatus(str, Enum):
    """The four statuses a Report can be in. None of them is terminal."""
    PENDING = "pending"
    UNDER_REVIEW = "under review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class StaffRole(str, Enum):
    """Closed set of staff roles. Reporters never have an account."""
    ADMIN = "admin"
    AGENCY = "agency"


class CommentRole(str, Enum):
    """Who wrote a comment on the report thread."""
    REPORTER = "reporter"
    ADMIN = "admin"
    AGENCY = "agency"


# Sentinel rows every new report points at until staff triage it
DEFAULT_CATEGORY_NAME = "uncategorized"
DEFAULT_AGENCY_NAME = "unassigned"
