"""Domain models - the Report aggregate and the rows it references."""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from tipline.database import Base
from tipline.models.enums import CommentRole, ReporterType, ReportStatus, StaffRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Agency(Base):
    """An agency reports can be routed to. Staff users with the agency role belong to one."""
    __tablename__ = "agencies"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    description = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    staff = relationship("StaffUser", back_populates="agency")


class StaffUser(Base):
    """
    An administrator or agency employee.

    Invariants:
    - At most one admin exists. Enforced by a unique partial index so two
      concurrent inserts cannot both succeed.
    - Agency staff are linked to exactly one agency.
    """
    __tablename__ = "staff_users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    role = Column(SQLEnum(StaffRole), nullable=False)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    agency = relationship("Agency", back_populates="staff")

    # SQLEnum persists member names, hence 'ADMIN'
    __table_args__ = (
        Index(
            "uq_staff_users_single_admin",
            "role",
            unique=True,
            sqlite_where=text("role = 'ADMIN'"),
            postgresql_where=text("role = 'ADMIN'"),
        ),
    )


class Report(Base):
    """
    The aggregate root the case password protects.

    Invariants enforced here:
    - case_id and secret_digest are unique
    - secret_hash is a bcrypt hash; the plaintext is never stored
    - evidence, comments and status history are separate append-only rows,
      so concurrent appends never overwrite each other
    - version guards status/category/agency updates against lost writes
    """
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    case_id = Column(String, nullable=False, unique=True, index=True)

    reporter_type = Column(SQLEnum(ReporterType), nullable=False)
    # Confidential reporters only
    reporter_name = Column(String, nullable=True)
    reporter_email = Column(String, nullable=True)
    reporter_phone = Column(String, nullable=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String, nullable=True)

    # Written by admins and agency staff; never shown to the reporter
    internal_notes = Column(Text, nullable=True)

    # Lookup index and credential store; never leave the service layer
    secret_digest = Column(String(64), nullable=False, unique=True, index=True)
    secret_hash = Column(String(60), nullable=False)

    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.PENDING, index=True)
    is_resolved = Column(Boolean, nullable=False, default=False)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    category = relationship("Category")
    agency = relationship("Agency")
    evidence_files = relationship(
        "EvidenceFile", back_populates="report", order_by="EvidenceFile.id", cascade="all, delete-orphan"
    )
    comments = relationship(
        "Comment", back_populates="report", order_by="Comment.id", cascade="all, delete-orphan"
    )
    status_history = relationship(
        "StatusChange", back_populates="report", order_by="StatusChange.id", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}


class EvidenceFile(Base):
    """A file stored in evidence storage. Only its metadata lives here."""
    __tablename__ = "evidence_files"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False, index=True)
    reference = Column(String, nullable=False)  # storage key or URL
    content_type = Column(String, nullable=True)
    original_name = Column(String, nullable=True)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="evidence_files")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False, index=True)
    role = Column(SQLEnum(CommentRole), nullable=False)
    author = Column(String, nullable=True)  # Never set for reporter comments
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="comments")


class StatusChange(Base):
    """One entry per observed status transition, including the initial status."""
    __tablename__ = "status_changes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False, index=True)
    status = Column(SQLEnum(ReportStatus), nullable=False)
    changed_by_id = Column(Integer, ForeignKey("staff_users.id"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="status_history")
