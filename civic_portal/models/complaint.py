from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Text, ForeignKey, UniqueConstraint
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class ComplaintStatus(str, enum.Enum):
    RECEIVED = "received"
    UNDER_REVIEW = "under_review"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"
    REOPENED = "reopened"


# Statuses that no longer count towards open work or SLA
TERMINAL_STATUSES = (ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED, ComplaintStatus.REJECTED)


class ComplaintPriority(str, enum.Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Sort rank, most pressing first
PRIORITY_RANK = {
    ComplaintPriority.CRITICAL: 0,
    ComplaintPriority.URGENT: 1,
    ComplaintPriority.HIGH: 2,
    ComplaintPriority.MEDIUM: 3,
    ComplaintPriority.LOW: 4,
}


class ComplaintSource(str, enum.Enum):
    WEB = "web"
    MOBILE = "mobile"
    CALL_CENTER = "call_center"
    FIELD_OFFICE = "field_office"
    EMAIL = "email"


class Complaint(Base):
    """Citizen service request"""
    __tablename__ = "complaints"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    tracking_code = Column(String(32), unique=True, index=True, nullable=False)
    citizen_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(GUID, ForeignKey("complaint_categories.id"), nullable=True)
    ward_id = Column(GUID, ForeignKey("wards.id"), nullable=True, index=True)
    assigned_department_id = Column(GUID, ForeignKey("departments.id"), nullable=True, index=True)
    assigned_staff_id = Column(GUID, ForeignKey("users.id"), nullable=True, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(enum_type(ComplaintStatus), default=ComplaintStatus.RECEIVED, nullable=False, index=True)
    priority = Column(enum_type(ComplaintPriority), default=ComplaintPriority.MEDIUM, nullable=False)
    source = Column(enum_type(ComplaintSource), default=ComplaintSource.WEB, nullable=False)

    address_text = Column(String(500), nullable=True)
    landmark = Column(String(200), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    phone = Column(String(20), nullable=True)

    submitted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    assigned_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    sla_due_at = Column(DateTime, nullable=True, index=True)
    resolution_notes = Column(Text, nullable=True)
    upvote_count = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES


class ComplaintComment(Base):
    __tablename__ = "complaint_comments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(GUID, ForeignKey("users.id"), nullable=True)  # null for system comments
    author_role = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintStatusHistory(Base):
    __tablename__ = "complaint_status_history"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    old_status = Column(enum_type(ComplaintStatus), nullable=True)
    new_status = Column(enum_type(ComplaintStatus), nullable=False)
    changed_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintAssignmentHistory(Base):
    __tablename__ = "complaint_assignment_history"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to = Column(GUID, ForeignKey("users.id"), nullable=False)
    assigned_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    previous_staff_id = Column(GUID, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintFeedback(Base):
    __tablename__ = "complaint_feedback"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), unique=True, nullable=False)
    citizen_id = Column(GUID, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    issue_resolved = Column(Boolean, nullable=True)
    would_recommend = Column(Boolean, nullable=True)
    feedback_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintAttachment(Base):
    """File metadata only; bytes live outside the portal"""
    __tablename__ = "complaint_attachments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)
    uploaded_by = Column(GUID, ForeignKey("users.id"), nullable=False)
    uploaded_by_role = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintUpvote(Base):
    __tablename__ = "complaint_upvotes"
    __table_args__ = (UniqueConstraint("complaint_id", "user_id", name="uq_complaint_upvote"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    complaint_id = Column(GUID, ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(GUID, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
