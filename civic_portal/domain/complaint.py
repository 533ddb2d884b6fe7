"""Schemas for complaints, their comments, attachments and feedback."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from civic_portal.domain.user import Phone
from civic_portal.models import ComplaintPriority, ComplaintSource, ComplaintStatus

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024
ALLOWED_ATTACHMENT_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "application/pdf",
)


class ComplaintCreate(BaseModel):
    """Complaint submission form.

    Title and description are trimmed before their length is checked, so a
    title of blanks is rejected like an empty one.
    """
    title: str = Field(min_length=10, max_length=200)
    description: str = Field(min_length=50, max_length=2000)
    category_id: str
    ward_id: str
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    source: ComplaintSource = ComplaintSource.WEB
    address_text: Optional[str] = Field(default=None, max_length=500)
    landmark: Optional[str] = Field(default=None, max_length=200)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    is_anonymous: bool = False
    phone: Phone = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Streetlight not working near Ward 4 office",
                "description": "The streetlight in front of the ward office has been off for a week and the lane is completely dark at night.",
                "category_id": "a7d0e4b2-9f61-4a4a-8f3a-4c1d2e3f4a5b",
                "ward_id": "0c9b8a7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d",
                "priority": "medium",
                "phone": "9812345678"
            }
        }


class ComplaintOut(BaseModel):
    id: str
    tracking_code: str
    citizen_id: str
    category_id: Optional[str] = None
    ward_id: Optional[str] = None
    assigned_department_id: Optional[str] = None
    assigned_staff_id: Optional[str] = None
    title: str
    description: str
    status: ComplaintStatus
    priority: ComplaintPriority
    source: ComplaintSource
    address_text: Optional[str] = None
    landmark: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_anonymous: bool = False
    submitted_at: datetime
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    sla_due_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    upvote_count: int = 0

    class Config:
        from_attributes = True


class ComplaintFilters(BaseModel):
    """Search filters; every field is optional."""
    search: Optional[str] = None
    status: Optional[List[ComplaintStatus]] = None
    priority: Optional[List[ComplaintPriority]] = None
    ward_id: Optional[str] = None
    category_id: Optional[str] = None
    department_id: Optional[str] = None
    assigned_staff_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    is_overdue: Optional[bool] = None
    unassigned: Optional[bool] = None
    sort_by: str = Field(default="submitted_at", pattern="^(submitted_at|priority|sla_due_at|status)$")
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")


class StatusUpdate(BaseModel):
    status: ComplaintStatus
    note: Optional[str] = Field(default=None, max_length=1000)


class PriorityUpdate(BaseModel):
    priority: ComplaintPriority
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignRequest(BaseModel):
    staff_id: str
    note: Optional[str] = Field(default=None, max_length=500)


class ReassignRequest(BaseModel):
    staff_id: str
    reason: str = Field(min_length=3, max_length=500)


class BulkAssignRequest(BaseModel):
    complaint_ids: List[str] = Field(min_length=1, max_length=100)
    staff_id: str
    note: Optional[str] = None


class BulkStatusRequest(BaseModel):
    complaint_ids: List[str] = Field(min_length=1, max_length=100)
    status: ComplaintStatus
    note: Optional[str] = None


class BulkResult(BaseModel):
    updated: List[str]
    failed: Dict[str, str] = {}


class CloseRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class CompleteWorkRequest(BaseModel):
    resolution_notes: str = Field(min_length=5, max_length=2000)


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    is_internal: bool = False


class CommentOut(BaseModel):
    id: str
    complaint_id: str
    author_id: Optional[str] = None
    author_role: str
    content: str
    is_internal: bool
    created_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    id: str
    old_status: Optional[ComplaintStatus] = None
    new_status: ComplaintStatus
    changed_by: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentHistoryOut(BaseModel):
    id: str
    assigned_to: str
    assigned_by: Optional[str] = None
    previous_staff_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AttachmentCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_type: str
    file_size: int = Field(gt=0, le=MAX_ATTACHMENT_BYTES)

    @field_validator("file_type")
    @classmethod
    def allowed_type(cls, value: str) -> str:
        if value not in ALLOWED_ATTACHMENT_TYPES:
            raise ValueError(f"File type must be one of: {', '.join(ALLOWED_ATTACHMENT_TYPES)}")
        return value


class AttachmentOut(BaseModel):
    id: str
    file_name: str
    file_type: str
    file_size: int
    uploaded_by: str
    uploaded_by_role: str
    created_at: datetime

    class Config:
        from_attributes = True


class FeedbackCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    issue_resolved: Optional[bool] = None
    would_recommend: Optional[bool] = None
    feedback_text: Optional[str] = Field(default=None, max_length=1000)


class FeedbackOut(FeedbackCreate):
    id: str
    complaint_id: str
    citizen_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class SlaInfo(BaseModel):
    status: str
    color: str
    label: str
    description: str
    countdown: Optional[str] = None


class ComplaintDetail(BaseModel):
    complaint: ComplaintOut
    category_name: Optional[str] = None
    ward_name: Optional[str] = None
    department_name: Optional[str] = None
    assigned_staff_name: Optional[str] = None
    comments: List[CommentOut]
    status_history: List[StatusHistoryOut]
    assignment_history: List[AssignmentHistoryOut] = []
    citizen_attachments: List[AttachmentOut]
    staff_attachments: List[AttachmentOut]
    feedback: Optional[FeedbackOut] = None
    sla: SlaInfo


class CitizenComplaintStats(BaseModel):
    total: int
    open: int
    in_progress: int
    resolved: int
