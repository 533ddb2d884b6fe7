from sqlalchemy import Column, String, DateTime, Text, ForeignKey
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.models.complaint import ComplaintPriority
from civic_portal.utils.time import utcnow


class TaskStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Task(Base):
    """Internal work item created by a supervisor"""
    __tablename__ = "tasks"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(enum_type(ComplaintPriority), default=ComplaintPriority.MEDIUM, nullable=False)
    status = Column(enum_type(TaskStatus), default=TaskStatus.NOT_STARTED, nullable=False, index=True)

    assigned_to = Column(GUID, ForeignKey("users.id"), nullable=True, index=True)
    created_by = Column(GUID, ForeignKey("users.id"), nullable=False)
    complaint_id = Column(GUID, ForeignKey("complaints.id"), nullable=True)
    ward_id = Column(GUID, ForeignKey("wards.id"), nullable=True)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=True)

    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
