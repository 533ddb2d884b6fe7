from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON, ForeignKey
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class NotificationType(str, enum.Enum):
    COMPLAINT_STATUS = "complaint_status"
    COMPLAINT_ASSIGNED = "complaint_assigned"
    COMMENT_ADDED = "comment_added"
    NEW_NOTICE = "new_notice"
    BILL_GENERATED = "bill_generated"
    PAYMENT_SUCCESS = "payment_success"
    SYSTEM_ANNOUNCEMENT = "system_announcement"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Notification(Base):
    """In-app notification"""
    __tablename__ = "notifications"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(enum_type(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(enum_type(NotificationPriority), default=NotificationPriority.NORMAL, nullable=False)

    complaint_id = Column(GUID, nullable=True)
    bill_id = Column(GUID, nullable=True)
    notice_id = Column(GUID, nullable=True)
    action_url = Column(String(500), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)
    delivered_channels = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
