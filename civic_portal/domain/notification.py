from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from civic_portal.models import NotificationPriority, NotificationType


class NotificationOut(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    complaint_id: Optional[str] = None
    bill_id: Optional[str] = None
    notice_id: Optional[str] = None
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    delivered_channels: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread_count: int
