from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class NoticeType(str, enum.Enum):
    GENERAL = "general"
    TENDER = "tender"
    EVENT = "event"
    EMERGENCY = "emergency"
    VACANCY = "vacancy"


class Notice(Base):
    """Public or ward-scoped announcement"""
    __tablename__ = "notices"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    excerpt = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    notice_type = Column(enum_type(NoticeType), default=NoticeType.GENERAL, nullable=False)
    ward_id = Column(GUID, ForeignKey("wards.id"), nullable=True, index=True)  # null = city-wide
    is_urgent = Column(Boolean, default=False, nullable=False)
    published_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)
    created_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class NoticeRead(Base):
    __tablename__ = "notice_reads"
    __table_args__ = (UniqueConstraint("user_id", "notice_id", name="uq_notice_read"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    notice_id = Column(GUID, ForeignKey("notices.id", ondelete="CASCADE"), nullable=False)
    read_at = Column(DateTime, default=utcnow, nullable=False)
