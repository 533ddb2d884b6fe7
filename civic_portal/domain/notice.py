"""Schemas for municipal notices."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from civic_portal.models import NoticeType


class NoticeCreate(BaseModel):
    title: str = Field(min_length=5, max_length=255)
    excerpt: str = Field(min_length=10, max_length=500)
    content: str = Field(min_length=10)
    notice_type: NoticeType = NoticeType.GENERAL
    is_public: bool = True
    ward_id: Optional[str] = None
    is_urgent: bool = False
    published_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_scope(self):
        if not self.is_public and not self.ward_id:
            raise ValueError("ward_id is required for ward notices")
        if self.published_at and self.expires_at and self.expires_at <= self.published_at:
            raise ValueError("expires_at must be after published_at")
        return self


class NoticeUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=255)
    excerpt: Optional[str] = Field(default=None, min_length=10, max_length=500)
    content: Optional[str] = Field(default=None, min_length=10)
    notice_type: Optional[NoticeType] = None
    is_urgent: Optional[bool] = None
    expires_at: Optional[datetime] = None


class NoticeOut(BaseModel):
    id: str
    title: str
    excerpt: str
    content: str
    notice_type: NoticeType
    ward_id: Optional[str] = None
    is_urgent: bool
    published_at: datetime
    expires_at: Optional[datetime] = None
    created_at: datetime
    is_read: bool = False

    class Config:
        from_attributes = True
