from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import get_current_user, require_admin
from civic_portal.core.database import get_db
from civic_portal.domain.common import MessageResponse, Page
from civic_portal.domain.notice import NoticeCreate, NoticeOut, NoticeUpdate
from civic_portal.domain.notification import UnreadCount
from civic_portal.models import NoticeType, User
from civic_portal.services import notices as notice_service

router = APIRouter(prefix="/notices", tags=["notices"])


@router.get("", response_model=Page[NoticeOut])
async def list_notices(
    ward_id: Optional[str] = None,
    notice_type: Optional[NoticeType] = None,
    search: Optional[str] = Query(None, max_length=100),
    unread_only: bool = False,
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Published notices, urgent first then newest."""
    items, total = await notice_service.list_notices(
        db, current_user, ward_id, notice_type, search, unread_only, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_notice_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCount(unread_count=await notice_service.count_unread_notices(db, current_user))


@router.get("/{notice_id}", response_model=NoticeOut)
async def get_notice(
    notice_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notice_service.get_notice(db, current_user, notice_id)


@router.post("/{notice_id}/read", response_model=MessageResponse)
async def mark_notice_read(
    notice_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await notice_service.mark_notice_read(db, current_user, notice_id)
    return MessageResponse(message="Notice marked as read")


@router.post("", response_model=NoticeOut, status_code=status.HTTP_201_CREATED)
async def create_notice(
    req: NoticeCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Publish a notice. Urgent notices notify every citizen in scope."""
    return await notice_service.create_notice(db, current_user, req)


@router.put("/{notice_id}", response_model=NoticeOut)
async def update_notice(
    notice_id: str,
    req: NoticeUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await notice_service.update_notice(db, current_user, notice_id, req)


@router.delete("/{notice_id}", response_model=MessageResponse)
async def delete_notice(
    notice_id: str,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await notice_service.delete_notice(db, current_user, notice_id)
    return MessageResponse(message="Notice deleted")
