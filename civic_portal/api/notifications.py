from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import get_current_user
from civic_portal.core.database import get_db
from civic_portal.domain.common import MessageResponse, Page
from civic_portal.domain.notification import NotificationOut, UnreadCount
from civic_portal.models import User
from civic_portal.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Page[NotificationOut])
async def list_notifications(
    unread_only: bool = False,
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await notification_service.list_notifications(
        db, current_user, unread_only, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Served from the Redis badge counter when available."""
    return UnreadCount(unread_count=await notification_service.count_unread(db, current_user))


@router.post("/read-all", response_model=MessageResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await notification_service.mark_all_read(db, current_user)
    return MessageResponse(message=f"{count} notifications marked as read")


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_read(db, current_user, notification_id)
