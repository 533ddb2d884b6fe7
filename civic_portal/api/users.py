from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.auth import get_current_user, require_citizen
from civic_portal.core.database import get_db
from civic_portal.domain.common import MessageResponse
from civic_portal.domain.user import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PasswordChange,
    ProfileUpdate,
    UserOut,
)
from civic_portal.models import User
from civic_portal.services import analytics
from civic_portal.services import users as user_service

router = APIRouter(prefix="/users/me", tags=["profile"])


@router.get("", response_model=UserOut)
async def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("", response_model=UserOut)
async def update_profile(
    req: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update name, phone, address or home ward."""
    return await user_service.update_profile(db, current_user, req)


@router.post("/password", response_model=MessageResponse)
async def change_password(
    req: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await user_service.change_password(db, current_user, req)
    return MessageResponse(message="Password updated")


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(current_user: User = Depends(get_current_user)):
    return user_service.get_preferences(current_user)


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    req: NotificationPreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Partial update; omitted fields keep their current value."""
    return await user_service.update_preferences(db, current_user, req)


@router.get("/dashboard")
async def citizen_dashboard(
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """Complaint and bill stats, recent notices and unread counts."""
    return await analytics.get_citizen_dashboard(db, current_user)
