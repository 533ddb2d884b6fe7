"""In-app notifications with preference-aware channel selection.

Email, SMS and push delivery are recorded on the notification as the
channels it was released to; actual dispatch belongs to an external sender.
"""
from datetime import datetime, time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import event, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from civic_portal.core.exceptions import ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.infrastructure.redis import BadgeCounter
from civic_portal.models import Notification, NotificationPriority, NotificationType, User
from civic_portal.services.common import paginate
from civic_portal.services.users import get_preferences
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)

# Preference flag that must be on for each notification type
TYPE_PREFERENCE = {
    NotificationType.COMPLAINT_STATUS: "notify_on_complaint_status",
    NotificationType.COMPLAINT_ASSIGNED: "notify_on_complaint_assigned",
    NotificationType.COMMENT_ADDED: "notify_on_comment",
    NotificationType.NEW_NOTICE: "notify_on_new_notice",
    NotificationType.BILL_GENERATED: "notify_on_bill",
    NotificationType.PAYMENT_SUCCESS: "notify_on_payment",
}

EXTERNAL_CHANNELS = ("email", "sms", "push")


# Badge changes wait in the session until its transaction commits
PENDING_BADGES = "pending_badge_changes"


def _queue_badge(db: AsyncSession, user_id: str, delta: Optional[int]) -> None:
    """Queue ``delta`` for the user's badge; None forgets the counter."""
    db.info.setdefault(PENDING_BADGES, []).append((user_id, delta))


@event.listens_for(Session, "after_commit")
def _apply_badges(session: Session) -> None:
    pending = session.info.pop(PENDING_BADGES, None)
    if not pending:
        return
    badge = BadgeCounter()
    for user_id, delta in pending:
        if delta is None:
            badge.clear(user_id)
        else:
            badge.adjust(user_id, delta)


@event.listens_for(Session, "after_rollback")
def _drop_badges(session: Session) -> None:
    session.info.pop(PENDING_BADGES, None)


def _parse_time(value: Optional[str], fallback: str) -> time:
    """``HH:MM`` or ``HH:MM:SS``; unparseable values give ``fallback``."""
    try:
        return time.fromisoformat(value or fallback).replace(tzinfo=None)
    except (TypeError, ValueError):
        return time.fromisoformat(fallback)


def is_quiet_time(now: datetime, start: Optional[str], end: Optional[str]) -> bool:
    """Whether ``now`` falls inside the daily window [start, end).

    Windows that wrap midnight (``22:00``-``07:00``) are supported.
    """
    current = now.time().replace(second=0, microsecond=0)
    start_t = _parse_time(start, "22:00")
    end_t = _parse_time(end, "07:00")

    if start_t <= end_t:
        return start_t <= current < end_t
    return current >= start_t or current < end_t


def select_channels(
    preferences: Dict[str, Any],
    priority: NotificationPriority = NotificationPriority.NORMAL,
    now: Optional[datetime] = None,
) -> List[str]:
    """Channels a notification is released to under the user's preferences.

    Out-of-app channels are held back during quiet hours unless the
    notification is critical.
    """
    now = now or utcnow()
    channels = []
    if preferences.get("in_app_enabled", True):
        channels.append("in_app")

    quiet = preferences.get("quiet_hours_enabled") and is_quiet_time(
        now, preferences.get("quiet_hours_start"), preferences.get("quiet_hours_end")
    )
    if quiet and priority != NotificationPriority.CRITICAL:
        return channels

    for channel in EXTERNAL_CHANNELS:
        if preferences.get(f"{channel}_enabled"):
            channels.append(channel)
    return channels


def is_type_enabled(preferences: Dict[str, Any], notification_type: NotificationType) -> bool:
    flag = TYPE_PREFERENCE.get(notification_type)
    return flag is None or bool(preferences.get(flag, True))


async def notify(
    db: AsyncSession,
    user_id: Optional[str],
    notification_type: NotificationType,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    complaint_id: Optional[str] = None,
    bill_id: Optional[str] = None,
    notice_id: Optional[str] = None,
    action_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Notification]:
    """Create a notification for a user, honouring their preferences.

    Returns:
        The stored notification, or None when the type is switched off, the
        user has in-app notifications disabled, or the user does not exist.
    """
    if not user_id:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None

    preferences = get_preferences(user)
    if not is_type_enabled(preferences, notification_type):
        logger.debug(f"{notification_type.value} suppressed by preferences", extra={"user_id": user_id})
        return None

    channels = select_channels(preferences, priority, now)
    external = [c for c in channels if c != "in_app"]
    if external:
        logger.info(
            f"Notification released to {', '.join(external)}",
            extra={"user_id": user_id, "operation": notification_type.value},
        )

    if "in_app" not in channels:
        return None

    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        priority=priority,
        complaint_id=complaint_id,
        bill_id=bill_id,
        notice_id=notice_id,
        action_url=action_url,
        delivered_channels=channels,
        created_at=now or utcnow(),
    )
    db.add(notification)
    _queue_badge(db, user_id, 1)
    return notification


async def list_notifications(
    db: AsyncSession,
    user: User,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Notification], int]:
    stmt = select(Notification).where(Notification.user_id == user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc())
    return await paginate(db, stmt, page, page_size)


async def mark_read(db: AsyncSession, user: User, notification_id: str) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise ResourceNotFoundError("Notification", notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.flush()
        _queue_badge(db, user.id, -1)
    return notification


async def mark_all_read(db: AsyncSession, user: User) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
    )
    _queue_badge(db, user.id, None)
    logger.info(f"Marked {result.rowcount} notifications read", extra={"user_id": user.id})
    return result.rowcount or 0


async def count_unread(db: AsyncSession, user: User) -> int:
    """Unread count from the Redis badge, recounted from the database on a miss."""
    badge = BadgeCounter()
    cached = badge.get(user.id)
    if cached is not None:
        return cached

    count = await db.scalar(
        select(func.count(Notification.id))
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
    ) or 0
    # Uncommitted changes would be counted twice once the queue is applied
    if not db.info.get(PENDING_BADGES):
        badge.reset(user.id, count)
    return count
