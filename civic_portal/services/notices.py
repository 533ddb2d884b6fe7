"""Municipal notices with per-user read tracking."""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.domain.notice import NoticeCreate, NoticeUpdate
from civic_portal.models import (
    Notice,
    NoticeRead,
    NoticeType,
    NotificationPriority,
    NotificationType,
    User,
    UserRole,
)
from civic_portal.services import reference
from civic_portal.services.common import paginate
from civic_portal.services.notifications import notify
from civic_portal.utils.text import escape_like, sanitize_text, truncate
from civic_portal.utils.time import to_naive_utc, utcnow

logger = get_logger(__name__)

# Notification messages carry a short form of the excerpt
NOTIFICATION_EXCERPT_LENGTH = 120


def _published_clause(now):
    return and_(
        Notice.published_at <= now,
        or_(Notice.expires_at.is_(None), Notice.expires_at > now),
    )


def _visible_to(user: User):
    """Citizens see city-wide notices plus those for their own ward."""
    if UserRole(user.role) == UserRole.CITIZEN:
        if user.ward_id:
            return or_(Notice.ward_id.is_(None), Notice.ward_id == user.ward_id)
        return Notice.ward_id.is_(None)
    return None


def _with_read_flag(notice: Notice, is_read: bool) -> Dict[str, Any]:
    data = {c.name: getattr(notice, c.name) for c in Notice.__table__.columns}
    data["is_read"] = bool(is_read)
    return data


async def list_notices(
    db: AsyncSession,
    user: User,
    ward_id: Optional[str] = None,
    notice_type: Optional[NoticeType] = None,
    search: Optional[str] = None,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Dict[str, Any]], int]:
    """Published notices, urgent first then newest, with ``is_read`` per user."""
    now = utcnow()
    read_exists = exists().where(NoticeRead.notice_id == Notice.id, NoticeRead.user_id == user.id)

    stmt = select(Notice, read_exists.label("is_read")).where(_published_clause(now))
    visibility = _visible_to(user)
    if visibility is not None:
        stmt = stmt.where(visibility)
    if ward_id:
        stmt = stmt.where(Notice.ward_id == ward_id)
    if notice_type:
        stmt = stmt.where(Notice.notice_type == notice_type)
    if search:
        term = f"%{escape_like(search.strip())}%"
        stmt = stmt.where(or_(
            Notice.title.ilike(term, escape="\\"),
            Notice.excerpt.ilike(term, escape="\\"),
        ))
    if unread_only:
        stmt = stmt.where(~read_exists)

    stmt = stmt.order_by(Notice.is_urgent.desc(), Notice.published_at.desc())
    rows, total = await paginate(db, stmt, page, page_size, scalars=False)
    return [_with_read_flag(notice, is_read) for notice, is_read in rows], total


async def get_notice(db: AsyncSession, user: User, notice_id: str) -> Dict[str, Any]:
    notice = await db.get(Notice, notice_id)
    if notice is None:
        raise ResourceNotFoundError("Notice", notice_id)

    if UserRole(user.role) == UserRole.CITIZEN:
        now = utcnow()
        published = notice.published_at <= now and (notice.expires_at is None or notice.expires_at > now)
        in_scope = notice.ward_id is None or notice.ward_id == user.ward_id
        if not (published and in_scope):
            raise ResourceNotFoundError("Notice", notice_id)

    is_read = await db.scalar(
        select(NoticeRead.id).where(NoticeRead.notice_id == notice.id, NoticeRead.user_id == user.id)
    )
    return _with_read_flag(notice, is_read is not None)


async def create_notice(db: AsyncSession, actor: User, data: NoticeCreate) -> Notice:
    """Publish a notice.

    Public notices are stored with no ward. Urgent notices notify every
    active citizen in scope.
    """
    ward_id = None if data.is_public else data.ward_id
    if ward_id:
        await reference.get_ward(db, ward_id)

    now = utcnow()
    notice = Notice(
        title=sanitize_text(data.title),
        excerpt=sanitize_text(data.excerpt),
        content=data.content.strip(),
        notice_type=data.notice_type,
        ward_id=ward_id,
        is_urgent=data.is_urgent,
        published_at=to_naive_utc(data.published_at) if data.published_at else now,
        expires_at=to_naive_utc(data.expires_at) if data.expires_at else None,
        created_by=actor.id,
    )
    db.add(notice)
    await db.flush()

    if notice.is_urgent and notice.published_at <= now:
        stmt = select(User.id).where(User.role == UserRole.CITIZEN, User.is_active.is_(True))
        if ward_id:
            stmt = stmt.where(User.ward_id == ward_id)
        recipients = (await db.execute(stmt)).scalars().all()
        for user_id in recipients:
            await notify(
                db, user_id, NotificationType.NEW_NOTICE,
                title=f"Urgent: {notice.title}",
                message=truncate(notice.excerpt, NOTIFICATION_EXCERPT_LENGTH),
                priority=NotificationPriority.HIGH,
                notice_id=notice.id,
            )
        await db.flush()
        logger.info(f"Urgent notice sent to {len(recipients)} citizens", extra={"user_id": actor.id})

    logger.info(f"Notice published: {notice.title}", extra={"user_id": actor.id})
    return notice


async def update_notice(db: AsyncSession, actor: User, notice_id: str, data: NoticeUpdate) -> Notice:
    notice = await db.get(Notice, notice_id)
    if notice is None:
        raise ResourceNotFoundError("Notice", notice_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field in ("title", "excerpt") and value is not None:
            value = sanitize_text(value)
        if field == "expires_at" and value is not None:
            value = to_naive_utc(value)
        setattr(notice, field, value)
    notice.updated_at = utcnow()
    await db.flush()
    return notice


async def delete_notice(db: AsyncSession, actor: User, notice_id: str) -> None:
    notice = await db.get(Notice, notice_id)
    if notice is None:
        raise ResourceNotFoundError("Notice", notice_id)
    reads = (await db.execute(select(NoticeRead).where(NoticeRead.notice_id == notice_id))).scalars().all()
    for read in reads:
        await db.delete(read)
    await db.delete(notice)
    await db.flush()
    logger.info(f"Notice deleted: {notice_id}", extra={"user_id": actor.id})


async def mark_notice_read(db: AsyncSession, user: User, notice_id: str) -> None:
    """Idempotent: marking an already-read notice is a no-op."""
    await get_notice(db, user, notice_id)
    existing = await db.scalar(
        select(NoticeRead.id).where(NoticeRead.notice_id == notice_id, NoticeRead.user_id == user.id)
    )
    if existing is None:
        db.add(NoticeRead(notice_id=notice_id, user_id=user.id))
        await db.flush()


async def count_unread_notices(db: AsyncSession, user: User) -> int:
    now = utcnow()
    stmt = select(func.count(Notice.id)).where(_published_clause(now))
    visibility = _visible_to(user)
    if visibility is not None:
        stmt = stmt.where(visibility)
    total = await db.scalar(stmt) or 0

    read_stmt = (
        select(func.count(NoticeRead.id))
        .join(Notice, Notice.id == NoticeRead.notice_id)
        .where(NoticeRead.user_id == user.id, _published_clause(now))
    )
    if visibility is not None:
        read_stmt = read_stmt.where(visibility)
    read = await db.scalar(read_stmt) or 0
    return max(0, total - read)
