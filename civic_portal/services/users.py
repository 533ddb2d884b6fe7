"""Account registration, profiles, preferences and admin user management."""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.auth import hash_password, verify_password
from civic_portal.core.exceptions import BusinessRuleError, ConflictError, PermissionDeniedError, ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.domain.user import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
)
from civic_portal.models import Complaint, Payment, PaymentStatus, User, UserRole, Ward
from civic_portal.services.common import paginate
from civic_portal.utils.text import escape_like, sanitize_text
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)

DEFAULT_PREFERENCES: Dict[str, Any] = NotificationPreferences().model_dump()


def get_preferences(user: User) -> Dict[str, Any]:
    """Stored overrides merged over the defaults."""
    stored = user.notification_preferences or {}
    known = {k: v for k, v in stored.items() if k in DEFAULT_PREFERENCES}
    return {**DEFAULT_PREFERENCES, **known}


async def update_preferences(
    db: AsyncSession, user: User, changes: NotificationPreferencesUpdate
) -> Dict[str, Any]:
    updates = changes.model_dump(exclude_unset=True, exclude_none=True)
    merged = {**(user.notification_preferences or {}), **updates}
    # Reassign so the JSON column is marked dirty
    user.notification_preferences = merged
    user.updated_at = utcnow()
    await db.flush()
    logger.info("Notification preferences updated", extra={"user_id": user.id})
    return get_preferences(user)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def _ensure_ward(db: AsyncSession, ward_id: Optional[str]) -> None:
    if ward_id and await db.get(Ward, ward_id) is None:
        raise ResourceNotFoundError("Ward", ward_id)


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    full_name: str,
    role: UserRole = UserRole.CITIZEN,
    phone: Optional[str] = None,
    ward_id: Optional[str] = None,
) -> User:
    if await get_user_by_email(db, email):
        raise ConflictError("Email already registered", code="EMAIL_EXISTS", details={"email": email})
    await _ensure_ward(db, ward_id)

    user = User(
        email=email.lower(),
        hashed_password=hash_password(password),
        full_name=sanitize_text(full_name),
        phone=phone,
        role=role,
        ward_id=ward_id,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    logger.info(f"User created: {user.email}", extra={"user_id": user.id, "role": role.value})
    return user


async def register_citizen(db: AsyncSession, data: RegisterRequest) -> User:
    return await create_user(
        db,
        email=data.email,
        password=data.password,
        full_name=data.full_name,
        role=UserRole.CITIZEN,
        phone=data.phone,
        ward_id=data.ward_id,
    )


async def record_login(db: AsyncSession, user: User) -> None:
    user.last_login = utcnow()
    await db.flush()


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    changes = data.model_dump(exclude_unset=True)
    if "ward_id" in changes:
        await _ensure_ward(db, changes["ward_id"])
    for field, value in changes.items():
        if isinstance(value, str) and field != "ward_id":
            value = sanitize_text(value)
        setattr(user, field, value)
    user.updated_at = utcnow()
    await db.flush()
    return user


async def change_password(db: AsyncSession, user: User, data: PasswordChange) -> None:
    if not verify_password(data.current_password, user.hashed_password):
        raise BusinessRuleError("Current password is incorrect", code="INVALID_PASSWORD")
    if data.current_password == data.new_password:
        raise BusinessRuleError("New password must differ from the current one", code="PASSWORD_UNCHANGED")
    user.hashed_password = hash_password(data.new_password)
    user.updated_at = utcnow()
    await db.flush()
    logger.info("Password changed", extra={"user_id": user.id})


async def list_users(
    db: AsyncSession,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[User], int]:
    stmt = select(User)
    if search:
        term = f"%{escape_like(search.strip())}%"
        stmt = stmt.where(or_(
            User.full_name.ilike(term, escape="\\"),
            User.email.ilike(term, escape="\\"),
            User.phone.ilike(term, escape="\\"),
        ))
    if role:
        stmt = stmt.where(User.role == role)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)
    stmt = stmt.order_by(User.created_at.desc())
    return await paginate(db, stmt, page, page_size)


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", user_id)
    return user


async def get_user_detail(db: AsyncSession, user_id: str) -> Dict[str, Any]:
    user = await get_user(db, user_id)
    complaint_count = await db.scalar(
        select(func.count(Complaint.id)).where(Complaint.citizen_id == user_id)
    )
    payment_count, total_paid = (await db.execute(
        select(func.count(Payment.id), func.coalesce(func.sum(Payment.amount_paid), 0.0))
        .where(Payment.citizen_id == user_id, Payment.status == PaymentStatus.COMPLETED)
    )).one()
    return {
        **{c.name: getattr(user, c.name) for c in User.__table__.columns if c.name != "hashed_password"},
        "complaint_count": complaint_count or 0,
        "payment_count": payment_count or 0,
        "total_paid": float(total_paid or 0),
    }


async def change_role(db: AsyncSession, actor: User, user_id: str, role: UserRole) -> User:
    user = await get_user(db, user_id)
    if user.id == actor.id and role != UserRole.ADMIN:
        raise PermissionDeniedError("Admins cannot demote themselves")
    old_role = user.role
    user.role = role
    user.updated_at = utcnow()
    await db.flush()
    logger.info(
        f"Role changed from {UserRole(old_role).value} to {role.value}",
        extra={"user_id": user.id, "role": role.value},
    )
    return user


async def set_active(db: AsyncSession, actor: User, user_id: str, is_active: bool) -> User:
    user = await get_user(db, user_id)
    if user.id == actor.id and not is_active:
        raise PermissionDeniedError("Admins cannot deactivate their own account")
    user.is_active = is_active
    user.updated_at = utcnow()
    await db.flush()
    logger.info(f"User {'activated' if is_active else 'deactivated'}", extra={"user_id": user.id})
    return user
