"""Complaint lifecycle: submission, search, status changes, assignment,
comments, attachments, feedback and exports.

Visibility rules:
- citizens see their own complaints and never internal comments
- staff see complaints assigned to them
- supervisors see complaints inside their jurisdiction
- admins see everything
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy import and_, case, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from civic_portal.core.exceptions import (
    BusinessRuleError,
    ConflictError,
    PermissionDeniedError,
    PortalError,
    ResourceNotFoundError,
)
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.complaint import (
    MAX_ATTACHMENTS,
    AttachmentCreate,
    ComplaintCreate,
    ComplaintFilters,
    FeedbackCreate,
)
from civic_portal.models import (
    PRIORITY_RANK,
    TERMINAL_STATUSES,
    Complaint,
    ComplaintAssignmentHistory,
    ComplaintAttachment,
    ComplaintCategory,
    ComplaintComment,
    ComplaintFeedback,
    ComplaintPriority,
    ComplaintStatus,
    ComplaintStatusHistory,
    ComplaintUpvote,
    Department,
    NotificationPriority,
    NotificationType,
    StaffProfile,
    User,
    UserRole,
    Ward,
)
from civic_portal.services import reference
from civic_portal.services.common import paginate
from civic_portal.services.jurisdiction import Jurisdiction, load_jurisdiction, require_access
from civic_portal.services.notifications import notify
from civic_portal.services.sla import calculate_sla_deadline, format_countdown, get_sla_status
from civic_portal.utils.codes import generate_tracking_code
from civic_portal.utils.text import escape_like, sanitize_text
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)

AT_RISK_WINDOW = timedelta(hours=24)

CSV_COLUMNS = [
    "Tracking Code", "Title", "Status", "Priority", "Submitted Date",
    "Resolved Date", "Citizen Name", "Citizen Phone", "Category", "Ward",
]

STATUS_MESSAGES = {
    ComplaintStatus.UNDER_REVIEW: "is being reviewed",
    ComplaintStatus.ASSIGNED: "has been assigned to a staff member",
    ComplaintStatus.IN_PROGRESS: "is being worked on",
    ComplaintStatus.RESOLVED: "has been resolved",
    ComplaintStatus.CLOSED: "has been closed",
    ComplaintStatus.REJECTED: "has been rejected",
    ComplaintStatus.REOPENED: "has been reopened",
}


def _role(user: User) -> UserRole:
    return UserRole(user.role)


def _is_open(status: Any) -> bool:
    return ComplaintStatus(status) not in TERMINAL_STATUSES


def overdue_clause(now: datetime):
    return and_(
        Complaint.sla_due_at.is_not(None),
        Complaint.sla_due_at < now,
        Complaint.status.not_in(TERMINAL_STATUSES),
    )


async def get_complaint(db: AsyncSession, complaint_id: str) -> Complaint:
    complaint = await db.get(Complaint, complaint_id)
    if complaint is None:
        raise ResourceNotFoundError("Complaint", complaint_id)
    return complaint


async def get_complaint_by_tracking_code(db: AsyncSession, user: User, tracking_code: str) -> Complaint:
    complaint = await db.scalar(
        select(Complaint).where(Complaint.tracking_code == tracking_code.strip().upper())
    )
    if complaint is None:
        raise ResourceNotFoundError("Complaint", tracking_code)
    await ensure_can_view(db, user, complaint)
    return complaint


async def ensure_can_view(db: AsyncSession, user: User, complaint: Complaint) -> None:
    role = _role(user)
    if role == UserRole.ADMIN:
        return
    if role == UserRole.CITIZEN and complaint.citizen_id == user.id:
        return
    if role == UserRole.STAFF and complaint.assigned_staff_id == user.id:
        return
    if role == UserRole.SUPERVISOR:
        jurisdiction = await load_jurisdiction(db, user)
        if jurisdiction.covers(complaint.ward_id, complaint.assigned_department_id):
            return
    raise PermissionDeniedError("You do not have access to this complaint")


async def _ensure_can_manage(
    db: AsyncSession, actor: User, complaint: Complaint, action: Optional[str] = None
) -> Jurisdiction:
    if _role(actor) not in (UserRole.SUPERVISOR, UserRole.ADMIN):
        raise PermissionDeniedError("Only supervisors and admins can manage complaints")
    jurisdiction = await load_jurisdiction(db, actor)
    require_access(jurisdiction, action, complaint.ward_id, complaint.assigned_department_id)
    return jurisdiction


async def _adjust_workload(db: AsyncSession, staff_user_id: Optional[str], delta: int) -> None:
    if not staff_user_id:
        return
    profile = await db.scalar(select(StaffProfile).where(StaffProfile.user_id == staff_user_id))
    if profile is not None:
        profile.current_workload = max(0, (profile.current_workload or 0) + delta)
        profile.updated_at = utcnow()


def _system_comment(complaint: Complaint, actor: Optional[User], content: str) -> ComplaintComment:
    return ComplaintComment(
        complaint_id=complaint.id,
        author_id=actor.id if actor else None,
        author_role="system",
        content=content,
        is_internal=True,
    )


def _record_status(
    db: AsyncSession,
    complaint: Complaint,
    new_status: ComplaintStatus,
    actor: Optional[User],
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ComplaintStatus:
    """Set status, stamp lifecycle timestamps and append a history row."""
    now = now or utcnow()
    old_status = ComplaintStatus(complaint.status) if complaint.status else None

    complaint.status = new_status
    complaint.updated_at = now
    if new_status == ComplaintStatus.RESOLVED:
        complaint.resolved_at = now
    elif new_status == ComplaintStatus.CLOSED:
        complaint.closed_at = now
        complaint.resolved_at = complaint.resolved_at or now
    elif new_status == ComplaintStatus.REOPENED:
        complaint.resolved_at = None
        complaint.closed_at = None

    db.add(ComplaintStatusHistory(
        complaint_id=complaint.id,
        old_status=old_status,
        new_status=new_status,
        changed_by=actor.id if actor else None,
        note=sanitize_text(note) or None,
        created_at=now,
    ))
    return old_status


async def submit_complaint(db: AsyncSession, citizen: User, data: ComplaintCreate) -> Complaint:
    """File a new complaint.

    Routes it to the category's default department, computes the SLA
    deadline from the priority and writes the initial ``received`` history.
    """
    category = await reference.get_category(db, data.category_id)
    if not category.is_active:
        raise BusinessRuleError("Category is not accepting complaints", code="CATEGORY_INACTIVE")
    await reference.get_ward(db, data.ward_id)

    now = utcnow()
    policy = await reference.get_sla_policy(db)

    complaint = Complaint(
        tracking_code=generate_tracking_code(now),
        citizen_id=citizen.id,
        category_id=category.id,
        ward_id=data.ward_id,
        assigned_department_id=category.default_department_id,
        title=sanitize_text(data.title),
        description=sanitize_text(data.description),
        priority=data.priority,
        source=data.source,
        address_text=sanitize_text(data.address_text) or None,
        landmark=sanitize_text(data.landmark) or None,
        latitude=data.latitude,
        longitude=data.longitude,
        is_anonymous=data.is_anonymous,
        phone=data.phone or citizen.phone,
        submitted_at=now,
        sla_due_at=calculate_sla_deadline(data.priority, now, policy),
        status=ComplaintStatus.RECEIVED,
    )
    db.add(complaint)
    await db.flush()

    db.add(ComplaintStatusHistory(
        complaint_id=complaint.id,
        old_status=None,
        new_status=ComplaintStatus.RECEIVED,
        changed_by=citizen.id,
        note="Complaint submitted",
        created_at=now,
    ))
    await notify(
        db, citizen.id, NotificationType.COMPLAINT_STATUS,
        title="Complaint received",
        message=f"Your complaint {complaint.tracking_code} has been received.",
        complaint_id=complaint.id,
    )
    await db.flush()

    logger.info(
        f"Complaint {complaint.tracking_code} submitted",
        extra={"user_id": citizen.id, "complaint_id": complaint.id},
    )
    return complaint


async def scope_query(db: AsyncSession, user: User, stmt):
    role = _role(user)
    if role == UserRole.CITIZEN:
        return stmt.where(Complaint.citizen_id == user.id)
    if role == UserRole.STAFF:
        return stmt.where(Complaint.assigned_staff_id == user.id)
    if role == UserRole.SUPERVISOR:
        jurisdiction = await load_jurisdiction(db, user)
        clause = jurisdiction.scope_clause(Complaint.ward_id, Complaint.assigned_department_id)
        return stmt.where(clause) if clause is not None else stmt
    return stmt


def _apply_filters(stmt, filters: ComplaintFilters, now: datetime):
    if filters.search:
        term = f"%{escape_like(filters.search.strip())}%"
        stmt = stmt.where(or_(
            Complaint.title.ilike(term, escape="\\"),
            Complaint.tracking_code.ilike(term, escape="\\"),
        ))
    if filters.status:
        stmt = stmt.where(Complaint.status.in_(filters.status))
    if filters.priority:
        stmt = stmt.where(Complaint.priority.in_(filters.priority))
    if filters.ward_id:
        stmt = stmt.where(Complaint.ward_id == filters.ward_id)
    if filters.category_id:
        stmt = stmt.where(Complaint.category_id == filters.category_id)
    if filters.department_id:
        stmt = stmt.where(Complaint.assigned_department_id == filters.department_id)
    if filters.assigned_staff_id:
        stmt = stmt.where(Complaint.assigned_staff_id == filters.assigned_staff_id)
    if filters.date_from:
        stmt = stmt.where(Complaint.submitted_at >= filters.date_from)
    if filters.date_to:
        stmt = stmt.where(Complaint.submitted_at <= filters.date_to)
    if filters.is_overdue is True:
        stmt = stmt.where(overdue_clause(now))
    elif filters.is_overdue is False:
        stmt = stmt.where(not_(overdue_clause(now)))
    if filters.unassigned:
        stmt = stmt.where(Complaint.assigned_staff_id.is_(None))
    return stmt


def priority_order():
    return case(
        *[(Complaint.priority == priority, rank) for priority, rank in PRIORITY_RANK.items()],
        else_=len(PRIORITY_RANK),
    )


def _apply_sort(stmt, filters: ComplaintFilters):
    descending = filters.sort_order == "desc"
    if filters.sort_by == "priority":
        # Rank 0 is the most pressing, so "desc" (most pressing first) sorts rank ascending
        key = priority_order().asc() if descending else priority_order().desc()
    elif filters.sort_by == "sla_due_at":
        key = Complaint.sla_due_at.desc() if descending else Complaint.sla_due_at.asc()
    elif filters.sort_by == "status":
        key = Complaint.status.desc() if descending else Complaint.status.asc()
    else:
        key = Complaint.submitted_at.desc() if descending else Complaint.submitted_at.asc()
    return stmt.order_by(key, Complaint.submitted_at.desc(), Complaint.id)


async def search_complaints(
    db: AsyncSession,
    user: User,
    filters: Optional[ComplaintFilters] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Complaint], int]:
    """Role-scoped, filtered, sorted and paginated complaint listing."""
    filters = filters or ComplaintFilters()
    with LogTimer(logger, "complaint_search"):
        stmt = await scope_query(db, user, select(Complaint))
        stmt = _apply_filters(stmt, filters, utcnow())
        stmt = _apply_sort(stmt, filters)
        return await paginate(db, stmt, page, page_size)


def _sla_info(complaint: Complaint, now: Optional[datetime] = None) -> Dict[str, Any]:
    info = get_sla_status(complaint.sla_due_at, complaint.status, now=now)
    completed = info["status"] == "completed"
    info["countdown"] = (
        format_countdown(complaint.sla_due_at, completed=completed, now=now)
        if complaint.sla_due_at else None
    )
    return info


async def get_complaint_detail(db: AsyncSession, user: User, complaint_id: str) -> Dict[str, Any]:
    complaint = await get_complaint(db, complaint_id)
    await ensure_can_view(db, user, complaint)
    is_citizen = _role(user) == UserRole.CITIZEN

    comment_stmt = select(ComplaintComment).where(ComplaintComment.complaint_id == complaint.id)
    if is_citizen:
        comment_stmt = comment_stmt.where(ComplaintComment.is_internal.is_(False))
    comments = (await db.execute(comment_stmt.order_by(ComplaintComment.created_at))).scalars().all()

    history = (await db.execute(
        select(ComplaintStatusHistory)
        .where(ComplaintStatusHistory.complaint_id == complaint.id)
        .order_by(ComplaintStatusHistory.created_at)
    )).scalars().all()

    assignments = []
    if not is_citizen:
        assignments = (await db.execute(
            select(ComplaintAssignmentHistory)
            .where(ComplaintAssignmentHistory.complaint_id == complaint.id)
            .order_by(ComplaintAssignmentHistory.created_at)
        )).scalars().all()

    attachments = (await db.execute(
        select(ComplaintAttachment)
        .where(ComplaintAttachment.complaint_id == complaint.id)
        .order_by(ComplaintAttachment.created_at)
    )).scalars().all()

    feedback = await db.scalar(
        select(ComplaintFeedback).where(ComplaintFeedback.complaint_id == complaint.id)
    )

    category = await db.get(ComplaintCategory, complaint.category_id) if complaint.category_id else None
    ward = await db.get(Ward, complaint.ward_id) if complaint.ward_id else None
    department = (
        await db.get(Department, complaint.assigned_department_id)
        if complaint.assigned_department_id else None
    )
    staff = await db.get(User, complaint.assigned_staff_id) if complaint.assigned_staff_id else None

    return {
        "complaint": complaint,
        "category_name": category.name if category else None,
        "ward_name": ward.name if ward else None,
        "department_name": department.name if department else None,
        "assigned_staff_name": staff.full_name if staff else None,
        "comments": list(comments),
        "status_history": list(history),
        "assignment_history": list(assignments),
        "citizen_attachments": [a for a in attachments if a.uploaded_by_role == "citizen"],
        "staff_attachments": [a for a in attachments if a.uploaded_by_role != "citizen"],
        "feedback": feedback,
        "sla": _sla_info(complaint),
    }


async def _authorize_status_change(
    db: AsyncSession, actor: User, complaint: Complaint, new_status: ComplaintStatus
) -> None:
    role = _role(actor)
    if role == UserRole.ADMIN:
        return
    if role == UserRole.CITIZEN:
        if complaint.citizen_id != actor.id or new_status != ComplaintStatus.REOPENED:
            raise PermissionDeniedError("Citizens may only reopen their own resolved complaints")
        return
    if role == UserRole.STAFF:
        if complaint.assigned_staff_id != actor.id:
            raise PermissionDeniedError("Complaint is not assigned to you")
        if new_status in (ComplaintStatus.CLOSED, ComplaintStatus.REJECTED):
            raise PermissionDeniedError("Staff cannot close or reject complaints")
        return
    action = "close_complaints" if new_status in (ComplaintStatus.CLOSED, ComplaintStatus.REJECTED) else None
    await _ensure_can_manage(db, actor, complaint, action)


async def update_status(
    db: AsyncSession,
    actor: User,
    complaint_id: str,
    new_status: ComplaintStatus,
    note: Optional[str] = None,
    resolution_notes: Optional[str] = None,
) -> Complaint:
    """Change a complaint's status.

    Status is a flat enum; only no-op changes and reopening a complaint that
    is not resolved or closed are rejected.
    """
    complaint = await get_complaint(db, complaint_id)
    await _authorize_status_change(db, actor, complaint, new_status)

    current = ComplaintStatus(complaint.status)
    if current == new_status:
        raise BusinessRuleError(f"Complaint is already {current.value}", code="NO_OP_TRANSITION")
    if new_status == ComplaintStatus.REOPENED and current not in (ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED):
        raise BusinessRuleError(
            "Only resolved or closed complaints can be reopened",
            code="INVALID_TRANSITION",
            details={"from": current.value, "to": new_status.value},
        )

    if resolution_notes:
        complaint.resolution_notes = sanitize_text(resolution_notes)
    _record_status(db, complaint, new_status, actor, note)

    was_open, is_open = _is_open(current), _is_open(new_status)
    if was_open and not is_open:
        await _adjust_workload(db, complaint.assigned_staff_id, -1)
    elif is_open and not was_open:
        await _adjust_workload(db, complaint.assigned_staff_id, +1)

    message = f"Your complaint {complaint.tracking_code} {STATUS_MESSAGES.get(new_status, 'was updated')}."
    if _role(actor) == UserRole.CITIZEN:
        await notify(
            db, complaint.assigned_staff_id, NotificationType.COMPLAINT_STATUS,
            title="Complaint reopened",
            message=f"Complaint {complaint.tracking_code} was reopened by the citizen.",
            priority=NotificationPriority.HIGH,
            complaint_id=complaint.id,
        )
    else:
        await notify(
            db, complaint.citizen_id, NotificationType.COMPLAINT_STATUS,
            title="Complaint status updated",
            message=message,
            complaint_id=complaint.id,
        )
    await db.flush()

    logger.info(
        f"Complaint status {current.value} -> {new_status.value}",
        extra={"user_id": actor.id, "complaint_id": complaint.id},
    )
    return complaint


async def close_complaint(
    db: AsyncSession, actor: User, complaint_id: str, notes: Optional[str] = None
) -> Complaint:
    return await update_status(
        db, actor, complaint_id, ComplaintStatus.CLOSED,
        note=notes or "Complaint closed", resolution_notes=notes,
    )


async def update_priority(
    db: AsyncSession,
    actor: User,
    complaint_id: str,
    priority: ComplaintPriority,
    reason: Optional[str] = None,
) -> Complaint:
    """Change priority and recompute the SLA deadline from submission time."""
    complaint = await get_complaint(db, complaint_id)
    await _ensure_can_manage(db, actor, complaint, "escalate")

    old_priority = ComplaintPriority(complaint.priority)
    if old_priority == priority:
        raise BusinessRuleError(f"Priority is already {priority.value}", code="NO_OP_PRIORITY")

    policy = await reference.get_sla_policy(db)
    complaint.priority = priority
    complaint.sla_due_at = calculate_sla_deadline(priority, complaint.submitted_at, policy)
    complaint.updated_at = utcnow()

    text = f"Priority changed from {old_priority.value} to {priority.value}."
    if reason:
        text += f" Reason: {sanitize_text(reason)}"
    db.add(_system_comment(complaint, actor, text))
    await db.flush()

    logger.info(text, extra={"user_id": actor.id, "complaint_id": complaint.id})
    return complaint


async def _get_staff_profile(db: AsyncSession, staff_user_id: str) -> StaffProfile:
    profile = await db.scalar(select(StaffProfile).where(StaffProfile.user_id == staff_user_id))
    if profile is None or not profile.is_active:
        raise ResourceNotFoundError("Staff member", staff_user_id)
    return profile


async def assign_complaint(
    db: AsyncSession,
    actor: User,
    complaint_id: str,
    staff_user_id: str,
    note: Optional[str] = None,
    reason: Optional[str] = None,
) -> Complaint:
    """Assign (or reassign) a complaint to a staff member.

    Moves the status to ``assigned``, keeps both staff workload counters in
    step, writes assignment history and notifies everyone involved.
    """
    complaint = await get_complaint(db, complaint_id)
    jurisdiction = await _ensure_can_manage(db, actor, complaint, "assign_staff")

    if not complaint.is_open:
        raise BusinessRuleError("Cannot assign a closed complaint", code="COMPLAINT_CLOSED")

    profile = await _get_staff_profile(db, staff_user_id)
    if not jurisdiction.covers(profile.ward_id, profile.department_id):
        raise PermissionDeniedError("Staff member is outside your jurisdiction")

    previous_staff_id = complaint.assigned_staff_id
    if previous_staff_id == staff_user_id:
        raise BusinessRuleError("Complaint is already assigned to this staff member", code="ALREADY_ASSIGNED")

    now = utcnow()
    await _adjust_workload(db, previous_staff_id, -1)
    profile.current_workload = (profile.current_workload or 0) + 1
    profile.updated_at = now

    complaint.assigned_staff_id = staff_user_id
    complaint.assigned_at = now
    if profile.department_id:
        complaint.assigned_department_id = profile.department_id
    if ComplaintStatus(complaint.status) != ComplaintStatus.ASSIGNED:
        _record_status(db, complaint, ComplaintStatus.ASSIGNED, actor, note or reason, now)
    complaint.updated_at = now

    db.add(ComplaintAssignmentHistory(
        complaint_id=complaint.id,
        assigned_to=staff_user_id,
        assigned_by=actor.id,
        previous_staff_id=previous_staff_id,
        notes=sanitize_text(reason or note) or None,
        created_at=now,
    ))

    staff_user = await db.get(User, staff_user_id)
    if previous_staff_id:
        previous = await db.get(User, previous_staff_id)
        text = (
            f"Reassigned from {previous.full_name if previous else 'previous staff'} "
            f"to {staff_user.full_name if staff_user else 'new staff'}."
        )
        if reason:
            text += f" Reason: {sanitize_text(reason)}"
        db.add(_system_comment(complaint, actor, text))
        await notify(
            db, previous_staff_id, NotificationType.COMPLAINT_ASSIGNED,
            title="Complaint reassigned",
            message=f"Complaint {complaint.tracking_code} has been reassigned to another staff member.",
            complaint_id=complaint.id,
        )

    await notify(
        db, staff_user_id, NotificationType.COMPLAINT_ASSIGNED,
        title="New complaint assigned",
        message=f"Complaint {complaint.tracking_code}: {complaint.title}",
        priority=(
            NotificationPriority.CRITICAL
            if ComplaintPriority(complaint.priority) == ComplaintPriority.CRITICAL
            else NotificationPriority.HIGH
        ),
        complaint_id=complaint.id,
    )
    await notify(
        db, complaint.citizen_id, NotificationType.COMPLAINT_STATUS,
        title="Complaint assigned",
        message=f"Your complaint {complaint.tracking_code} has been assigned to a staff member.",
        complaint_id=complaint.id,
    )
    await db.flush()

    logger.info(
        f"Complaint {'reassigned' if previous_staff_id else 'assigned'} to {staff_user_id}",
        extra={"user_id": actor.id, "complaint_id": complaint.id},
    )
    return complaint


async def reassign_complaint(
    db: AsyncSession, actor: User, complaint_id: str, staff_user_id: str, reason: str
) -> Complaint:
    return await assign_complaint(db, actor, complaint_id, staff_user_id, reason=reason)


async def bulk_assign(
    db: AsyncSession,
    actor: User,
    complaint_ids: Sequence[str],
    staff_user_id: str,
    note: Optional[str] = None,
) -> Dict[str, Any]:
    """Assign many complaints; per-item failures are reported, not raised."""
    updated, failed = [], {}
    for complaint_id in dict.fromkeys(complaint_ids):
        try:
            await assign_complaint(db, actor, complaint_id, staff_user_id, note=note)
            updated.append(complaint_id)
        except PortalError as e:
            failed[complaint_id] = e.message
    logger.info(f"Bulk assign: {len(updated)} updated, {len(failed)} failed", extra={"user_id": actor.id})
    return {"updated": updated, "failed": failed}


async def bulk_update_status(
    db: AsyncSession,
    actor: User,
    complaint_ids: Sequence[str],
    status: ComplaintStatus,
    note: Optional[str] = None,
) -> Dict[str, Any]:
    updated, failed = [], {}
    for complaint_id in dict.fromkeys(complaint_ids):
        try:
            await update_status(db, actor, complaint_id, status, note=note)
            updated.append(complaint_id)
        except PortalError as e:
            failed[complaint_id] = e.message
    logger.info(f"Bulk status: {len(updated)} updated, {len(failed)} failed", extra={"user_id": actor.id})
    return {"updated": updated, "failed": failed}


async def add_comment(
    db: AsyncSession,
    author: User,
    complaint_id: str,
    content: str,
    is_internal: bool = False,
) -> ComplaintComment:
    complaint = await get_complaint(db, complaint_id)
    await ensure_can_view(db, author, complaint)

    is_citizen = _role(author) == UserRole.CITIZEN
    if is_citizen and is_internal:
        raise PermissionDeniedError("Citizens cannot post internal comments")

    content = sanitize_text(content)
    if not content:
        raise BusinessRuleError("Comment cannot be empty", code="EMPTY_COMMENT")

    comment = ComplaintComment(
        complaint_id=complaint.id,
        author_id=author.id,
        author_role=_role(author).value,
        content=content,
        is_internal=is_internal,
    )
    db.add(comment)

    if is_citizen:
        recipient = complaint.assigned_staff_id
    elif not is_internal:
        recipient = complaint.citizen_id
    else:
        recipient = None
    if recipient and recipient != author.id:
        await notify(
            db, recipient, NotificationType.COMMENT_ADDED,
            title="New comment",
            message=f"New comment on complaint {complaint.tracking_code}.",
            complaint_id=complaint.id,
        )
    await db.flush()
    return comment


async def add_attachment(
    db: AsyncSession, uploader: User, complaint_id: str, data: AttachmentCreate
) -> ComplaintAttachment:
    """Record attachment metadata (at most five per uploader per complaint)."""
    complaint = await get_complaint(db, complaint_id)
    await ensure_can_view(db, uploader, complaint)

    existing = await db.scalar(
        select(func.count(ComplaintAttachment.id)).where(
            ComplaintAttachment.complaint_id == complaint.id,
            ComplaintAttachment.uploaded_by == uploader.id,
        )
    )
    if (existing or 0) >= MAX_ATTACHMENTS:
        raise BusinessRuleError(
            f"A maximum of {MAX_ATTACHMENTS} attachments is allowed", code="TOO_MANY_ATTACHMENTS"
        )

    attachment = ComplaintAttachment(
        complaint_id=complaint.id,
        file_name=sanitize_text(data.file_name),
        file_type=data.file_type,
        file_size=data.file_size,
        uploaded_by=uploader.id,
        uploaded_by_role="citizen" if _role(uploader) == UserRole.CITIZEN else "staff",
    )
    db.add(attachment)
    await db.flush()
    return attachment


async def submit_feedback(
    db: AsyncSession, citizen: User, complaint_id: str, data: FeedbackCreate
) -> ComplaintFeedback:
    complaint = await get_complaint(db, complaint_id)
    if complaint.citizen_id != citizen.id:
        raise PermissionDeniedError("Only the complainant can rate this complaint")
    if ComplaintStatus(complaint.status) not in (ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED):
        raise BusinessRuleError("Feedback is only accepted once a complaint is resolved", code="NOT_RESOLVED")
    if await db.scalar(select(ComplaintFeedback).where(ComplaintFeedback.complaint_id == complaint.id)):
        raise ConflictError("Feedback already submitted for this complaint", code="FEEDBACK_EXISTS")

    feedback = ComplaintFeedback(
        complaint_id=complaint.id,
        citizen_id=citizen.id,
        rating=data.rating,
        issue_resolved=data.issue_resolved,
        would_recommend=data.would_recommend,
        feedback_text=sanitize_text(data.feedback_text) or None,
    )
    db.add(feedback)
    await db.flush()

    if complaint.assigned_staff_id:
        average = await db.scalar(
            select(func.avg(ComplaintFeedback.rating))
            .join(Complaint, Complaint.id == ComplaintFeedback.complaint_id)
            .where(Complaint.assigned_staff_id == complaint.assigned_staff_id)
        )
        profile = await db.scalar(
            select(StaffProfile).where(StaffProfile.user_id == complaint.assigned_staff_id)
        )
        if profile is not None and average is not None:
            profile.performance_rating = round(float(average), 2)

    logger.info(f"Feedback {data.rating}/5 recorded", extra={"complaint_id": complaint.id})
    return feedback


async def upvote_complaint(db: AsyncSession, user: User, complaint_id: str) -> Complaint:
    complaint = await get_complaint(db, complaint_id)
    existing = await db.scalar(
        select(ComplaintUpvote).where(
            ComplaintUpvote.complaint_id == complaint.id, ComplaintUpvote.user_id == user.id
        )
    )
    if existing:
        raise ConflictError("You have already upvoted this complaint", code="ALREADY_UPVOTED")
    db.add(ComplaintUpvote(complaint_id=complaint.id, user_id=user.id))
    complaint.upvote_count = (complaint.upvote_count or 0) + 1
    await db.flush()
    return complaint


async def get_citizen_stats(db: AsyncSession, citizen: User) -> Dict[str, int]:
    rows = (await db.execute(
        select(Complaint.status, func.count(Complaint.id))
        .where(Complaint.citizen_id == citizen.id)
        .group_by(Complaint.status)
    )).all()
    counts = {ComplaintStatus(status): n for status, n in rows}

    open_statuses = (
        ComplaintStatus.RECEIVED, ComplaintStatus.UNDER_REVIEW,
        ComplaintStatus.ASSIGNED, ComplaintStatus.REOPENED,
    )
    return {
        "total": sum(counts.values()),
        "open": sum(counts.get(s, 0) for s in open_statuses),
        "in_progress": counts.get(ComplaintStatus.IN_PROGRESS, 0),
        "resolved": counts.get(ComplaintStatus.RESOLVED, 0) + counts.get(ComplaintStatus.CLOSED, 0),
    }


async def get_sla_complaints(
    db: AsyncSession, user: User, kind: str = "overdue", limit: int = 50
) -> List[Complaint]:
    """Open complaints past their deadline, or due within the next 24 hours."""
    now = utcnow()
    stmt = await scope_query(db, user, select(Complaint))
    stmt = stmt.where(
        Complaint.sla_due_at.is_not(None),
        Complaint.status.not_in(TERMINAL_STATUSES),
    )
    if kind == "at_risk":
        stmt = stmt.where(Complaint.sla_due_at >= now, Complaint.sla_due_at <= now + AT_RISK_WINDOW)
    else:
        stmt = stmt.where(Complaint.sla_due_at < now)
    result = await db.execute(stmt.order_by(Complaint.sla_due_at.asc()).limit(limit))
    return list(result.scalars().all())


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


async def export_complaints_csv(
    db: AsyncSession, user: User, filters: Optional[ComplaintFilters] = None
) -> str:
    """CSV export of the filtered, role-scoped complaint list."""
    filters = filters or ComplaintFilters()
    citizen = aliased(User)

    stmt = (
        select(
            Complaint,
            citizen.full_name,
            citizen.phone,
            ComplaintCategory.name,
            Ward.name,
        )
        .join(citizen, citizen.id == Complaint.citizen_id)
        .outerjoin(ComplaintCategory, ComplaintCategory.id == Complaint.category_id)
        .outerjoin(Ward, Ward.id == Complaint.ward_id)
    )
    stmt = await scope_query(db, user, stmt)
    stmt = _apply_sort(_apply_filters(stmt, filters, utcnow()), filters)

    with LogTimer(logger, "complaint_export"):
        rows = (await db.execute(stmt)).all()
        records = [
            {
                "Tracking Code": c.tracking_code,
                "Title": c.title,
                "Status": ComplaintStatus(c.status).value,
                "Priority": ComplaintPriority(c.priority).value,
                "Submitted Date": _format_date(c.submitted_at),
                "Resolved Date": _format_date(c.resolved_at),
                "Citizen Name": "Anonymous" if c.is_anonymous else name,
                "Citizen Phone": "" if c.is_anonymous else (c.phone or phone or ""),
                "Category": category or "",
                "Ward": ward or "",
            }
            for c, name, phone, category, ward in rows
        ]
        frame = pd.DataFrame(records, columns=CSV_COLUMNS)
        return frame.to_csv(index=False)
