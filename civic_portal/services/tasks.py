"""Internal tasks created by supervisors and worked by staff."""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import PermissionDeniedError, ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.domain.staff import TaskCreate
from civic_portal.models import (
    ComplaintPriority,
    NotificationPriority,
    NotificationType,
    StaffProfile,
    Task,
    TaskStatus,
    User,
    UserRole,
)
from civic_portal.services.common import paginate
from civic_portal.services.jurisdiction import load_jurisdiction, require_access
from civic_portal.services.notifications import notify
from civic_portal.utils.text import sanitize_text
from civic_portal.utils.time import to_naive_utc, utcnow

logger = get_logger(__name__)

OPEN_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)


def _overdue_clause(now):
    return Task.due_date.is_not(None) & (Task.due_date < now) & Task.status.in_(OPEN_STATUSES)


async def _scope(db: AsyncSession, user: User, stmt):
    role = UserRole(user.role)
    if role == UserRole.STAFF:
        return stmt.where(Task.assigned_to == user.id)
    if role == UserRole.SUPERVISOR:
        jurisdiction = await load_jurisdiction(db, user)
        clause = jurisdiction.scope_clause(Task.ward_id, Task.department_id)
        if clause is not None:
            return stmt.where(or_(Task.created_by == user.id, clause))
    return stmt


async def get_task(db: AsyncSession, user: User, task_id: str) -> Task:
    stmt = await _scope(db, user, select(Task).where(Task.id == task_id))
    task = await db.scalar(stmt)
    if task is None:
        raise ResourceNotFoundError("Task", task_id)
    return task


async def create_task(db: AsyncSession, actor: User, data: TaskCreate) -> Task:
    """Create a task; the assignee must be staff inside the creator's jurisdiction."""
    jurisdiction = await load_jurisdiction(db, actor)
    require_access(jurisdiction, "create_tasks", check_entity=False)

    ward_id, department_id = data.ward_id, data.department_id
    if data.assigned_to:
        profile = await db.scalar(select(StaffProfile).where(StaffProfile.user_id == data.assigned_to))
        if profile is None or not profile.is_active:
            raise ResourceNotFoundError("Staff member", data.assigned_to)
        require_access(jurisdiction, ward_id=profile.ward_id, department_id=profile.department_id)
        ward_id = ward_id or profile.ward_id
        department_id = department_id or profile.department_id

    task = Task(
        title=sanitize_text(data.title),
        description=sanitize_text(data.description),
        priority=data.priority,
        assigned_to=data.assigned_to,
        created_by=actor.id,
        complaint_id=data.complaint_id,
        ward_id=ward_id,
        department_id=department_id,
        due_date=to_naive_utc(data.due_date) if data.due_date else None,
    )
    db.add(task)
    await db.flush()

    if task.assigned_to:
        await notify(
            db, task.assigned_to, NotificationType.SYSTEM_ANNOUNCEMENT,
            title="New task assigned",
            message=task.title,
            priority=(
                NotificationPriority.HIGH
                if task.priority in (ComplaintPriority.CRITICAL, ComplaintPriority.URGENT)
                else NotificationPriority.NORMAL
            ),
            complaint_id=task.complaint_id,
        )
        await db.flush()

    logger.info(f"Task created: {task.title}", extra={"user_id": actor.id})
    return task


async def list_tasks(
    db: AsyncSession,
    user: User,
    status: Optional[TaskStatus] = None,
    assigned_to: Optional[str] = None,
    priority: Optional[ComplaintPriority] = None,
    overdue_only: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Task], int]:
    stmt = await _scope(db, user, select(Task))
    if status:
        stmt = stmt.where(Task.status == status)
    if assigned_to:
        stmt = stmt.where(Task.assigned_to == assigned_to)
    if priority:
        stmt = stmt.where(Task.priority == priority)
    if overdue_only:
        stmt = stmt.where(_overdue_clause(utcnow()))
    stmt = stmt.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
    return await paginate(db, stmt, page, page_size)


async def update_task_status(db: AsyncSession, user: User, task_id: str, status: TaskStatus) -> Task:
    task = await get_task(db, user, task_id)
    if UserRole(user.role) == UserRole.STAFF and status == TaskStatus.CANCELLED:
        raise PermissionDeniedError("Staff cannot cancel tasks")

    task.status = status
    task.completed_at = utcnow() if status == TaskStatus.COMPLETED else None
    task.updated_at = utcnow()
    await db.flush()
    logger.info(f"Task {task.id} -> {status.value}", extra={"user_id": user.id})
    return task


async def delete_task(db: AsyncSession, user: User, task_id: str) -> None:
    task = await get_task(db, user, task_id)
    if UserRole(user.role) != UserRole.ADMIN and task.created_by != user.id:
        raise PermissionDeniedError("Only the creator can delete this task")
    await db.delete(task)
    await db.flush()
    logger.info(f"Task deleted: {task_id}", extra={"user_id": user.id})


async def count_overdue(db: AsyncSession, user: User) -> int:
    stmt = await _scope(db, user, select(Task.id).where(_overdue_clause(utcnow())))
    return await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0


async def get_task_stats(db: AsyncSession, user: User) -> Dict[str, Any]:
    stmt = await _scope(db, user, select(Task.status))
    rows = (await db.execute(stmt)).scalars().all()

    by_status = {s.value: 0 for s in TaskStatus}
    for status in rows:
        by_status[TaskStatus(status).value] += 1

    return {
        "total": len(rows),
        "by_status": by_status,
        "overdue": await count_overdue(db, user),
    }
