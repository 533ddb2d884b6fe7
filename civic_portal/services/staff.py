"""Staff and supervisor profiles, work queues, workload balancing and
supervisor dashboards."""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import (
    BusinessRuleError,
    ConflictError,
    PermissionDeniedError,
    PortalError,
    ResourceNotFoundError,
)
from civic_portal.core.logging import get_logger
from civic_portal.domain.staff import (
    RebalanceMove,
    StaffProfileCreate,
    StaffProfileUpdate,
    SupervisorProfileCreate,
)
from civic_portal.models import (
    TERMINAL_STATUSES,
    AvailabilityStatus,
    Complaint,
    ComplaintFeedback,
    ComplaintStatus,
    Department,
    StaffProfile,
    SupervisorProfile,
    Task,
    TaskStatus,
    User,
    UserRole,
)
from civic_portal.services import complaints as complaint_service
from civic_portal.services.common import paginate
from civic_portal.services.jurisdiction import load_jurisdiction, require_access
from civic_portal.services.sla import calculate_resolution_time, calculate_sla_compliance
from civic_portal.services.workload import (
    check_workload_capacity,
    distribute_evenly,
    suggest_staff,
    workload_color,
)
from civic_portal.utils.codes import generate_staff_code
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)

OPEN_TASK_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)


async def _get_user_with_role(db: AsyncSession, user_id: str, role: UserRole) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", user_id)
    if UserRole(user.role) != role:
        raise BusinessRuleError(
            f"User must have the {role.value} role", code="INVALID_ROLE", details={"role": user.role}
        )
    return user


# Profiles

async def get_staff_profile(db: AsyncSession, user_id: str) -> StaffProfile:
    profile = await db.scalar(select(StaffProfile).where(StaffProfile.user_id == user_id))
    if profile is None:
        raise ResourceNotFoundError("Staff profile", user_id)
    return profile


async def create_staff_profile(db: AsyncSession, actor: User, data: StaffProfileCreate) -> StaffProfile:
    await _get_user_with_role(db, data.user_id, UserRole.STAFF)
    existing = await db.scalar(select(StaffProfile.id).where(StaffProfile.user_id == data.user_id))
    if existing:
        raise ConflictError("Staff profile already exists", code="PROFILE_EXISTS")

    department_code = None
    if data.department_id:
        department = await db.get(Department, data.department_id)
        if department is None:
            raise ResourceNotFoundError("Department", data.department_id)
        department_code = department.code

    profile = StaffProfile(**data.model_dump(), staff_code=generate_staff_code(department_code))
    db.add(profile)
    await db.flush()
    logger.info(f"Staff profile created: {profile.staff_code}", extra={"user_id": actor.id})
    return profile


async def update_staff_profile(
    db: AsyncSession, actor: User, user_id: str, data: StaffProfileUpdate
) -> StaffProfile:
    profile = await get_staff_profile(db, user_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    profile.updated_at = utcnow()
    await db.flush()
    return profile


async def create_supervisor_profile(
    db: AsyncSession, actor: User, data: SupervisorProfileCreate
) -> SupervisorProfile:
    """Create or replace a supervisor's jurisdiction and permission flags."""
    await _get_user_with_role(db, data.user_id, UserRole.SUPERVISOR)
    profile = await db.scalar(select(SupervisorProfile).where(SupervisorProfile.user_id == data.user_id))
    if profile is None:
        profile = SupervisorProfile(user_id=data.user_id)
        db.add(profile)
    for field, value in data.model_dump(exclude={"user_id"}).items():
        setattr(profile, field, value)
    profile.updated_at = utcnow()
    await db.flush()
    logger.info(f"Supervisor profile saved for {data.user_id}", extra={"user_id": actor.id})
    return profile


async def update_availability(db: AsyncSession, staff: User, availability: AvailabilityStatus) -> StaffProfile:
    profile = await get_staff_profile(db, staff.id)
    profile.availability_status = availability
    profile.updated_at = utcnow()
    await db.flush()
    logger.info(f"Availability set to {availability.value}", extra={"user_id": staff.id})
    return profile


# Staff listings

def _with_workload(profile: StaffProfile, user: User) -> Dict[str, Any]:
    workload = check_workload_capacity(profile)
    workload["color"] = workload_color(workload["percentage"])
    return {
        "profile": profile,
        "full_name": user.full_name,
        "email": user.email,
        "workload": workload,
    }


async def _supervised_staff(db: AsyncSession, actor: User, active_only: bool = True) -> List[Tuple[StaffProfile, User]]:
    jurisdiction = await load_jurisdiction(db, actor)
    stmt = select(StaffProfile, User).join(User, User.id == StaffProfile.user_id)
    if active_only:
        stmt = stmt.where(StaffProfile.is_active.is_(True), User.is_active.is_(True))
    clause = jurisdiction.scope_clause(StaffProfile.ward_id, StaffProfile.department_id)
    if clause is not None:
        stmt = stmt.where(clause)
    rows = (await db.execute(stmt.order_by(User.full_name))).all()
    return [(profile, user) for profile, user in rows]


async def list_staff(
    db: AsyncSession,
    actor: User,
    department_id: Optional[str] = None,
    ward_id: Optional[str] = None,
    available_only: bool = False,
) -> List[Dict[str, Any]]:
    """Staff inside the actor's jurisdiction, each with workload info."""
    staff = await _supervised_staff(db, actor)
    result = []
    for profile, user in staff:
        if department_id and profile.department_id != department_id:
            continue
        if ward_id and profile.ward_id != ward_id:
            continue
        if available_only and AvailabilityStatus(profile.availability_status) != AvailabilityStatus.AVAILABLE:
            continue
        result.append(_with_workload(profile, user))
    return result


async def suggest_staff_for_complaint(
    db: AsyncSession, actor: User, complaint_id: str, limit: int = 5
) -> List[Dict[str, Any]]:
    complaint = await complaint_service.get_complaint(db, complaint_id)
    jurisdiction = await load_jurisdiction(db, actor)
    require_access(jurisdiction, "assign_staff", complaint.ward_id, complaint.assigned_department_id)

    profiles = [profile for profile, _ in await _supervised_staff(db, actor)]
    return suggest_staff(profiles, ward_id=complaint.ward_id, limit=limit)


# Rebalancing

async def _open_assignments(db: AsyncSession, staff_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not staff_ids:
        return []
    complaint_rows = (await db.execute(
        select(Complaint.id, Complaint.assigned_staff_id)
        .where(Complaint.assigned_staff_id.in_(staff_ids), Complaint.status.not_in(TERMINAL_STATUSES))
        .order_by(Complaint.submitted_at.desc())
    )).all()
    task_rows = (await db.execute(
        select(Task.id, Task.assigned_to)
        .where(Task.assigned_to.in_(staff_ids), Task.status.in_(OPEN_TASK_STATUSES))
        .order_by(Task.created_at.desc())
    )).all()
    return (
        [{"id": cid, "type": "complaint", "staff_id": sid} for cid, sid in complaint_rows]
        + [{"id": tid, "type": "task", "staff_id": sid} for tid, sid in task_rows]
    )


async def get_rebalance_plan(db: AsyncSession, actor: User) -> List[Dict[str, Any]]:
    """Proposed moves from overloaded staff; nothing is changed."""
    profiles = [profile for profile, _ in await _supervised_staff(db, actor)]
    assignments = await _open_assignments(db, [p.user_id for p in profiles])
    moves = distribute_evenly(assignments, profiles)
    logger.info(f"Rebalance plan: {len(moves)} moves", extra={"user_id": actor.id})
    return moves


async def apply_rebalance(
    db: AsyncSession, actor: User, moves: Sequence[RebalanceMove]
) -> Dict[str, Any]:
    """Execute moves as reassignments; per-move failures are collected."""
    jurisdiction = await load_jurisdiction(db, actor)
    updated, failed = [], {}
    for move in moves:
        try:
            if move.type == "task":
                task = await db.get(Task, move.assignment_id)
                if task is None or task.assigned_to != move.from_staff:
                    raise ResourceNotFoundError("Task", move.assignment_id)
                target = await get_staff_profile(db, move.to_staff)
                require_access(jurisdiction, "assign_staff", target.ward_id, target.department_id)
                task.assigned_to = move.to_staff
                task.updated_at = utcnow()
            else:
                complaint = await complaint_service.get_complaint(db, move.assignment_id)
                if complaint.assigned_staff_id != move.from_staff:
                    raise BusinessRuleError(
                        "Complaint is no longer assigned to the source staff member", code="STALE_MOVE"
                    )
                await complaint_service.reassign_complaint(
                    db, actor, move.assignment_id, move.to_staff, reason="Workload rebalancing"
                )
            updated.append(move.assignment_id)
        except PortalError as e:
            failed[move.assignment_id] = e.message
    await db.flush()
    logger.info(f"Rebalance applied: {len(updated)} moved, {len(failed)} failed", extra={"user_id": actor.id})
    return {"updated": updated, "failed": failed}


# Supervisor views

async def supervisor_dashboard(db: AsyncSession, actor: User) -> Dict[str, Any]:
    now = utcnow()
    base = await complaint_service.scope_query(db, actor, select(Complaint))
    scoped = base.subquery()

    rows = (await db.execute(
        select(scoped.c.status, func.count()).group_by(scoped.c.status)
    )).all()
    by_status = {getattr(status, "value", status): count for status, count in rows}

    unassigned = await db.scalar(
        select(func.count()).select_from(
            base.where(Complaint.assigned_staff_id.is_(None), Complaint.status.not_in(TERMINAL_STATUSES)).subquery()
        )
    ) or 0
    overdue = await db.scalar(
        select(func.count()).select_from(base.where(complaint_service.overdue_clause(now)).subquery())
    ) or 0

    resolved = (await db.execute(
        base.with_only_columns(Complaint.submitted_at, Complaint.resolved_at, Complaint.sla_due_at)
        .where(Complaint.resolved_at.is_not(None))
    )).all()
    on_time = sum(1 for r in resolved if r.sla_due_at is None or r.resolved_at <= r.sla_due_at)

    staff = await _supervised_staff(db, actor)
    overloaded = sum(1 for profile, _ in staff if check_workload_capacity(profile)["is_overloaded"])

    return {
        "total_complaints": sum(by_status.values()),
        "by_status": by_status,
        "unassigned": unassigned,
        "overdue": overdue,
        "sla_compliance": calculate_sla_compliance(len(resolved), on_time),
        "average_resolution_hours": calculate_resolution_time(
            {"submitted_at": r.submitted_at, "resolved_at": r.resolved_at} for r in resolved
        ),
        "staff_count": len(staff),
        "overloaded_staff": overloaded,
    }


async def list_unassigned(
    db: AsyncSession, actor: User, page: int = 1, page_size: int = 20
) -> Tuple[List[Complaint], int]:
    """Open, unassigned complaints in scope, most pressing first."""
    stmt = await complaint_service.scope_query(db, actor, select(Complaint))
    stmt = stmt.where(
        Complaint.assigned_staff_id.is_(None),
        Complaint.status.not_in(TERMINAL_STATUSES),
    ).order_by(complaint_service.priority_order().asc(), Complaint.submitted_at.asc())
    return await paginate(db, stmt, page, page_size)


# Staff work queue

async def get_staff_queue(
    db: AsyncSession,
    staff: User,
    status: Optional[ComplaintStatus] = None,
    include_closed: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Complaint], int]:
    stmt = select(Complaint).where(Complaint.assigned_staff_id == staff.id)
    if status is not None:
        stmt = stmt.where(Complaint.status == status)
    elif not include_closed:
        stmt = stmt.where(Complaint.status.not_in(TERMINAL_STATUSES))
    stmt = stmt.order_by(
        Complaint.sla_due_at.is_(None),
        Complaint.sla_due_at.asc(),
        complaint_service.priority_order().asc(),
    )
    return await paginate(db, stmt, page, page_size)


async def start_work(db: AsyncSession, staff: User, complaint_id: str) -> Complaint:
    complaint = await complaint_service.get_complaint(db, complaint_id)
    if complaint.assigned_staff_id != staff.id:
        raise PermissionDeniedError("Complaint is not assigned to you")
    return await complaint_service.update_status(
        db, staff, complaint_id, ComplaintStatus.IN_PROGRESS, note="Work started"
    )


async def complete_work(db: AsyncSession, staff: User, complaint_id: str, notes: str) -> Complaint:
    """Resolve an assigned complaint; the workload counter drops with it."""
    complaint = await complaint_service.get_complaint(db, complaint_id)
    if complaint.assigned_staff_id != staff.id:
        raise PermissionDeniedError("Complaint is not assigned to you")
    return await complaint_service.update_status(
        db, staff, complaint_id, ComplaintStatus.RESOLVED,
        note="Work completed", resolution_notes=notes,
    )


async def get_staff_performance(db: AsyncSession, staff_user_id: str) -> Dict[str, Any]:
    rows = (await db.execute(
        select(Complaint.status, Complaint.submitted_at, Complaint.resolved_at, Complaint.sla_due_at)
        .where(Complaint.assigned_staff_id == staff_user_id)
    )).all()

    resolved = [r for r in rows if r.resolved_at is not None]
    active = [r for r in rows if ComplaintStatus(r.status) not in TERMINAL_STATUSES]
    on_time = sum(1 for r in resolved if r.sla_due_at is None or r.resolved_at <= r.sla_due_at)

    average_rating = await db.scalar(
        select(func.avg(ComplaintFeedback.rating))
        .join(Complaint, Complaint.id == ComplaintFeedback.complaint_id)
        .where(Complaint.assigned_staff_id == staff_user_id)
    )

    return {
        "assigned_total": len(rows),
        "active": len(active),
        "resolved": len(resolved),
        "resolution_rate": round(len(resolved) / len(rows) * 100, 1) if rows else 0.0,
        "average_resolution_hours": calculate_resolution_time(
            {"submitted_at": r.submitted_at, "resolved_at": r.resolved_at} for r in resolved
        ),
        "sla_compliance": calculate_sla_compliance(len(resolved), on_time),
        "average_rating": round(float(average_rating), 2) if average_rating is not None else None,
    }
