from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.complaints import complaint_filters
from civic_portal.api.deps import Pagination, csv_response, page_response, pagination, report_response
from civic_portal.core.auth import require_supervisor
from civic_portal.core.database import get_db
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.common import MessageResponse, Page
from civic_portal.domain.complaint import (
    AssignRequest,
    BulkAssignRequest,
    BulkResult,
    BulkStatusRequest,
    CloseRequest,
    ComplaintFilters,
    ComplaintOut,
    PriorityUpdate,
    ReassignRequest,
)
from civic_portal.domain.staff import (
    RebalanceMove,
    RebalanceRequest,
    StaffPerformance,
    StaffWithWorkload,
    SuggestedStaff,
    SupervisorDashboard,
    TaskCreate,
    TaskOut,
    TaskStats,
    TaskStatusUpdate,
)
from civic_portal.models import ComplaintPriority, TaskStatus, User
from civic_portal.services import analytics
from civic_portal.services import complaints as complaint_service
from civic_portal.services import staff as staff_service
from civic_portal.services import tasks as task_service
from civic_portal.services.jurisdiction import load_jurisdiction, require_access
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)
router = APIRouter(prefix="/supervisor", tags=["supervisor"])


# -----------------
# DASHBOARD
# -----------------

@router.get("/dashboard", response_model=SupervisorDashboard)
async def dashboard(
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """Complaint totals, backlog and SLA figures for the caller's jurisdiction."""
    with LogTimer(logger, "supervisor_dashboard"):
        return await staff_service.supervisor_dashboard(db, current_user)


@router.get("/unassigned", response_model=Page[ComplaintOut])
async def unassigned_queue(
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await staff_service.list_unassigned(db, current_user, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.get("/sla/{kind}", response_model=List[ComplaintOut])
async def sla_complaints(
    kind: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """``overdue`` or ``at_risk`` (due within 24 hours) open complaints."""
    if kind not in ("overdue", "at_risk"):
        kind = "overdue"
    return await complaint_service.get_sla_complaints(db, current_user, kind, limit)


# -----------------
# STAFF & WORKLOAD
# -----------------

@router.get("/staff", response_model=List[StaffWithWorkload])
async def supervised_staff(
    department_id: Optional[str] = None,
    ward_id: Optional[str] = None,
    available_only: bool = False,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.list_staff(db, current_user, department_id, ward_id, available_only)


@router.get("/staff/{staff_id}/performance", response_model=StaffPerformance)
async def staff_performance(
    staff_id: str,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    profile = await staff_service.get_staff_profile(db, staff_id)
    jurisdiction = await load_jurisdiction(db, current_user)
    require_access(jurisdiction, ward_id=profile.ward_id, department_id=profile.department_id)
    return await staff_service.get_staff_performance(db, staff_id)


@router.get("/rebalance", response_model=List[RebalanceMove])
async def rebalance_plan(
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """Proposed moves from overloaded to lightly loaded staff."""
    return await staff_service.get_rebalance_plan(db, current_user)


@router.post("/rebalance", response_model=BulkResult)
async def apply_rebalance(
    req: RebalanceRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.apply_rebalance(db, current_user, req.moves)


# -----------------
# COMPLAINT MANAGEMENT
# -----------------

@router.get("/complaints/{complaint_id}/suggested-staff", response_model=List[SuggestedStaff])
async def suggested_staff(
    complaint_id: str,
    limit: int = Query(5, ge=1, le=20),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.suggest_staff_for_complaint(db, current_user, complaint_id, limit)


@router.post("/complaints/{complaint_id}/assign", response_model=ComplaintOut)
async def assign_complaint(
    complaint_id: str,
    req: AssignRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.assign_complaint(db, current_user, complaint_id, req.staff_id, note=req.note)


@router.post("/complaints/{complaint_id}/reassign", response_model=ComplaintOut)
async def reassign_complaint(
    complaint_id: str,
    req: ReassignRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.reassign_complaint(db, current_user, complaint_id, req.staff_id, req.reason)


@router.post("/complaints/bulk-assign", response_model=BulkResult)
async def bulk_assign(
    req: BulkAssignRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.bulk_assign(db, current_user, req.complaint_ids, req.staff_id, req.note)


@router.post("/complaints/bulk-status", response_model=BulkResult)
async def bulk_status(
    req: BulkStatusRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.bulk_update_status(db, current_user, req.complaint_ids, req.status, req.note)


@router.patch("/complaints/{complaint_id}/priority", response_model=ComplaintOut)
async def update_priority(
    complaint_id: str,
    req: PriorityUpdate,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """Change priority; the SLA deadline is recomputed from submission time."""
    return await complaint_service.update_priority(db, current_user, complaint_id, req.priority, req.reason)


@router.post("/complaints/{complaint_id}/close", response_model=ComplaintOut)
async def close_complaint(
    complaint_id: str,
    req: CloseRequest,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.close_complaint(db, current_user, complaint_id, req.notes)


# -----------------
# TASKS
# -----------------

@router.post("/tasks", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    req: TaskCreate,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.create_task(db, current_user, req)


@router.get("/tasks", response_model=Page[TaskOut])
async def list_tasks(
    task_status: Optional[TaskStatus] = None,
    assigned_to: Optional[str] = None,
    priority: Optional[ComplaintPriority] = None,
    overdue_only: bool = False,
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await task_service.list_tasks(
        db, current_user, task_status, assigned_to, priority, overdue_only, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.get("/tasks/stats", response_model=TaskStats)
async def task_stats(
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.get_task_stats(db, current_user)


@router.patch("/tasks/{task_id}/status", response_model=TaskOut)
async def update_task_status(
    task_id: str,
    req: TaskStatusUpdate,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.update_task_status(db, current_user, task_id, req.status)


@router.delete("/tasks/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: str,
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    await task_service.delete_task(db, current_user, task_id)
    return MessageResponse(message="Task deleted")


# -----------------
# REPORTS
# -----------------

@router.get("/reports/monthly")
async def monthly_report(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    format: str = Query("html", pattern="^(html|pdf|json)$"),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """Monthly report restricted to the caller's wards and departments."""
    jurisdiction = await load_jurisdiction(db, current_user)
    require_access(jurisdiction, "generate_reports", check_entity=False)

    now = utcnow()
    year, month = year or now.year, month or now.month
    with LogTimer(logger, f"supervisor_report:{year}-{month:02d}"):
        summary = await analytics.get_monthly_summary(db, year, month, jurisdiction)
        return report_response(summary, format, filename_prefix="jurisdiction_report")


@router.get("/complaints/export")
async def export_complaints(
    filters: ComplaintFilters = Depends(complaint_filters),
    current_user: User = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    """CSV of the complaints in the caller's jurisdiction."""
    jurisdiction = await load_jurisdiction(db, current_user)
    require_access(jurisdiction, "generate_reports", check_entity=False)
    return csv_response(await complaint_service.export_complaints_csv(db, current_user, filters))
