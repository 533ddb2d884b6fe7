from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import require_staff
from civic_portal.core.database import get_db
from civic_portal.domain.common import Page
from civic_portal.domain.complaint import ComplaintOut, CompleteWorkRequest
from civic_portal.domain.staff import (
    AvailabilityUpdate,
    StaffPerformance,
    StaffProfileOut,
    TaskOut,
    TaskStatusUpdate,
)
from civic_portal.models import ComplaintStatus, TaskStatus, User
from civic_portal.services import staff as staff_service
from civic_portal.services import tasks as task_service

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("/profile", response_model=StaffProfileOut)
async def my_profile(
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.get_staff_profile(db, current_user.id)


@router.put("/availability", response_model=StaffProfileOut)
async def update_availability(
    req: AvailabilityUpdate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.update_availability(db, current_user, req.availability_status)


@router.get("/performance", response_model=StaffPerformance)
async def my_performance(
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.get_staff_performance(db, current_user.id)


# -----------------
# WORK QUEUE
# -----------------

@router.get("/queue", response_model=Page[ComplaintOut])
async def my_queue(
    complaint_status: Optional[ComplaintStatus] = None,
    include_closed: bool = False,
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Assigned complaints, nearest SLA deadline first."""
    items, total = await staff_service.get_staff_queue(
        db, current_user, complaint_status, include_closed, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.post("/complaints/{complaint_id}/start", response_model=ComplaintOut)
async def start_work(
    complaint_id: str,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.start_work(db, current_user, complaint_id)


@router.post("/complaints/{complaint_id}/complete", response_model=ComplaintOut)
async def complete_work(
    complaint_id: str,
    req: CompleteWorkRequest,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Resolve the complaint with resolution notes."""
    return await staff_service.complete_work(db, current_user, complaint_id, req.resolution_notes)


# -----------------
# TASKS
# -----------------

@router.get("/tasks", response_model=Page[TaskOut])
async def my_tasks(
    task_status: Optional[TaskStatus] = None,
    overdue_only: bool = False,
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    items, total = await task_service.list_tasks(
        db, current_user, status=task_status, overdue_only=overdue_only,
        page=paging.page, page_size=paging.page_size,
    )
    return page_response(items, total, paging)


@router.patch("/tasks/{task_id}/status", response_model=TaskOut)
async def update_task_status(
    task_id: str,
    req: TaskStatusUpdate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await task_service.update_task_status(db, current_user, task_id, req.status)
