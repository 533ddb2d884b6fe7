from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import get_current_user, require_citizen
from civic_portal.core.database import get_db
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.common import Page
from civic_portal.domain.complaint import (
    AttachmentCreate,
    AttachmentOut,
    CitizenComplaintStats,
    CommentCreate,
    CommentOut,
    ComplaintCreate,
    ComplaintDetail,
    ComplaintFilters,
    ComplaintOut,
    FeedbackCreate,
    FeedbackOut,
    StatusUpdate,
)
from civic_portal.models import ComplaintPriority, ComplaintStatus, User
from civic_portal.services import complaints as complaint_service

logger = get_logger(__name__)
router = APIRouter(prefix="/complaints", tags=["complaints"])


def complaint_filters(
    search: Optional[str] = Query(None, max_length=100),
    status_in: Optional[List[ComplaintStatus]] = Query(None, alias="status"),
    priority: Optional[List[ComplaintPriority]] = Query(None),
    ward_id: Optional[str] = None,
    category_id: Optional[str] = None,
    department_id: Optional[str] = None,
    assigned_staff_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    is_overdue: Optional[bool] = None,
    unassigned: Optional[bool] = None,
    sort_by: str = Query("submitted_at", pattern="^(submitted_at|priority|sla_due_at|status)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
) -> ComplaintFilters:
    return ComplaintFilters(
        search=search,
        status=status_in,
        priority=priority,
        ward_id=ward_id,
        category_id=category_id,
        department_id=department_id,
        assigned_staff_id=assigned_staff_id,
        date_from=date_from,
        date_to=date_to,
        is_overdue=is_overdue,
        unassigned=unassigned,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("", response_model=ComplaintOut, status_code=status.HTTP_201_CREATED)
async def submit_complaint(
    req: ComplaintCreate,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """File a new complaint.

    The response carries the tracking code and SLA deadline.
    """
    with LogTimer(logger, "complaint_submission"):
        return await complaint_service.submit_complaint(db, current_user, req)


@router.get("", response_model=Page[ComplaintOut])
async def list_complaints(
    filters: ComplaintFilters = Depends(complaint_filters),
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Search complaints visible to the caller.

    Citizens see their own, staff their assigned, supervisors their
    jurisdiction and admins everything.
    """
    items, total = await complaint_service.search_complaints(
        db, current_user, filters, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.get("/stats", response_model=CitizenComplaintStats)
async def my_complaint_stats(
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.get_citizen_stats(db, current_user)


@router.get("/track/{tracking_code}", response_model=ComplaintOut)
async def track_complaint(
    tracking_code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.get_complaint_by_tracking_code(db, current_user, tracking_code)


@router.get("/{complaint_id}", response_model=ComplaintDetail)
async def get_complaint(
    complaint_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Complaint with comments, history, attachments, feedback and SLA status.

    Internal comments and assignment history are hidden from citizens.
    """
    return await complaint_service.get_complaint_detail(db, current_user, complaint_id)


@router.patch("/{complaint_id}/status", response_model=ComplaintOut)
async def update_status(
    complaint_id: str,
    req: StatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Change status. Citizens may only reopen their own resolved complaints."""
    return await complaint_service.update_status(db, current_user, complaint_id, req.status, note=req.note)


@router.post("/{complaint_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(
    complaint_id: str,
    req: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.add_comment(db, current_user, complaint_id, req.content, req.is_internal)


@router.post("/{complaint_id}/attachments", response_model=AttachmentOut, status_code=status.HTTP_201_CREATED)
async def add_attachment(
    complaint_id: str,
    req: AttachmentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record attachment metadata; file bytes are stored elsewhere."""
    return await complaint_service.add_attachment(db, current_user, complaint_id, req)


@router.post("/{complaint_id}/feedback", response_model=FeedbackOut, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    complaint_id: str,
    req: FeedbackCreate,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.submit_feedback(db, current_user, complaint_id, req)


@router.post("/{complaint_id}/upvote", response_model=ComplaintOut)
async def upvote_complaint(
    complaint_id: str,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    return await complaint_service.upvote_complaint(db, current_user, complaint_id)
