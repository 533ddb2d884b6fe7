"""Admin endpoints: accounts, reference data, SLA policy, billing,
dashboards, reports and exports."""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.complaints import complaint_filters
from civic_portal.api.deps import Pagination, csv_response, page_response, pagination, report_response
from civic_portal.core.auth import require_admin
from civic_portal.core.database import get_db
from civic_portal.core.exceptions import BusinessRuleError, ValidationError
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.billing import BillCreate, BillOut, PaymentOut, RevenueAnalytics, TransactionFilters
from civic_portal.domain.common import MessageResponse, Page
from civic_portal.domain.complaint import ComplaintFilters
from civic_portal.domain.reference import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentOut,
    DepartmentUpdate,
    SlaPolicyOut,
    SlaPolicyUpdate,
    WardCreate,
    WardOut,
    WardUpdate,
)
from civic_portal.domain.staff import (
    StaffProfileCreate,
    StaffProfileOut,
    StaffProfileUpdate,
    SupervisorProfileCreate,
    SupervisorProfileOut,
)
from civic_portal.domain.user import AdminUserCreate, RoleUpdate, UserDetail, UserOut, UserStatusUpdate
from civic_portal.models import ComplaintPriority, PaymentMethod, PaymentStatus, User, UserRole
from civic_portal.services import analytics
from civic_portal.services import complaints as complaint_service
from civic_portal.services import payments as payment_service
from civic_portal.services import reference
from civic_portal.services import staff as staff_service
from civic_portal.services import users as user_service
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# -----------------
# USERS
# -----------------

@router.get("/users", response_model=Page[UserOut])
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    paging: Pagination = Depends(pagination),
    db: AsyncSession = Depends(get_db),
):
    """Search accounts by name, email or phone."""
    items, total = await user_service.list_users(db, search, role, is_active, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(req: AdminUserCreate, db: AsyncSession = Depends(get_db)):
    return await user_service.create_user(
        db, req.email, req.password, req.full_name, req.role, req.phone, req.ward_id
    )


@router.get("/users/{user_id}", response_model=UserDetail)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user_detail(db, user_id)


@router.put("/users/{user_id}/role", response_model=UserOut)
async def change_role(
    user_id: str,
    req: RoleUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.change_role(db, current_user, user_id, req.role)


@router.put("/users/{user_id}/status", response_model=UserOut)
async def set_user_status(
    user_id: str,
    req: UserStatusUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.set_active(db, current_user, user_id, req.is_active)


@router.post("/staff-profiles", response_model=StaffProfileOut, status_code=status.HTTP_201_CREATED)
async def create_staff_profile(
    req: StaffProfileCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.create_staff_profile(db, current_user, req)


@router.put("/staff-profiles/{user_id}", response_model=StaffProfileOut)
async def update_staff_profile(
    user_id: str,
    req: StaffProfileUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.update_staff_profile(db, current_user, user_id, req)


@router.put("/supervisor-profiles", response_model=SupervisorProfileOut)
async def save_supervisor_profile(
    req: SupervisorProfileCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace a supervisor's jurisdiction and permissions."""
    return await staff_service.create_supervisor_profile(db, current_user, req)


# -----------------
# REFERENCE DATA
# -----------------

@router.post("/wards", response_model=WardOut, status_code=status.HTTP_201_CREATED)
async def create_ward(req: WardCreate, db: AsyncSession = Depends(get_db)):
    return await reference.create_ward(db, req)


@router.put("/wards/{ward_id}", response_model=WardOut)
async def update_ward(ward_id: str, req: WardUpdate, db: AsyncSession = Depends(get_db)):
    return await reference.update_ward(db, ward_id, req)


@router.post("/departments", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
async def create_department(req: DepartmentCreate, db: AsyncSession = Depends(get_db)):
    return await reference.create_department(db, req)


@router.put("/departments/{department_id}", response_model=DepartmentOut)
async def update_department(department_id: str, req: DepartmentUpdate, db: AsyncSession = Depends(get_db)):
    return await reference.update_department(db, department_id, req)


@router.post("/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(req: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await reference.create_category(db, req)


@router.put("/categories/{category_id}", response_model=CategoryOut)
async def update_category(category_id: str, req: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    return await reference.update_category(db, category_id, req)


@router.get("/sla", response_model=List[SlaPolicyOut])
async def list_sla_policies(db: AsyncSession = Depends(get_db)):
    """Effective resolution hours per priority."""
    return await reference.list_sla_policies(db)


@router.put("/sla/{priority}", response_model=SlaPolicyOut)
async def update_sla_policy(
    priority: ComplaintPriority,
    req: SlaPolicyUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Override resolution hours for a priority. Existing deadlines are not recomputed."""
    return await reference.upsert_sla_policy(db, current_user, priority, req.resolution_hours)


# -----------------
# BILLING
# -----------------

@router.post("/bills", response_model=BillOut, status_code=status.HTTP_201_CREATED)
async def create_bill(
    req: BillCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.create_bill(db, current_user, req)


@router.get("/bills/pending", response_model=Page[BillOut])
async def pending_bills(
    overdue_only: bool = False,
    paging: Pagination = Depends(pagination),
    db: AsyncSession = Depends(get_db),
):
    items, total = await payment_service.list_pending_bills(db, overdue_only, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.post("/bills/sweep-overdue", response_model=MessageResponse)
async def sweep_overdue(db: AsyncSession = Depends(get_db)):
    """Flag pending bills that are past their due date."""
    flagged = await payment_service.sweep_overdue_bills(db)
    return MessageResponse(message=f"{flagged} bills flagged as overdue")


@router.post("/bills/{bill_id}/cancel", response_model=BillOut)
async def cancel_bill(
    bill_id: str,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.cancel_bill(db, current_user, bill_id)


@router.get("/transactions", response_model=Page[PaymentOut])
async def list_transactions(
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = Query(None, max_length=100),
    paging: Pagination = Depends(pagination),
    db: AsyncSession = Depends(get_db),
):
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must be before date_to", field="date_from")
    filters = TransactionFilters(
        status=payment_status,
        payment_method=payment_method,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    items, total = await payment_service.list_transactions(db, filters, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.get("/revenue", response_model=RevenueAnalytics)
async def revenue_analytics(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    with LogTimer(logger, "revenue_analytics"):
        return await payment_service.get_revenue_analytics(db, days)


# -----------------
# DASHBOARDS
# -----------------

@router.get("/dashboard/metrics")
async def dashboard_metrics(db: AsyncSession = Depends(get_db)):
    """Headline counts; cached in Redis when available."""
    return await analytics.get_admin_metrics(db)


@router.get("/dashboard/status-distribution")
async def status_distribution(db: AsyncSession = Depends(get_db)):
    return await analytics.get_status_distribution(db)


@router.get("/dashboard/departments")
async def department_performance(db: AsyncSession = Depends(get_db)):
    return await analytics.get_department_performance(db)


@router.get("/dashboard/wards")
async def ward_analytics(db: AsyncSession = Depends(get_db)):
    return await analytics.get_ward_analytics(db)


@router.get("/dashboard/trend")
async def complaint_trend(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.get_complaint_trend(db, days)


@router.post("/dashboard/refresh", response_model=MessageResponse)
async def refresh_dashboards():
    cleared = analytics.invalidate_dashboards()
    return MessageResponse(message=f"{cleared} cached entries cleared")


# -----------------
# REPORTS & EXPORTS
# -----------------

@router.get("/reports/monthly")
async def monthly_report(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    format: str = Query("html", pattern="^(html|pdf|json)$"),
    db: AsyncSession = Depends(get_db),
):
    """Monthly service report as HTML, PDF or raw JSON (defaults to this month)."""
    now = utcnow()
    year, month = year or now.year, month or now.month

    with LogTimer(logger, f"monthly_report:{year}-{month:02d}"):
        summary = await analytics.get_monthly_summary(db, year, month)
        return report_response(summary, format)


@router.get("/reports/staff/{staff_id}")
async def staff_report(
    staff_id: str,
    start: date,
    end: date,
    db: AsyncSession = Depends(get_db),
):
    if end < start:
        raise BusinessRuleError("end must not be before start", code="INVALID_PERIOD")
    await staff_service.get_staff_profile(db, staff_id)
    return await analytics.get_staff_report(db, staff_id, start, end)


@router.get("/complaints/export")
async def export_complaints(
    filters: ComplaintFilters = Depends(complaint_filters),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Filtered complaint list as CSV."""
    return csv_response(await complaint_service.export_complaints_csv(db, current_user, filters))
