"""Dashboard aggregates for admins, citizens and staff.

Admin aggregates are cached in Redis for ``CACHE_TTL_MINUTES`` when Redis is
enabled; without Redis every call hits the database.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import and_, case, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.infrastructure.redis import CacheManager
from civic_portal.models import (
    TERMINAL_STATUSES,
    Bill,
    BillStatus,
    Complaint,
    ComplaintCategory,
    ComplaintStatus,
    Department,
    Payment,
    PaymentStatus,
    Task,
    TaskStatus,
    User,
    UserRole,
    Ward,
)
from civic_portal.services import notices as notice_service
from civic_portal.services import notifications as notification_service
from civic_portal.services import payments as payment_service
from civic_portal.services.complaints import get_citizen_stats, overdue_clause
from civic_portal.services.jurisdiction import Jurisdiction
from civic_portal.services.sla import calculate_resolution_time, calculate_sla_compliance
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)

CACHE_PREFIX = "analytics:"


def _cache() -> CacheManager:
    return CacheManager(key_prefix=CACHE_PREFIX)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _hours(submitted_at: Optional[datetime], resolved_at: Optional[datetime]) -> Optional[float]:
    if submitted_at is None or resolved_at is None:
        return None
    return max(0.0, (resolved_at - submitted_at).total_seconds() / 3600)


# ----------------
# ADMIN DASHBOARD
# ----------------

async def get_admin_metrics(db: AsyncSession) -> Dict[str, Any]:
    """Headline counts for the admin dashboard."""
    cache = _cache()
    cached = cache.get("admin_metrics")
    if cached is not None:
        return cached

    now = utcnow()
    with LogTimer(logger, "admin_metrics"):
        total = await db.scalar(select(func.count(Complaint.id))) or 0
        open_count = await db.scalar(
            select(func.count(Complaint.id)).where(Complaint.status.not_in(TERMINAL_STATUSES))
        ) or 0
        resolved = await db.scalar(
            select(func.count(Complaint.id)).where(
                Complaint.status.in_((ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED))
            )
        ) or 0
        overdue = await db.scalar(select(func.count(Complaint.id)).where(overdue_clause(now))) or 0

        role_rows = (await db.execute(
            select(User.role, func.count(User.id)).where(User.is_active.is_(True)).group_by(User.role)
        )).all()
        roles = {UserRole(role): n for role, n in role_rows}

        revenue = await db.scalar(
            select(func.coalesce(func.sum(Payment.amount_paid), 0.0))
            .where(Payment.status == PaymentStatus.COMPLETED)
        )
        pending_bills = await db.scalar(
            select(func.count(Bill.id)).where(Bill.status == BillStatus.PENDING)
        ) or 0

    metrics = {
        "total_complaints": total,
        "open_complaints": open_count,
        "resolved_complaints": resolved,
        "overdue_complaints": overdue,
        "total_citizens": roles.get(UserRole.CITIZEN, 0),
        "total_staff": roles.get(UserRole.STAFF, 0) + roles.get(UserRole.SUPERVISOR, 0),
        "total_revenue": round(float(revenue or 0.0), 2),
        "pending_bills": pending_bills,
        "generated_at": now.isoformat(),
    }
    cache.set("admin_metrics", metrics)
    return metrics


async def get_status_distribution(db: AsyncSession) -> Dict[str, int]:
    rows = (await db.execute(
        select(Complaint.status, func.count(Complaint.id)).group_by(Complaint.status)
    )).all()
    counts = {s.value: 0 for s in ComplaintStatus}
    for status, n in rows:
        counts[ComplaintStatus(status).value] = n
    return counts


async def get_department_performance(db: AsyncSession) -> List[Dict[str, Any]]:
    """Per-department totals, resolution rate and mean resolution hours."""
    cache = _cache()
    cached = cache.get("department_performance")
    if cached is not None:
        return cached

    result = await _department_performance(db)
    cache.set("department_performance", result)
    return result


async def _department_performance(db: AsyncSession, clause=None) -> List[Dict[str, Any]]:
    # The scope goes in the join so departments without complaints still appear
    on = Complaint.assigned_department_id == Department.id
    if clause is not None:
        on = and_(on, clause)
    rows = (await db.execute(
        select(
            Department.id, Department.name, Department.code,
            Complaint.status, Complaint.submitted_at, Complaint.resolved_at,
        )
        .select_from(Department)
        .outerjoin(Complaint, on)
        .where(Department.is_active.is_(True))
    )).all()

    departments: Dict[str, Dict[str, Any]] = {}
    for dept_id, name, code, status, submitted_at, resolved_at in rows:
        entry = departments.setdefault(dept_id, {
            "department_id": dept_id, "name": name, "code": code,
            "total": 0, "resolved": 0, "_items": [],
        })
        if status is None:
            continue
        entry["total"] += 1
        if resolved_at is not None:
            entry["resolved"] += 1
            entry["_items"].append({"submitted_at": submitted_at, "resolved_at": resolved_at})

    result = []
    for entry in departments.values():
        items = entry.pop("_items")
        entry["resolution_rate"] = _rate(entry["resolved"], entry["total"])
        entry["average_resolution_hours"] = calculate_resolution_time(items)
        result.append(entry)
    result.sort(key=lambda d: d["total"], reverse=True)
    return result


async def get_ward_analytics(db: AsyncSession) -> List[Dict[str, Any]]:
    now = utcnow()
    is_open = case((Complaint.status.not_in(TERMINAL_STATUSES), 1), else_=0)
    is_resolved = case(
        (Complaint.status.in_((ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED)), 1), else_=0
    )
    is_overdue = case((overdue_clause(now), 1), else_=0)

    rows = (await db.execute(
        select(
            Ward.id, Ward.ward_number, Ward.name,
            func.count(Complaint.id),
            func.coalesce(func.sum(is_open), 0),
            func.coalesce(func.sum(is_resolved), 0),
            func.coalesce(func.sum(is_overdue), 0),
        )
        .select_from(Ward)
        .outerjoin(Complaint, Complaint.ward_id == Ward.id)
        .group_by(Ward.id, Ward.ward_number, Ward.name)
        .order_by(Ward.ward_number)
    )).all()

    return [
        {
            "ward_id": ward_id,
            "ward_number": number,
            "name": name,
            "total": total,
            "open": int(open_count),
            "resolved": int(resolved),
            "overdue": int(overdue),
            "resolution_rate": _rate(int(resolved), total),
        }
        for ward_id, number, name, total, open_count, resolved, overdue in rows
    ]


async def get_complaint_trend(db: AsyncSession, days: int = 30) -> List[Dict[str, Any]]:
    """Complaints submitted and resolved per day, zero-filled over the window."""
    now = utcnow()
    since = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
    rows = (await db.execute(
        select(Complaint.submitted_at, Complaint.resolved_at).where(
            (Complaint.submitted_at >= since) | (Complaint.resolved_at >= since)
        )
    )).all()

    index = pd.date_range(since.date(), now.date(), freq="D").strftime("%Y-%m-%d")
    df = pd.DataFrame(rows, columns=["submitted_at", "resolved_at"])

    submitted = (
        pd.to_datetime(df["submitted_at"]).dt.strftime("%Y-%m-%d").value_counts()
        if not df.empty else pd.Series(dtype=int)
    )
    resolved = (
        pd.to_datetime(df["resolved_at"].dropna()).dt.strftime("%Y-%m-%d").value_counts()
        if not df.empty else pd.Series(dtype=int)
    )
    submitted = submitted.reindex(index, fill_value=0)
    resolved = resolved.reindex(index, fill_value=0)

    return [
        {"date": day, "submitted": int(submitted[day]), "resolved": int(resolved[day])}
        for day in index
    ]


async def get_category_breakdown(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    clause=None,
) -> List[Dict[str, Any]]:
    stmt = (
        select(ComplaintCategory.name, func.count(Complaint.id))
        .select_from(Complaint)
        .outerjoin(ComplaintCategory, ComplaintCategory.id == Complaint.category_id)
    )
    if clause is not None:
        stmt = stmt.where(clause)
    if start:
        stmt = stmt.where(Complaint.submitted_at >= start)
    if end:
        stmt = stmt.where(Complaint.submitted_at < end)
    rows = (await db.execute(stmt.group_by(ComplaintCategory.name))).all()
    breakdown = [{"category": name or "Uncategorised", "count": n} for name, n in rows]
    return sorted(breakdown, key=lambda r: r["count"], reverse=True)


def invalidate_dashboards() -> int:
    return _cache().clear_pattern("*")


# ----------------
# CITIZEN DASHBOARD
# ----------------

async def get_citizen_dashboard(db: AsyncSession, citizen: User) -> Dict[str, Any]:
    complaint_stats = await get_citizen_stats(db, citizen)
    bill_stats = await payment_service.get_bill_stats(db, citizen)
    recent_notices, _ = await notice_service.list_notices(db, citizen, page=1, page_size=5)

    return {
        "complaints": complaint_stats,
        "bills": bill_stats,
        "recent_notices": recent_notices,
        "unread_notices": await notice_service.count_unread_notices(db, citizen),
        "unread_notifications": await notification_service.count_unread(db, citizen),
    }


# ----------------
# STAFF REPORT
# ----------------

async def get_staff_report(
    db: AsyncSession, staff_user_id: str, start: date, end: date
) -> Dict[str, Any]:
    """Work summary for one staff member between ``start`` and ``end`` (inclusive)."""
    start_dt = datetime(start.year, start.month, start.day)
    end_dt = datetime(end.year, end.month, end.day) + timedelta(days=1)

    complaints = (await db.execute(
        select(Complaint.status, Complaint.submitted_at, Complaint.resolved_at, Complaint.sla_due_at)
        .where(
            Complaint.assigned_staff_id == staff_user_id,
            Complaint.assigned_at >= start_dt,
            Complaint.assigned_at < end_dt,
        )
    )).all()
    resolved = [c for c in complaints if c.resolved_at is not None]
    on_time = sum(1 for c in resolved if c.sla_due_at is None or c.resolved_at <= c.sla_due_at)
    spans = [_hours(c.submitted_at, c.resolved_at) for c in resolved]

    tasks = (await db.execute(
        select(Task.status).where(
            Task.assigned_to == staff_user_id,
            Task.created_at >= start_dt,
            Task.created_at < end_dt,
        )
    )).scalars().all()
    completed_tasks = sum(1 for s in tasks if TaskStatus(s) == TaskStatus.COMPLETED)

    return {
        "staff_id": staff_user_id,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "complaints_assigned": len(complaints),
        "complaints_resolved": len(resolved),
        "resolution_rate": _rate(len(resolved), len(complaints)),
        "average_resolution_days": round(sum(spans) / len(spans) / 24, 1) if spans else 0.0,
        "sla_compliance": calculate_sla_compliance(len(resolved), on_time),
        "tasks_assigned": len(tasks),
        "tasks_completed": completed_tasks,
        "task_completion_rate": _rate(completed_tasks, len(tasks)),
    }


# ----------------
# MONTHLY SUMMARY
# ----------------

def _month_bounds(year: int, month: int) -> tuple:
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


async def get_monthly_summary(
    db: AsyncSession, year: int, month: int, jurisdiction: Optional[Jurisdiction] = None
) -> Dict[str, Any]:
    """Figures for the monthly report.

    With a supervisor's ``jurisdiction`` the complaint figures cover only
    their wards and departments, and revenue only bills raised by their
    departments.
    """
    start, end = _month_bounds(year, month)
    scoped = jurisdiction is not None and not jurisdiction.is_senior
    complaint_clause = (
        jurisdiction.scope_clause(Complaint.ward_id, Complaint.assigned_department_id) if scoped else None
    )
    bill_clause = None
    if scoped:
        bill_clause = (
            Bill.department_id.in_(jurisdiction.departments) if jurisdiction.departments else false()
        )

    def complaints_where(stmt):
        return stmt.where(complaint_clause) if complaint_clause is not None else stmt

    def bills_where(stmt):
        return stmt.where(bill_clause) if bill_clause is not None else stmt

    submitted = await db.scalar(complaints_where(
        select(func.count(Complaint.id)).where(Complaint.submitted_at >= start, Complaint.submitted_at < end)
    )) or 0
    resolved_rows = (await db.execute(complaints_where(
        select(Complaint.submitted_at, Complaint.resolved_at, Complaint.sla_due_at)
        .where(Complaint.resolved_at >= start, Complaint.resolved_at < end)
    ))).all()
    on_time = sum(1 for r in resolved_rows if r.sla_due_at is None or r.resolved_at <= r.sla_due_at)

    payments = (await db.execute(bills_where(
        select(Payment.amount_paid, Payment.late_fee_paid)
        .join(Bill, Bill.id == Payment.bill_id)
        .where(
            Payment.status == PaymentStatus.COMPLETED,
            Payment.created_at >= start,
            Payment.created_at < end,
        )
    ))).all()
    bills_issued = await db.scalar(bills_where(
        select(func.count(Bill.id)).where(Bill.created_at >= start, Bill.created_at < end)
    )) or 0

    if scoped:
        departments = [d for d in await _department_performance(db, complaint_clause) if d["total"]]
    else:
        departments = await get_department_performance(db)

    return {
        "year": year,
        "month": month,
        "period_label": start.strftime("%B %Y"),
        "scope": "jurisdiction" if scoped else "municipality",
        "complaints_submitted": submitted,
        "complaints_resolved": len(resolved_rows),
        "sla_compliance": calculate_sla_compliance(len(resolved_rows), on_time),
        "average_resolution_hours": calculate_resolution_time(
            {"submitted_at": r.submitted_at, "resolved_at": r.resolved_at} for r in resolved_rows
        ),
        "categories": await get_category_breakdown(db, start, end, complaint_clause),
        "payments_count": len(payments),
        "revenue": round(sum(p.amount_paid for p in payments), 2),
        "late_fees": round(sum(p.late_fee_paid or 0.0 for p in payments), 2),
        "bills_issued": bills_issued,
        "departments": departments,
    }
