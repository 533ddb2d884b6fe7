"""Bills, late fees, payments and revenue analytics."""
import math
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.config import settings
from civic_portal.core.exceptions import (
    BusinessRuleError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from civic_portal.core.logging import get_logger
from civic_portal.domain.billing import BillCreate, TransactionFilters
from civic_portal.models import (
    Bill,
    BillStatus,
    NotificationType,
    Payment,
    PaymentMethod,
    PaymentStatus,
    User,
    UserRole,
)
from civic_portal.services.common import paginate
from civic_portal.services.notifications import notify
from civic_portal.utils.codes import generate_bill_number, generate_receipt_number, generate_transaction_id
from civic_portal.utils.text import escape_like, sanitize_text
from civic_portal.utils.time import today as utc_today, utcnow

logger = get_logger(__name__)

AMOUNT_TOLERANCE = 0.1


def _round_half_up(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def days_overdue(due_date: date, today: Union[date, datetime, None] = None) -> int:
    """Whole days past due, counting a started day as a full day.

    The due date itself is never late; lateness starts at the following
    midnight.
    """
    today = today or utc_today()
    if isinstance(today, datetime):
        due_end = datetime.combine(due_date + timedelta(days=1), datetime.min.time())
        if today <= due_end:
            return 0
        return math.ceil((today - due_end).total_seconds() / 86400)
    return max(0, (today - due_date).days)


def calculate_late_fee(
    due_date: date,
    base_amount: float,
    today: Union[date, datetime, None] = None,
) -> float:
    """Late fee: 0.1% of the base amount per day late, capped at 20%.

    Rounded to the nearest whole currency unit; 0 on or before the due date.
    """
    days = days_overdue(due_date, today)
    if days <= 0 or base_amount <= 0:
        return 0.0
    fee_fraction = min(settings.late_fee_daily_rate * days, settings.late_fee_cap)
    return _round_half_up(base_amount * fee_fraction)


def amount_due(bill: Bill, today: Union[date, datetime, None] = None) -> Tuple[float, float]:
    """(late_fee, total payable) for a bill; paid or cancelled bills owe nothing."""
    if BillStatus(bill.status) != BillStatus.PENDING:
        return float(bill.late_fee_amount or 0.0), 0.0
    late_fee = calculate_late_fee(bill.due_date, bill.base_amount, today)
    return late_fee, round(bill.total_amount + late_fee, 2)


async def get_bill(db: AsyncSession, bill_id: str) -> Bill:
    bill = await db.get(Bill, bill_id)
    if bill is None:
        raise ResourceNotFoundError("Bill", bill_id)
    return bill


def _ensure_bill_access(user: User, bill: Bill) -> None:
    if UserRole(user.role) != UserRole.ADMIN and bill.citizen_id != user.id:
        raise PermissionDeniedError("This bill does not belong to you")


async def list_bills(
    db: AsyncSession,
    citizen: User,
    status: Optional[Sequence[BillStatus]] = None,
    overdue: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Bill], int]:
    stmt = select(Bill).where(Bill.citizen_id == citizen.id)
    if status:
        stmt = stmt.where(Bill.status.in_(status))
    if overdue is not None:
        is_overdue = (Bill.status == BillStatus.PENDING) & (Bill.due_date < utc_today())
        stmt = stmt.where(is_overdue if overdue else ~is_overdue)
    if search:
        term = f"%{escape_like(search.strip())}%"
        stmt = stmt.where(or_(
            Bill.bill_number.ilike(term, escape="\\"),
            Bill.description.ilike(term, escape="\\"),
        ))
    stmt = stmt.order_by(Bill.due_date.asc(), Bill.created_at.desc())
    return await paginate(db, stmt, page, page_size)


async def get_bill_detail(db: AsyncSession, user: User, bill_id: str) -> Dict[str, Any]:
    bill = await get_bill(db, bill_id)
    _ensure_bill_access(user, bill)
    late_fee, payable = amount_due(bill)
    return {
        "bill": bill,
        "late_fee": late_fee,
        "amount_due": payable,
        "days_overdue": days_overdue(bill.due_date) if BillStatus(bill.status) == BillStatus.PENDING else 0,
        "currency": settings.currency,
    }


async def process_payment(
    db: AsyncSession,
    citizen: User,
    bill_id: str,
    amount: float,
    payment_method: PaymentMethod,
) -> Payment:
    """Settle a pending bill in full.

    The amount must match total + late fee within 0.1. The payment is
    recorded as completed and the bill marked paid in the same transaction.
    """
    bill = await get_bill(db, bill_id)
    if bill.citizen_id != citizen.id:
        raise PermissionDeniedError("This bill does not belong to you")

    status = BillStatus(bill.status)
    if status == BillStatus.COMPLETED:
        raise BusinessRuleError("Bill has already been paid", code="BILL_ALREADY_PAID")
    if status == BillStatus.CANCELLED:
        raise BusinessRuleError("Bill has been cancelled", code="BILL_CANCELLED")

    late_fee, payable = amount_due(bill)
    if abs(amount - payable) > AMOUNT_TOLERANCE:
        raise BusinessRuleError(
            f"Payment amount mismatch. Expected: {payable:.2f}, Provided: {amount:.2f}",
            code="AMOUNT_MISMATCH",
            details={"expected": payable, "provided": amount, "late_fee": late_fee},
        )

    now = utcnow()
    payment = Payment(
        bill_id=bill.id,
        citizen_id=citizen.id,
        amount_paid=round(amount, 2),
        late_fee_paid=late_fee,
        payment_method=payment_method,
        status=PaymentStatus.COMPLETED,
        transaction_id=generate_transaction_id(now),
        receipt_number=generate_receipt_number(now),
        created_at=now,
    )
    db.add(payment)

    bill.status = BillStatus.COMPLETED
    bill.late_fee_amount = late_fee
    bill.is_overdue = late_fee > 0
    bill.paid_date = now
    bill.updated_at = now

    await notify(
        db, citizen.id, NotificationType.PAYMENT_SUCCESS,
        title="Payment successful",
        message=(
            f"Payment of {settings.currency} {amount:,.2f} for bill {bill.bill_number} received. "
            f"Receipt {payment.receipt_number}."
        ),
        bill_id=bill.id,
    )
    await db.flush()

    logger.info(
        f"Payment {payment.transaction_id} completed",
        extra={"user_id": citizen.id, "bill_id": bill.id},
    )
    return payment


async def get_receipt(db: AsyncSession, user: User, transaction_id: str) -> Dict[str, Any]:
    payment = await db.scalar(select(Payment).where(Payment.transaction_id == transaction_id))
    if payment is None:
        raise ResourceNotFoundError("Payment", transaction_id)
    if UserRole(user.role) != UserRole.ADMIN and payment.citizen_id != user.id:
        raise PermissionDeniedError("This receipt does not belong to you")

    bill = await get_bill(db, payment.bill_id)
    citizen = await db.get(User, payment.citizen_id)
    return {
        "payment": payment,
        "bill": bill,
        "citizen_name": citizen.full_name if citizen else "",
        "currency": settings.currency,
    }


async def list_payment_history(
    db: AsyncSession, citizen: User, page: int = 1, page_size: int = 20
) -> Tuple[List[Payment], int]:
    stmt = (
        select(Payment)
        .where(Payment.citizen_id == citizen.id)
        .order_by(Payment.created_at.desc())
    )
    return await paginate(db, stmt, page, page_size)


async def get_bill_stats(db: AsyncSession, citizen: User) -> Dict[str, Any]:
    today = utc_today()
    pending = (await db.execute(
        select(Bill).where(Bill.citizen_id == citizen.id, Bill.status == BillStatus.PENDING)
    )).scalars().all()

    total_bills = await db.scalar(select(func.count(Bill.id)).where(Bill.citizen_id == citizen.id))

    month_start = datetime(today.year, today.month, 1)
    paid_this_month = await db.scalar(
        select(func.coalesce(func.sum(Payment.amount_paid), 0.0)).where(
            Payment.citizen_id == citizen.id,
            Payment.status == PaymentStatus.COMPLETED,
            Payment.created_at >= month_start,
        )
    )

    return {
        "total_bills": total_bills or 0,
        "pending": len(pending),
        "overdue": sum(1 for b in pending if b.due_date < today),
        "total_due": round(sum(amount_due(b, today)[1] for b in pending), 2),
        "paid_this_month": float(paid_this_month or 0.0),
    }


# Admin operations

async def create_bill(db: AsyncSession, actor: User, data: BillCreate) -> Bill:
    citizen = await db.get(User, data.citizen_id)
    if citizen is None:
        raise ResourceNotFoundError("User", data.citizen_id)
    if UserRole(citizen.role) != UserRole.CITIZEN:
        raise BusinessRuleError("Bills can only be issued to citizens", code="NOT_A_CITIZEN")

    bill = Bill(
        bill_number=generate_bill_number(),
        citizen_id=citizen.id,
        department_id=data.department_id,
        bill_type=data.bill_type,
        description=sanitize_text(data.description) or None,
        base_amount=round(data.base_amount, 2),
        tax_amount=round(data.tax_amount, 2),
        total_amount=round(data.base_amount + data.tax_amount, 2),
        late_fee_amount=0.0,
        due_date=data.due_date,
        status=BillStatus.PENDING,
        is_overdue=data.due_date < utc_today(),
        created_by=actor.id,
    )
    db.add(bill)
    await db.flush()

    await notify(
        db, citizen.id, NotificationType.BILL_GENERATED,
        title="New bill generated",
        message=(
            f"Bill {bill.bill_number} for {settings.currency} {bill.total_amount:,.2f} "
            f"is due on {bill.due_date:%Y-%m-%d}."
        ),
        bill_id=bill.id,
    )
    await db.flush()
    logger.info(f"Bill {bill.bill_number} created", extra={"user_id": actor.id, "bill_id": bill.id})
    return bill


async def cancel_bill(db: AsyncSession, actor: User, bill_id: str) -> Bill:
    bill = await get_bill(db, bill_id)
    if BillStatus(bill.status) != BillStatus.PENDING:
        raise BusinessRuleError("Only pending bills can be cancelled", code="BILL_NOT_PENDING")
    bill.status = BillStatus.CANCELLED
    bill.updated_at = utcnow()
    await db.flush()
    logger.info(f"Bill {bill.bill_number} cancelled", extra={"user_id": actor.id, "bill_id": bill.id})
    return bill


async def list_pending_bills(
    db: AsyncSession, overdue_only: bool = False, page: int = 1, page_size: int = 20
) -> Tuple[List[Bill], int]:
    stmt = select(Bill).where(Bill.status == BillStatus.PENDING)
    if overdue_only:
        stmt = stmt.where(Bill.due_date < utc_today())
    return await paginate(db, stmt.order_by(Bill.due_date.asc()), page, page_size)


async def list_transactions(
    db: AsyncSession,
    filters: Optional[TransactionFilters] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Payment], int]:
    filters = filters or TransactionFilters()
    stmt = select(Payment)
    if filters.status:
        stmt = stmt.where(Payment.status == filters.status)
    if filters.payment_method:
        stmt = stmt.where(Payment.payment_method == filters.payment_method)
    if filters.date_from:
        stmt = stmt.where(Payment.created_at >= filters.date_from)
    if filters.date_to:
        stmt = stmt.where(Payment.created_at <= filters.date_to)
    if filters.search:
        term = f"%{escape_like(filters.search.strip())}%"
        stmt = stmt.where(or_(
            Payment.transaction_id.ilike(term, escape="\\"),
            Payment.receipt_number.ilike(term, escape="\\"),
        ))
    return await paginate(db, stmt.order_by(Payment.created_at.desc()), page, page_size)


async def get_revenue_analytics(db: AsyncSession, days: int = 30) -> Dict[str, Any]:
    """Completed-payment revenue over the last ``days`` days."""
    since = utcnow() - timedelta(days=days)
    rows = (await db.execute(
        select(Payment.amount_paid, Payment.late_fee_paid, Payment.payment_method, Payment.created_at)
        .where(Payment.status == PaymentStatus.COMPLETED, Payment.created_at >= since)
    )).all()

    if not rows:
        return {
            "total_revenue": 0.0,
            "transaction_count": 0,
            "average_payment": 0.0,
            "daily_trend": [],
            "by_method": {},
            "late_fees_collected": 0.0,
        }

    df = pd.DataFrame(rows, columns=["amount", "late_fee", "method", "created_at"])
    df["method"] = df["method"].map(lambda m: PaymentMethod(m).value)
    df["day"] = pd.to_datetime(df["created_at"]).dt.strftime("%Y-%m-%d")

    daily = df.groupby("day").agg(revenue=("amount", "sum"), payments=("amount", "size")).reset_index()
    by_method = df.groupby("method")["amount"].sum().round(2)

    return {
        "total_revenue": round(float(df["amount"].sum()), 2),
        "transaction_count": int(len(df)),
        "average_payment": round(float(df["amount"].mean()), 2),
        "daily_trend": [
            {"date": r.day, "revenue": round(float(r.revenue), 2), "count": int(r.payments)}
            for r in daily.itertuples(index=False)
        ],
        "by_method": {k: float(v) for k, v in by_method.items()},
        "late_fees_collected": round(float(df["late_fee"].sum()), 2),
    }


async def sweep_overdue_bills(db: AsyncSession) -> int:
    """Flag pending bills whose due date has passed. Returns the number flagged."""
    result = await db.execute(
        update(Bill)
        .where(
            Bill.status == BillStatus.PENDING,
            Bill.due_date < utc_today(),
            Bill.is_overdue.is_(False),
        )
        .values(is_overdue=True, updated_at=utcnow())
    )
    flagged = result.rowcount or 0
    logger.info(f"Overdue sweep flagged {flagged} bills")
    return flagged
