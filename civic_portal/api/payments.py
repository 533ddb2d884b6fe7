from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import get_current_user, require_citizen
from civic_portal.core.database import get_db
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.billing import BillDetail, BillOut, BillStats, PaymentOut, PaymentRequest, Receipt
from civic_portal.domain.common import Page
from civic_portal.models import BillStatus, User
from civic_portal.services import payments as payment_service

logger = get_logger(__name__)
router = APIRouter(tags=["payments"])


# -----------------
# BILLS
# -----------------

@router.get("/bills", response_model=Page[BillOut])
async def list_my_bills(
    status_in: Optional[List[BillStatus]] = Query(None, alias="status"),
    overdue: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """The caller's bills, soonest due first."""
    items, total = await payment_service.list_bills(
        db, current_user, status_in, overdue, search, paging.page, paging.page_size
    )
    return page_response(items, total, paging)


@router.get("/bills/stats", response_model=BillStats)
async def my_bill_stats(
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_bill_stats(db, current_user)


@router.get("/bills/{bill_id}", response_model=BillDetail)
async def get_bill(
    bill_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Bill with the late fee and amount due as of today."""
    return await payment_service.get_bill_detail(db, current_user, bill_id)


# -----------------
# PAYMENTS
# -----------------

@router.post("/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def pay_bill(
    req: PaymentRequest,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """Pay a pending bill in full (total plus any late fee).

    Example:
        POST /payments
        {"bill_id": "...", "amount": 1540.0, "payment_method": "esewa"}
    """
    with LogTimer(logger, "payment_processing"):
        return await payment_service.process_payment(
            db, current_user, req.bill_id, req.amount, req.payment_method
        )


@router.get("/payments/history", response_model=Page[PaymentOut])
async def payment_history(
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    items, total = await payment_service.list_payment_history(db, current_user, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.get("/payments/receipts/{transaction_id}", response_model=Receipt)
async def get_receipt(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_receipt(db, current_user, transaction_id)
