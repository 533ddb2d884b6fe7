"""Schemas for bills and payments."""
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from civic_portal.models import BillStatus, BillType, PaymentMethod, PaymentStatus


class BillCreate(BaseModel):
    citizen_id: str
    bill_type: BillType
    department_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    base_amount: float = Field(gt=0)
    tax_amount: float = Field(default=0.0, ge=0)
    due_date: date


class BillOut(BaseModel):
    id: str
    bill_number: str
    citizen_id: str
    department_id: Optional[str] = None
    bill_type: BillType
    description: Optional[str] = None
    base_amount: float
    tax_amount: float
    total_amount: float
    late_fee_amount: float
    due_date: date
    status: BillStatus
    is_overdue: bool
    paid_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BillDetail(BaseModel):
    bill: BillOut
    late_fee: float
    amount_due: float
    days_overdue: int
    currency: str


class PaymentRequest(BaseModel):
    bill_id: str
    amount: float = Field(gt=0)
    payment_method: PaymentMethod


class PaymentOut(BaseModel):
    id: str
    bill_id: str
    citizen_id: str
    amount_paid: float
    late_fee_paid: float
    payment_method: PaymentMethod
    status: PaymentStatus
    transaction_id: str
    receipt_number: str
    created_at: datetime

    class Config:
        from_attributes = True


class Receipt(BaseModel):
    payment: PaymentOut
    bill: BillOut
    citizen_name: str
    currency: str


class BillStats(BaseModel):
    total_bills: int
    pending: int
    overdue: int
    total_due: float
    paid_this_month: float


class RevenueAnalytics(BaseModel):
    total_revenue: float
    transaction_count: int
    average_payment: float
    daily_trend: List[Dict[str, object]]
    by_method: Dict[str, float]
    late_fees_collected: float


class TransactionFilters(BaseModel):
    status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be before date_to")
        return self
