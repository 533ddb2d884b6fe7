from sqlalchemy import Column, String, Boolean, Date, DateTime, Float, Text, ForeignKey
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class BillType(str, enum.Enum):
    PROPERTY_TAX = "property_tax"
    WATER = "water"
    ELECTRICITY = "electricity"
    WASTE = "waste"
    BUSINESS_LICENSE = "business_license"
    OTHER = "other"


class BillStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    ESEWA = "esewa"
    KHALTI = "khalti"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"
    CASH = "cash"


class PaymentStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Bill(Base):
    """Amount owed by a citizen (tax, utility, licence fee)"""
    __tablename__ = "bills"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    bill_number = Column(String(32), unique=True, index=True, nullable=False)
    citizen_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=True)
    bill_type = Column(enum_type(BillType), default=BillType.OTHER, nullable=False)
    description = Column(Text, nullable=True)

    base_amount = Column(Float, nullable=False)
    tax_amount = Column(Float, default=0.0, nullable=False)
    total_amount = Column(Float, nullable=False)
    late_fee_amount = Column(Float, default=0.0, nullable=False)

    due_date = Column(Date, nullable=False, index=True)
    status = Column(enum_type(BillStatus), default=BillStatus.PENDING, nullable=False, index=True)
    is_overdue = Column(Boolean, default=False, nullable=False)
    paid_date = Column(DateTime, nullable=True)

    created_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    bill_id = Column(GUID, ForeignKey("bills.id"), nullable=False, index=True)
    citizen_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    amount_paid = Column(Float, nullable=False)
    late_fee_paid = Column(Float, default=0.0, nullable=False)
    payment_method = Column(enum_type(PaymentMethod), nullable=False)
    status = Column(enum_type(PaymentStatus), default=PaymentStatus.COMPLETED, nullable=False)
    transaction_id = Column(String(64), unique=True, index=True, nullable=False)
    receipt_number = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
