from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, ForeignKey

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.models.complaint import ComplaintPriority
from civic_portal.utils.time import utcnow


class Ward(Base):
    __tablename__ = "wards"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    ward_number = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    contact_phone = Column(String(20), nullable=True)
    contact_email = Column(String(255), nullable=True)
    office_address = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Department(Base):
    __tablename__ = "departments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    code = Column(String(32), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ComplaintCategory(Base):
    __tablename__ = "complaint_categories"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    default_department_id = Column(GUID, ForeignKey("departments.id"), nullable=True)
    default_sla_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SlaPolicy(Base):
    """Admin override of resolution hours for one priority"""
    __tablename__ = "sla_policies"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    priority = Column(enum_type(ComplaintPriority), unique=True, nullable=False)
    resolution_hours = Column(Integer, nullable=False)
    updated_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
