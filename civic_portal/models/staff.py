from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, JSON, ForeignKey
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFF_DUTY = "off_duty"
    ON_LEAVE = "on_leave"


class SupervisorLevel(str, enum.Enum):
    WARD = "ward"
    DEPARTMENT = "department"
    COMBINED = "combined"
    SENIOR = "senior"


class StaffProfile(Base):
    """Field or office staff member who works complaints"""
    __tablename__ = "staff_profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id"), unique=True, nullable=False)
    staff_code = Column(String(32), unique=True, nullable=False)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=True, index=True)
    ward_id = Column(GUID, ForeignKey("wards.id"), nullable=True, index=True)
    staff_role = Column(String(64), nullable=True)  # e.g. field_engineer, clerk

    availability_status = Column(
        enum_type(AvailabilityStatus), default=AvailabilityStatus.AVAILABLE, nullable=False
    )
    current_workload = Column(Integer, default=0, nullable=False)
    max_concurrent_assignments = Column(Integer, default=10, nullable=True)
    performance_rating = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SupervisorProfile(Base):
    """Supervisor jurisdiction and permission flags"""
    __tablename__ = "supervisor_profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id"), unique=True, nullable=False)
    supervisor_level = Column(enum_type(SupervisorLevel), default=SupervisorLevel.WARD, nullable=False)

    # Lists of ward / department ids
    assigned_wards = Column(JSON, default=list, nullable=False)
    assigned_departments = Column(JSON, default=list, nullable=False)

    can_assign_staff = Column(Boolean, default=True, nullable=False)
    can_escalate = Column(Boolean, default=True, nullable=False)
    can_close_complaints = Column(Boolean, default=True, nullable=False)
    can_create_tasks = Column(Boolean, default=True, nullable=False)
    can_generate_reports = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
