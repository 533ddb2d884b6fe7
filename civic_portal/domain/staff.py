"""Schemas for staff, supervisors, workload and tasks."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from civic_portal.models import AvailabilityStatus, ComplaintPriority, SupervisorLevel, TaskStatus


class StaffProfileCreate(BaseModel):
    user_id: str
    department_id: Optional[str] = None
    ward_id: Optional[str] = None
    staff_role: Optional[str] = None
    max_concurrent_assignments: int = Field(default=10, ge=1, le=100)


class StaffProfileUpdate(BaseModel):
    department_id: Optional[str] = None
    ward_id: Optional[str] = None
    staff_role: Optional[str] = None
    max_concurrent_assignments: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None


class StaffProfileOut(BaseModel):
    id: str
    user_id: str
    staff_code: str
    department_id: Optional[str] = None
    ward_id: Optional[str] = None
    staff_role: Optional[str] = None
    availability_status: AvailabilityStatus
    current_workload: int
    max_concurrent_assignments: Optional[int] = None
    performance_rating: Optional[float] = None
    is_active: bool

    class Config:
        from_attributes = True


class WorkloadInfo(BaseModel):
    current: int
    capacity: int
    percentage: int
    available_slots: int
    is_overloaded: bool
    color: str


class StaffWithWorkload(BaseModel):
    profile: StaffProfileOut
    full_name: str
    email: str
    workload: WorkloadInfo


class AvailabilityUpdate(BaseModel):
    availability_status: AvailabilityStatus


class SupervisorProfileCreate(BaseModel):
    user_id: str
    supervisor_level: SupervisorLevel = SupervisorLevel.WARD
    assigned_wards: List[str] = []
    assigned_departments: List[str] = []
    can_assign_staff: bool = True
    can_escalate: bool = True
    can_close_complaints: bool = True
    can_create_tasks: bool = True
    can_generate_reports: bool = False


class SupervisorProfileOut(SupervisorProfileCreate):
    id: str

    class Config:
        from_attributes = True


class SuggestedStaff(BaseModel):
    user_id: str
    staff_code: Optional[str] = None
    ward_id: Optional[str] = None
    department_id: Optional[str] = None
    capacity_percentage: int
    available_slots: int
    ward_match: bool
    recommendation_rank: int


class RebalanceMove(BaseModel):
    assignment_id: str
    type: str = "complaint"
    from_staff: str
    to_staff: str


class RebalanceRequest(BaseModel):
    moves: List[RebalanceMove] = Field(min_length=1)


class SupervisorDashboard(BaseModel):
    total_complaints: int
    by_status: Dict[str, int]
    unassigned: int
    overdue: int
    sla_compliance: int
    average_resolution_hours: float
    staff_count: int
    overloaded_staff: int


class StaffPerformance(BaseModel):
    assigned_total: int
    active: int
    resolved: int
    resolution_rate: float
    average_resolution_hours: float
    sla_compliance: int
    average_rating: Optional[float] = None


class TaskCreate(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    description: str = Field(min_length=10, max_length=5000)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    assigned_to: Optional[str] = None
    complaint_id: Optional[str] = None
    ward_id: Optional[str] = None
    department_id: Optional[str] = None
    due_date: Optional[datetime] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskOut(BaseModel):
    id: str
    title: str
    description: str
    priority: ComplaintPriority
    status: TaskStatus
    assigned_to: Optional[str] = None
    created_by: str
    complaint_id: Optional[str] = None
    ward_id: Optional[str] = None
    department_id: Optional[str] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TaskStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    overdue: int
