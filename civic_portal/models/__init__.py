"""ORM models. Importing this package registers every table on ``Base.metadata``."""
from civic_portal.models.user import User, UserRole
from civic_portal.models.complaint import (
    Complaint,
    ComplaintAssignmentHistory,
    ComplaintAttachment,
    ComplaintComment,
    ComplaintFeedback,
    ComplaintPriority,
    ComplaintSource,
    ComplaintStatus,
    ComplaintStatusHistory,
    ComplaintUpvote,
    PRIORITY_RANK,
    TERMINAL_STATUSES,
)
from civic_portal.models.reference import ComplaintCategory, Department, SlaPolicy, Ward
from civic_portal.models.staff import AvailabilityStatus, StaffProfile, SupervisorLevel, SupervisorProfile
from civic_portal.models.billing import Bill, BillStatus, BillType, Payment, PaymentMethod, PaymentStatus
from civic_portal.models.notice import Notice, NoticeRead, NoticeType
from civic_portal.models.budget import (
    BudgetCycle,
    BudgetProposal,
    BudgetVote,
    ProposalCategory,
    ProposalStatus,
)
from civic_portal.models.notification import Notification, NotificationPriority, NotificationType
from civic_portal.models.task import Task, TaskStatus

__all__ = [
    "User", "UserRole",
    "Complaint", "ComplaintAssignmentHistory", "ComplaintAttachment", "ComplaintComment",
    "ComplaintFeedback", "ComplaintPriority", "ComplaintSource", "ComplaintStatus",
    "ComplaintStatusHistory", "ComplaintUpvote", "PRIORITY_RANK", "TERMINAL_STATUSES",
    "ComplaintCategory", "Department", "SlaPolicy", "Ward",
    "AvailabilityStatus", "StaffProfile", "SupervisorLevel", "SupervisorProfile",
    "Bill", "BillStatus", "BillType", "Payment", "PaymentMethod", "PaymentStatus",
    "Notice", "NoticeRead", "NoticeType",
    "BudgetCycle", "BudgetProposal", "BudgetVote", "ProposalCategory", "ProposalStatus",
    "Notification", "NotificationPriority", "NotificationType",
    "Task", "TaskStatus",
]
