from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Text, ForeignKey, UniqueConstraint
import enum

from civic_portal.core.database import Base
from civic_portal.core.types import GUID, enum_type, generate_uuid
from civic_portal.utils.time import utcnow


class ProposalStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED_FOR_VOTING = "approved_for_voting"
    SELECTED = "selected"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProposalCategory(str, enum.Enum):
    INFRASTRUCTURE = "infrastructure"
    EDUCATION = "education"
    HEALTH = "health"
    ENVIRONMENT = "environment"
    PARKS_RECREATION = "parks_recreation"
    CULTURE = "culture"
    SAFETY = "safety"
    OTHER = "other"


class BudgetCycle(Base):
    """Participatory budgeting round"""
    __tablename__ = "budget_cycles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    total_budget_amount = Column(Float, nullable=False)
    min_project_cost = Column(Float, nullable=True)
    max_project_cost = Column(Float, nullable=True)

    submission_start_date = Column(DateTime, nullable=False)
    submission_end_date = Column(DateTime, nullable=False)
    voting_start_date = Column(DateTime, nullable=False)
    voting_end_date = Column(DateTime, nullable=False)
    max_votes_per_user = Column(Integer, default=5, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    finalized_at = Column(DateTime, nullable=True)
    concluding_message = Column(Text, nullable=True)

    created_by = Column(GUID, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class BudgetProposal(Base):
    __tablename__ = "budget_proposals"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    cycle_id = Column(GUID, ForeignKey("budget_cycles.id"), nullable=False, index=True)
    author_id = Column(GUID, ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(enum_type(ProposalCategory), default=ProposalCategory.OTHER, nullable=False)
    ward_id = Column(GUID, ForeignKey("wards.id"), nullable=True)
    department_id = Column(GUID, ForeignKey("departments.id"), nullable=True)
    address_text = Column(String(500), nullable=True)

    estimated_cost = Column(Float, nullable=False)
    technical_cost = Column(Float, nullable=True)  # set by the engineering review
    status = Column(enum_type(ProposalStatus), default=ProposalStatus.SUBMITTED, nullable=False, index=True)
    vote_count = Column(Integer, default=0, nullable=False)
    admin_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def effective_cost(self) -> float:
        return self.technical_cost if self.technical_cost is not None else self.estimated_cost


class BudgetVote(Base):
    __tablename__ = "budget_votes"
    __table_args__ = (UniqueConstraint("proposal_id", "voter_id", name="uq_budget_vote"),)

    id = Column(GUID, primary_key=True, default=generate_uuid)
    cycle_id = Column(GUID, ForeignKey("budget_cycles.id"), nullable=False, index=True)
    proposal_id = Column(GUID, ForeignKey("budget_proposals.id"), nullable=False)
    voter_id = Column(GUID, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
