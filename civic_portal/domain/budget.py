"""Schemas for participatory budgeting."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from civic_portal.models import ProposalCategory, ProposalStatus


class CycleCreate(BaseModel):
    title: str = Field(min_length=5, max_length=255)
    description: Optional[str] = None
    total_budget_amount: float = Field(gt=0)
    min_project_cost: Optional[float] = Field(default=None, ge=0)
    max_project_cost: Optional[float] = Field(default=None, gt=0)
    submission_start_date: datetime
    submission_end_date: datetime
    voting_start_date: datetime
    voting_end_date: datetime
    max_votes_per_user: int = Field(default=5, ge=1, le=50)
    is_active: bool = True

    @model_validator(mode="after")
    def check_windows(self):
        if self.submission_end_date <= self.submission_start_date:
            raise ValueError("submission_end_date must be after submission_start_date")
        if self.voting_start_date < self.submission_start_date:
            raise ValueError("Voting cannot start before submissions open")
        if self.voting_end_date <= self.voting_start_date:
            raise ValueError("voting_end_date must be after voting_start_date")
        if (self.min_project_cost is not None and self.max_project_cost is not None
                and self.min_project_cost > self.max_project_cost):
            raise ValueError("min_project_cost cannot exceed max_project_cost")
        return self


class CycleUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=255)
    description: Optional[str] = None
    total_budget_amount: Optional[float] = Field(default=None, gt=0)
    min_project_cost: Optional[float] = Field(default=None, ge=0)
    max_project_cost: Optional[float] = Field(default=None, gt=0)
    submission_end_date: Optional[datetime] = None
    voting_start_date: Optional[datetime] = None
    voting_end_date: Optional[datetime] = None
    max_votes_per_user: Optional[int] = Field(default=None, ge=1, le=50)
    is_active: Optional[bool] = None


class CycleOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    total_budget_amount: float
    min_project_cost: Optional[float] = None
    max_project_cost: Optional[float] = None
    submission_start_date: datetime
    submission_end_date: datetime
    voting_start_date: datetime
    voting_end_date: datetime
    max_votes_per_user: int
    is_active: bool
    finalized_at: Optional[datetime] = None
    concluding_message: Optional[str] = None

    class Config:
        from_attributes = True


class ProposalCreate(BaseModel):
    title: str = Field(min_length=10, max_length=255)
    description: str = Field(min_length=50, max_length=5000)
    category: ProposalCategory = ProposalCategory.OTHER
    ward_id: Optional[str] = None
    department_id: Optional[str] = None
    address_text: Optional[str] = Field(default=None, max_length=500)
    estimated_cost: float = Field(gt=0)


class ProposalReview(BaseModel):
    status: ProposalStatus
    admin_notes: Optional[str] = Field(default=None, max_length=2000)
    technical_cost: Optional[float] = Field(default=None, gt=0)


class ProposalOut(BaseModel):
    id: str
    cycle_id: str
    author_id: str
    title: str
    description: str
    category: ProposalCategory
    ward_id: Optional[str] = None
    department_id: Optional[str] = None
    address_text: Optional[str] = None
    estimated_cost: float
    technical_cost: Optional[float] = None
    status: ProposalStatus
    vote_count: int
    admin_notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VoteResult(BaseModel):
    success: bool
    message: str
    remaining_votes: int


class SimulationResult(BaseModel):
    selected: List[ProposalOut]
    total_cost: float
    remaining_budget: float
    utilization_percentage: float
    budget: float


class FinalizeRequest(BaseModel):
    proposal_ids: List[str] = Field(min_length=1)
    concluding_message: Optional[str] = Field(default=None, max_length=2000)


class BudgetAnalytics(BaseModel):
    total_votes: int
    total_proposals: int
    unique_voters: int
    votes_by_ward: Dict[str, int]
    votes_by_category: Dict[str, int]
