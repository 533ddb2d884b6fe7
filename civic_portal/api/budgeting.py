from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.api.deps import Pagination, page_response, pagination
from civic_portal.core.auth import get_current_user, require_admin, require_citizen
from civic_portal.core.database import get_db
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.budget import (
    BudgetAnalytics,
    CycleCreate,
    CycleOut,
    CycleUpdate,
    FinalizeRequest,
    ProposalCreate,
    ProposalOut,
    ProposalReview,
    SimulationResult,
    VoteResult,
)
from civic_portal.domain.common import Page
from civic_portal.models import ProposalStatus, User
from civic_portal.services import budgeting

logger = get_logger(__name__)
router = APIRouter(prefix="/budget", tags=["participatory budgeting"])


# -----------------
# CYCLES
# -----------------

@router.get("/cycles", response_model=List[CycleOut])
async def list_active_cycles(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.list_active_cycles(db)


@router.get("/cycles/all", response_model=Page[CycleOut])
async def list_all_cycles(
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    items, total = await budgeting.list_cycles(db, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.post("/cycles", response_model=CycleOut, status_code=status.HTTP_201_CREATED)
async def create_cycle(
    req: CycleCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.create_cycle(db, current_user, req)


@router.get("/cycles/{cycle_id}", response_model=CycleOut)
async def get_cycle(
    cycle_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.get_cycle(db, cycle_id)


@router.put("/cycles/{cycle_id}", response_model=CycleOut)
async def update_cycle(
    cycle_id: str,
    req: CycleUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.update_cycle(db, current_user, cycle_id, req)


# -----------------
# PROPOSALS
# -----------------

@router.get("/cycles/{cycle_id}/proposals", response_model=Page[ProposalOut])
async def list_proposals(
    cycle_id: str,
    status_filter: Optional[ProposalStatus] = Query(ProposalStatus.APPROVED_FOR_VOTING, alias="status"),
    paging: Pagination = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Proposals in a cycle, most voted first."""
    items, total = await budgeting.list_proposals(db, cycle_id, status_filter, paging.page, paging.page_size)
    return page_response(items, total, paging)


@router.post("/cycles/{cycle_id}/proposals", response_model=ProposalOut, status_code=status.HTTP_201_CREATED)
async def submit_proposal(
    cycle_id: str,
    req: ProposalCreate,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """Submit a project idea while the cycle's submission window is open."""
    return await budgeting.submit_proposal(db, current_user, cycle_id, req)


@router.get("/proposals/{proposal_id}", response_model=ProposalOut)
async def get_proposal(
    proposal_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.get_proposal(db, proposal_id)


@router.put("/proposals/{proposal_id}/review", response_model=ProposalOut)
async def review_proposal(
    proposal_id: str,
    req: ProposalReview,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.review_proposal(db, current_user, proposal_id, req)


# -----------------
# VOTING
# -----------------

@router.post("/proposals/{proposal_id}/vote", response_model=VoteResult)
async def cast_vote(
    proposal_id: str,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    """One vote per proposal, up to the cycle's per-citizen limit."""
    with LogTimer(logger, "budget_vote"):
        return await budgeting.cast_vote(db, current_user, proposal_id)


@router.get("/cycles/{cycle_id}/my-votes")
async def my_votes(
    cycle_id: str,
    current_user: User = Depends(require_citizen),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.get_user_votes(db, current_user, cycle_id)


# -----------------
# RESULTS
# -----------------

@router.get("/cycles/{cycle_id}/analytics", response_model=BudgetAnalytics)
async def cycle_analytics(
    cycle_id: str,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.get_cycle_analytics(db, cycle_id)


@router.get("/cycles/{cycle_id}/simulate", response_model=SimulationResult)
async def simulate_winners(
    cycle_id: str,
    budget_override: Optional[float] = Query(None, gt=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Greedy selection by votes within the cycle budget (or an override)."""
    return await budgeting.simulate_cycle_winners(db, cycle_id, budget_override)


@router.post("/cycles/{cycle_id}/finalize", response_model=CycleOut)
async def finalize_winners(
    cycle_id: str,
    req: FinalizeRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await budgeting.finalize_winners(
        db, current_user, cycle_id, req.proposal_ids, req.concluding_message
    )
