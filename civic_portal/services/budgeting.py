"""Participatory budgeting: cycles, proposals, voting and winner selection."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import BusinessRuleError, ConflictError, ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.domain.budget import CycleCreate, CycleUpdate, ProposalCreate, ProposalReview
from civic_portal.models import (
    BudgetCycle,
    BudgetProposal,
    BudgetVote,
    NotificationType,
    ProposalStatus,
    User,
    Ward,
)
from civic_portal.services.common import paginate
from civic_portal.services.notifications import notify
from civic_portal.utils.text import sanitize_text
from civic_portal.utils.time import to_naive_utc, utcnow

logger = get_logger(__name__)

UNASSIGNED_WARD_LABEL = "City-Wide / Unassigned"


def proposal_cost(proposal: Any) -> float:
    """Technical cost once assessed, otherwise the citizen's estimate."""
    technical = getattr(proposal, "technical_cost", None)
    return float(technical if technical is not None else proposal.estimated_cost)


def simulate_winners(proposals: Sequence[Any], budget: float) -> Dict[str, Any]:
    """Greedy selection by votes under a budget cap.

    Proposals are taken in descending vote order and accepted while the
    running total stays within ``budget``; a proposal that does not fit is
    skipped and later, cheaper ones may still be accepted.
    """
    ranked = sorted(proposals, key=lambda p: p.vote_count or 0, reverse=True)

    selected, spend = [], 0.0
    for proposal in ranked:
        cost = proposal_cost(proposal)
        if spend + cost <= budget:
            selected.append(proposal)
            spend += cost

    return {
        "selected": selected,
        "total_cost": round(spend, 2),
        "remaining_budget": round(budget - spend, 2),
        "utilization_percentage": round(spend / budget * 100, 2) if budget > 0 else 0.0,
        "budget": budget,
    }


# Cycles

async def get_cycle(db: AsyncSession, cycle_id: str) -> BudgetCycle:
    cycle = await db.get(BudgetCycle, cycle_id)
    if cycle is None:
        raise ResourceNotFoundError("Budget cycle", cycle_id)
    return cycle


async def list_active_cycles(db: AsyncSession) -> List[BudgetCycle]:
    result = await db.execute(
        select(BudgetCycle)
        .where(BudgetCycle.is_active.is_(True))
        .order_by(BudgetCycle.voting_end_date.desc())
    )
    return list(result.scalars().all())


async def list_cycles(db: AsyncSession, page: int = 1, page_size: int = 20) -> Tuple[List[BudgetCycle], int]:
    stmt = select(BudgetCycle).order_by(BudgetCycle.created_at.desc())
    return await paginate(db, stmt, page, page_size)


async def create_cycle(db: AsyncSession, actor: User, data: CycleCreate) -> BudgetCycle:
    values = data.model_dump()
    for key in ("submission_start_date", "submission_end_date", "voting_start_date", "voting_end_date"):
        values[key] = to_naive_utc(values[key])
    cycle = BudgetCycle(**values, created_by=actor.id)
    db.add(cycle)
    await db.flush()
    logger.info(f"Budget cycle created: {cycle.title}", extra={"user_id": actor.id, "cycle_id": cycle.id})
    return cycle


async def update_cycle(db: AsyncSession, actor: User, cycle_id: str, data: CycleUpdate) -> BudgetCycle:
    cycle = await get_cycle(db, cycle_id)
    if cycle.finalized_at:
        raise BusinessRuleError("Finalized cycles cannot be edited", code="CYCLE_FINALIZED")
    for field, value in data.model_dump(exclude_unset=True).items():
        if isinstance(value, datetime):
            value = to_naive_utc(value)
        setattr(cycle, field, value)

    if cycle.voting_start_date < cycle.submission_start_date:
        raise BusinessRuleError("Voting cannot start before submissions open", code="INVALID_WINDOW")
    if cycle.voting_end_date <= cycle.voting_start_date:
        raise BusinessRuleError("voting_end_date must be after voting_start_date", code="INVALID_WINDOW")
    cycle.updated_at = utcnow()
    await db.flush()
    return cycle


def _in_window(start: datetime, end: datetime, now: datetime) -> bool:
    return start <= now <= end


# Proposals

async def get_proposal(db: AsyncSession, proposal_id: str) -> BudgetProposal:
    proposal = await db.get(BudgetProposal, proposal_id)
    if proposal is None:
        raise ResourceNotFoundError("Proposal", proposal_id)
    return proposal


async def submit_proposal(
    db: AsyncSession, author: User, cycle_id: str, data: ProposalCreate
) -> BudgetProposal:
    cycle = await get_cycle(db, cycle_id)
    now = utcnow()
    if not cycle.is_active or not _in_window(cycle.submission_start_date, cycle.submission_end_date, now):
        raise BusinessRuleError("Proposal submission is closed for this cycle", code="SUBMISSION_CLOSED")
    if cycle.min_project_cost is not None and data.estimated_cost < cycle.min_project_cost:
        raise BusinessRuleError(
            f"Estimated cost must be at least {cycle.min_project_cost:,.0f}", code="COST_OUT_OF_RANGE"
        )
    if cycle.max_project_cost is not None and data.estimated_cost > cycle.max_project_cost:
        raise BusinessRuleError(
            f"Estimated cost cannot exceed {cycle.max_project_cost:,.0f}", code="COST_OUT_OF_RANGE"
        )
    if data.ward_id and await db.get(Ward, data.ward_id) is None:
        raise ResourceNotFoundError("Ward", data.ward_id)

    proposal = BudgetProposal(
        cycle_id=cycle.id,
        author_id=author.id,
        title=sanitize_text(data.title),
        description=sanitize_text(data.description),
        category=data.category,
        ward_id=data.ward_id,
        department_id=data.department_id,
        address_text=sanitize_text(data.address_text) or None,
        estimated_cost=data.estimated_cost,
        status=ProposalStatus.SUBMITTED,
    )
    db.add(proposal)
    await db.flush()
    logger.info(f"Proposal submitted: {proposal.title}", extra={"user_id": author.id, "cycle_id": cycle.id})
    return proposal


async def list_proposals(
    db: AsyncSession,
    cycle_id: str,
    status: Optional[ProposalStatus] = ProposalStatus.APPROVED_FOR_VOTING,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[BudgetProposal], int]:
    stmt = select(BudgetProposal).where(BudgetProposal.cycle_id == cycle_id)
    if status is not None:
        stmt = stmt.where(BudgetProposal.status == status)
    stmt = stmt.order_by(BudgetProposal.vote_count.desc(), BudgetProposal.created_at.asc())
    return await paginate(db, stmt, page, page_size)


async def review_proposal(
    db: AsyncSession, actor: User, proposal_id: str, data: ProposalReview
) -> BudgetProposal:
    proposal = await get_proposal(db, proposal_id)
    proposal.status = data.status
    if data.admin_notes is not None:
        proposal.admin_notes = sanitize_text(data.admin_notes)
    if data.technical_cost is not None:
        proposal.technical_cost = data.technical_cost
    proposal.updated_at = utcnow()

    await notify(
        db, proposal.author_id, NotificationType.SYSTEM_ANNOUNCEMENT,
        title="Proposal reviewed",
        message=f"Your proposal '{proposal.title}' is now {data.status.value.replace('_', ' ')}.",
    )
    await db.flush()
    logger.info(
        f"Proposal {proposal.id} -> {data.status.value}",
        extra={"user_id": actor.id, "cycle_id": proposal.cycle_id},
    )
    return proposal


# Voting

async def _votes_used(db: AsyncSession, cycle_id: str, voter_id: str) -> int:
    return await db.scalar(
        select(func.count(BudgetVote.id)).where(
            BudgetVote.cycle_id == cycle_id, BudgetVote.voter_id == voter_id
        )
    ) or 0


async def cast_vote(db: AsyncSession, voter: User, proposal_id: str) -> Dict[str, Any]:
    """Vote for an approved proposal during the cycle's voting window.

    One vote per proposal per citizen and at most ``max_votes_per_user``
    votes per cycle.
    """
    proposal = await get_proposal(db, proposal_id)
    cycle = await get_cycle(db, proposal.cycle_id)

    now = utcnow()
    if not cycle.is_active or not _in_window(cycle.voting_start_date, cycle.voting_end_date, now):
        raise BusinessRuleError("Voting is not open for this cycle", code="VOTING_CLOSED")
    if ProposalStatus(proposal.status) != ProposalStatus.APPROVED_FOR_VOTING:
        raise BusinessRuleError("This proposal is not open for voting", code="PROPOSAL_NOT_VOTABLE")

    already = await db.scalar(
        select(BudgetVote.id).where(BudgetVote.proposal_id == proposal.id, BudgetVote.voter_id == voter.id)
    )
    if already:
        raise ConflictError("You have already voted for this proposal", code="ALREADY_VOTED")

    used = await _votes_used(db, cycle.id, voter.id)
    if used >= cycle.max_votes_per_user:
        raise BusinessRuleError(
            f"You have used all {cycle.max_votes_per_user} votes for this cycle", code="VOTE_LIMIT_REACHED"
        )

    db.add(BudgetVote(cycle_id=cycle.id, proposal_id=proposal.id, voter_id=voter.id))
    proposal.vote_count = (proposal.vote_count or 0) + 1
    await db.flush()

    remaining = cycle.max_votes_per_user - (used + 1)
    logger.info("Vote cast", extra={"user_id": voter.id, "cycle_id": cycle.id})
    return {"success": True, "message": "Vote recorded", "remaining_votes": remaining}


async def get_user_votes(db: AsyncSession, voter: User, cycle_id: str) -> Dict[str, Any]:
    cycle = await get_cycle(db, cycle_id)
    proposal_ids = (await db.execute(
        select(BudgetVote.proposal_id).where(BudgetVote.cycle_id == cycle_id, BudgetVote.voter_id == voter.id)
    )).scalars().all()
    return {
        "proposal_ids": list(proposal_ids),
        "votes_used": len(proposal_ids),
        "remaining_votes": max(0, cycle.max_votes_per_user - len(proposal_ids)),
    }


# Analytics and winners

async def get_cycle_analytics(db: AsyncSession, cycle_id: str) -> Dict[str, Any]:
    await get_cycle(db, cycle_id)

    total_votes = await db.scalar(select(func.count(BudgetVote.id)).where(BudgetVote.cycle_id == cycle_id)) or 0
    total_proposals = await db.scalar(
        select(func.count(BudgetProposal.id)).where(BudgetProposal.cycle_id == cycle_id)
    ) or 0
    unique_voters = await db.scalar(
        select(func.count(func.distinct(BudgetVote.voter_id))).where(BudgetVote.cycle_id == cycle_id)
    ) or 0

    ward_rows = (await db.execute(
        select(Ward.ward_number, func.count(BudgetVote.id))
        .select_from(BudgetVote)
        .join(BudgetProposal, BudgetProposal.id == BudgetVote.proposal_id)
        .outerjoin(Ward, Ward.id == BudgetProposal.ward_id)
        .where(BudgetVote.cycle_id == cycle_id)
        .group_by(Ward.ward_number)
    )).all()
    votes_by_ward = {
        (f"Ward {number}" if number is not None else UNASSIGNED_WARD_LABEL): count
        for number, count in ward_rows
    }

    category_rows = (await db.execute(
        select(BudgetProposal.category, func.count(BudgetVote.id))
        .select_from(BudgetVote)
        .join(BudgetProposal, BudgetProposal.id == BudgetVote.proposal_id)
        .where(BudgetVote.cycle_id == cycle_id)
        .group_by(BudgetProposal.category)
    )).all()
    votes_by_category = {getattr(category, "value", category): count for category, count in category_rows}

    return {
        "total_votes": total_votes,
        "total_proposals": total_proposals,
        "unique_voters": unique_voters,
        "votes_by_ward": votes_by_ward,
        "votes_by_category": votes_by_category,
    }


async def simulate_cycle_winners(
    db: AsyncSession, cycle_id: str, budget_override: Optional[float] = None
) -> Dict[str, Any]:
    cycle = await get_cycle(db, cycle_id)
    budget = budget_override if budget_override is not None else cycle.total_budget_amount
    if budget <= 0:
        raise BusinessRuleError("Budget must be greater than zero", code="INVALID_BUDGET")
    proposals = (await db.execute(
        select(BudgetProposal).where(
            BudgetProposal.cycle_id == cycle_id,
            BudgetProposal.status == ProposalStatus.APPROVED_FOR_VOTING,
        )
        .order_by(BudgetProposal.vote_count.desc(), BudgetProposal.created_at.asc())
    )).scalars().all()
    return simulate_winners(proposals, budget)


async def finalize_winners(
    db: AsyncSession,
    actor: User,
    cycle_id: str,
    proposal_ids: Sequence[str],
    concluding_message: Optional[str] = None,
) -> BudgetCycle:
    """Mark the chosen proposals selected and close the cycle."""
    cycle = await get_cycle(db, cycle_id)
    if cycle.finalized_at:
        raise BusinessRuleError("Cycle has already been finalized", code="CYCLE_FINALIZED")

    proposals = (await db.execute(
        select(BudgetProposal).where(
            BudgetProposal.cycle_id == cycle_id, BudgetProposal.id.in_(list(proposal_ids))
        )
    )).scalars().all()
    found = {p.id for p in proposals}
    missing = [pid for pid in proposal_ids if pid not in found]
    if missing:
        raise BusinessRuleError(
            "Some proposals do not belong to this cycle", code="UNKNOWN_PROPOSALS", details={"missing": missing}
        )

    total = sum(proposal_cost(p) for p in proposals)
    if total > cycle.total_budget_amount:
        raise BusinessRuleError(
            "Selected proposals exceed the cycle budget",
            code="BUDGET_EXCEEDED",
            details={"total_cost": total, "budget": cycle.total_budget_amount},
        )

    now = utcnow()
    for proposal in proposals:
        proposal.status = ProposalStatus.SELECTED
        proposal.updated_at = now
        await notify(
            db, proposal.author_id, NotificationType.SYSTEM_ANNOUNCEMENT,
            title="Proposal selected",
            message=f"Your proposal '{proposal.title}' has been selected for funding.",
        )

    cycle.finalized_at = now
    cycle.concluding_message = sanitize_text(concluding_message) or None
    cycle.is_active = False
    cycle.updated_at = now
    await db.flush()

    logger.info(
        f"Cycle finalized with {len(proposals)} winners",
        extra={"user_id": actor.id, "cycle_id": cycle.id},
    )
    return cycle
