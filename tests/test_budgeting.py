"""Tests for participatory budgeting: selection, proposals and voting."""
from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi import status

from civic_portal.models import BudgetCycle, BudgetProposal, ProposalStatus
from civic_portal.services.budgeting import proposal_cost, simulate_winners
from civic_portal.utils.time import utcnow

API = "/api/v1"

PROPOSAL_DESCRIPTION = (
    "Build a small park with benches, shade trees and a children's play area "
    "on the empty plot behind the ward office."
)


def proposal(pid, votes, cost, technical=None):
    return SimpleNamespace(id=pid, vote_count=votes, estimated_cost=cost, technical_cost=technical)


@pytest.fixture
async def voting_cycle(db_session) -> BudgetCycle:
    """Cycle whose submission and voting windows are both open."""
    now = utcnow()
    cycle = BudgetCycle(
        title="Ward budget 2025",
        total_budget_amount=1_000_000.0,
        min_project_cost=10_000.0,
        max_project_cost=500_000.0,
        submission_start_date=now - timedelta(days=10),
        submission_end_date=now + timedelta(days=10),
        voting_start_date=now - timedelta(days=1),
        voting_end_date=now + timedelta(days=20),
        max_votes_per_user=2,
    )
    db_session.add(cycle)
    await db_session.commit()
    return cycle


@pytest.fixture
async def approved_proposals(db_session, voting_cycle, other_citizen):
    proposals = [
        BudgetProposal(
            cycle_id=voting_cycle.id,
            author_id=other_citizen.id,
            title=f"Community project number {i}",
            description=PROPOSAL_DESCRIPTION,
            estimated_cost=100_000.0 * (i + 1),
            status=ProposalStatus.APPROVED_FOR_VOTING,
        )
        for i in range(3)
    ]
    db_session.add_all(proposals)
    await db_session.commit()
    return proposals


class TestWinnerSelection:
    """Test greedy selection under the budget cap."""

    def test_takes_most_voted_first(self):
        result = simulate_winners(
            [proposal("a", 10, 400), proposal("b", 30, 300), proposal("c", 20, 200)], budget=1000
        )

        assert [p.id for p in result["selected"]] == ["b", "c", "a"]
        assert result["total_cost"] == 900
        assert result["remaining_budget"] == 100
        assert result["utilization_percentage"] == 90.0

    def test_skips_what_does_not_fit(self):
        """Test an expensive proposal is skipped but cheaper ones still fit."""
        result = simulate_winners(
            [proposal("big", 50, 800), proposal("huge", 40, 600), proposal("small", 5, 150)], budget=1000
        )

        assert [p.id for p in result["selected"]] == ["big", "small"]
        assert result["total_cost"] == 950

    def test_technical_cost_wins_over_estimate(self):
        assert proposal_cost(proposal("a", 1, 500, technical=650)) == 650
        assert proposal_cost(proposal("b", 1, 500)) == 500

    def test_nothing_fits(self):
        result = simulate_winners([proposal("a", 3, 5000)], budget=1000)

        assert result["selected"] == []
        assert result["utilization_percentage"] == 0.0


class TestProposals:
    """Test proposal submission and review."""

    async def test_submit_proposal(self, client, citizen_headers, voting_cycle):
        response = await client.post(
            f"{API}/budget/cycles/{voting_cycle.id}/proposals",
            json={
                "title": "Park behind the ward office",
                "description": PROPOSAL_DESCRIPTION,
                "category": "parks_recreation",
                "estimated_cost": 250_000,
            },
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["status"] == "submitted"
        assert response.json()["vote_count"] == 0

    async def test_cost_outside_cycle_range(self, client, citizen_headers, voting_cycle):
        response = await client.post(
            f"{API}/budget/cycles/{voting_cycle.id}/proposals",
            json={
                "title": "New bridge over the river",
                "description": PROPOSAL_DESCRIPTION,
                "estimated_cost": 900_000,
            },
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "COST_OUT_OF_RANGE"

    async def test_invalid_cycle_windows(self, client, admin_headers):
        now = utcnow()
        response = await client.post(
            f"{API}/budget/cycles",
            json={
                "title": "Broken cycle",
                "total_budget_amount": 1000,
                "submission_start_date": now.isoformat(),
                "submission_end_date": (now + timedelta(days=5)).isoformat(),
                "voting_start_date": (now - timedelta(days=1)).isoformat(),
                "voting_end_date": (now + timedelta(days=9)).isoformat(),
            },
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_review_notifies_author(
        self, client, admin_headers, other_citizen, headers_for, approved_proposals
    ):
        response = await client.put(
            f"{API}/budget/proposals/{approved_proposals[0].id}/review",
            json={"status": "rejected", "admin_notes": "Land is not municipal property"},
            headers=admin_headers,
        )

        assert response.json()["status"] == "rejected"
        notifications = await client.get(f"{API}/notifications", headers=headers_for(other_citizen))
        assert notifications.json()["data"][0]["title"] == "Proposal reviewed"


class TestVoting:
    """Test vote casting rules."""

    async def test_vote_and_remaining(self, client, citizen_headers, approved_proposals):
        response = await client.post(
            f"{API}/budget/proposals/{approved_proposals[0].id}/vote", headers=citizen_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "message": "Vote recorded", "remaining_votes": 1}

        detail = await client.get(f"{API}/budget/proposals/{approved_proposals[0].id}", headers=citizen_headers)
        assert detail.json()["vote_count"] == 1

    async def test_double_vote(self, client, citizen_headers, approved_proposals):
        url = f"{API}/budget/proposals/{approved_proposals[0].id}/vote"
        await client.post(url, headers=citizen_headers)

        response = await client.post(url, headers=citizen_headers)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"]["code"] == "ALREADY_VOTED"

    async def test_vote_limit(self, client, citizen_headers, voting_cycle, approved_proposals):
        for p in approved_proposals[:2]:
            await client.post(f"{API}/budget/proposals/{p.id}/vote", headers=citizen_headers)

        response = await client.post(
            f"{API}/budget/proposals/{approved_proposals[2].id}/vote", headers=citizen_headers
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "VOTE_LIMIT_REACHED"

        mine = await client.get(f"{API}/budget/cycles/{voting_cycle.id}/my-votes", headers=citizen_headers)
        assert mine.json()["votes_used"] == 2
        assert mine.json()["remaining_votes"] == 0

    async def test_unapproved_proposal(self, client, citizen_headers, db_session, voting_cycle, other_citizen):
        pending = BudgetProposal(
            cycle_id=voting_cycle.id,
            author_id=other_citizen.id,
            title="Pending community project",
            description=PROPOSAL_DESCRIPTION,
            estimated_cost=50_000.0,
        )
        db_session.add(pending)
        await db_session.commit()

        response = await client.post(f"{API}/budget/proposals/{pending.id}/vote", headers=citizen_headers)
        assert response.json()["error"]["code"] == "PROPOSAL_NOT_VOTABLE"

    async def test_voting_closed(self, client, citizen_headers, db_session, voting_cycle, approved_proposals):
        voting_cycle.voting_end_date = utcnow() - timedelta(hours=1)
        await db_session.commit()

        response = await client.post(
            f"{API}/budget/proposals/{approved_proposals[0].id}/vote", headers=citizen_headers
        )
        assert response.json()["error"]["code"] == "VOTING_CLOSED"

    async def test_staff_cannot_vote(self, client, staff_headers, approved_proposals):
        response = await client.post(
            f"{API}/budget/proposals/{approved_proposals[0].id}/vote", headers=staff_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestResults:
    """Test simulation and finalization."""

    async def test_simulate_with_override(self, client, admin_headers, voting_cycle, approved_proposals):
        response = await client.get(
            f"{API}/budget/cycles/{voting_cycle.id}/simulate?budget_override=350000", headers=admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["budget"] == 350_000
        assert data["total_cost"] <= 350_000

    async def test_simulate_tie_goes_to_earlier_proposal(
        self, client, admin_headers, db_session, voting_cycle, other_citizen
    ):
        now = utcnow()
        later, earlier = (
            BudgetProposal(
                cycle_id=voting_cycle.id,
                author_id=other_citizen.id,
                title=title,
                description=PROPOSAL_DESCRIPTION,
                estimated_cost=300_000.0,
                vote_count=5,
                status=ProposalStatus.APPROVED_FOR_VOTING,
                created_at=created_at,
            )
            for title, created_at in (
                ("Streetlights on the ring road", now - timedelta(days=1)),
                ("Footpath along the canal", now - timedelta(days=3)),
            )
        )
        # Insertion order differs from submission order
        db_session.add(later)
        await db_session.commit()
        db_session.add(earlier)
        await db_session.commit()

        response = await client.get(
            f"{API}/budget/cycles/{voting_cycle.id}/simulate?budget_override=400000", headers=admin_headers
        )

        assert [p["id"] for p in response.json()["selected"]] == [earlier.id]

    async def test_finalize_over_budget(self, client, admin_headers, db_session, voting_cycle, approved_proposals):
        voting_cycle.total_budget_amount = 250_000.0
        await db_session.commit()

        response = await client.post(
            f"{API}/budget/cycles/{voting_cycle.id}/finalize",
            json={"proposal_ids": [p.id for p in approved_proposals]},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "BUDGET_EXCEEDED"

    async def test_finalize(self, client, admin_headers, voting_cycle, approved_proposals):
        response = await client.post(
            f"{API}/budget/cycles/{voting_cycle.id}/finalize",
            json={"proposal_ids": [approved_proposals[0].id], "concluding_message": "Thank you for voting"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["finalized_at"] is not None

        again = await client.post(
            f"{API}/budget/cycles/{voting_cycle.id}/finalize",
            json={"proposal_ids": [approved_proposals[0].id]},
            headers=admin_headers,
        )
        assert again.json()["error"]["code"] == "CYCLE_FINALIZED"
