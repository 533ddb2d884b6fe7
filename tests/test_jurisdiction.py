"""Tests for supervisor jurisdiction and permission checks."""
import pytest
from fastapi import status
from sqlalchemy import select

from civic_portal.core.exceptions import PermissionDeniedError
from civic_portal.models import Complaint, SupervisorLevel, SupervisorProfile, UserRole
from civic_portal.services.jurisdiction import (
    Jurisdiction,
    can_access,
    jurisdiction_from_profile,
    load_jurisdiction,
    require_access,
)

API = "/api/v1"


def ward_supervisor(**permissions):
    return Jurisdiction(
        user_id="sup-1",
        wards=["w1"],
        departments=["roads"],
        permissions={"assign_staff": True, "close_complaints": False, **permissions},
    )


class TestCoverage:
    """Test ward OR department coverage."""

    def test_ward_or_department(self):
        jurisdiction = ward_supervisor()

        assert jurisdiction.covers("w1", "water") is True
        assert jurisdiction.covers("w2", "roads") is True
        assert jurisdiction.covers("w2", "water") is False
        assert jurisdiction.covers(None, None) is False

    def test_senior_covers_everything(self):
        assert Jurisdiction(user_id="s", is_senior=True).covers("anywhere", None) is True

    def test_profile_flags(self):
        profile = SupervisorProfile(
            user_id="sup-1",
            supervisor_level=SupervisorLevel.DEPARTMENT,
            assigned_wards=[],
            assigned_departments=["roads"],
            can_assign_staff=True,
            can_escalate=False,
            can_close_complaints=True,
            can_create_tasks=False,
            can_generate_reports=False,
        )

        jurisdiction = jurisdiction_from_profile("sup-1", profile)

        assert jurisdiction.departments == ["roads"]
        assert jurisdiction.is_senior is False
        assert jurisdiction.can("close_complaints") is True
        assert jurisdiction.can("create_tasks") is False

    def test_missing_profile_covers_nothing(self):
        jurisdiction = jurisdiction_from_profile("sup-1", None)

        assert jurisdiction.covers("w1", "roads") is False
        assert jurisdiction.can("assign_staff") is False


class TestAccess:
    """Test permission AND coverage."""

    def test_permission_and_coverage_required(self):
        jurisdiction = ward_supervisor()

        assert can_access(jurisdiction, "assign_staff", "w1") is True
        assert can_access(jurisdiction, "close_complaints", "w1") is False
        assert can_access(jurisdiction, "assign_staff", "w9") is False

    def test_permission_only(self):
        """Test check_entity=False skips the coverage check."""
        assert can_access(ward_supervisor(), "assign_staff", check_entity=False) is True

    def test_missing_permission_named(self):
        with pytest.raises(PermissionDeniedError) as exc_info:
            require_access(ward_supervisor(), "close_complaints", "w1")

        assert exc_info.value.details == {"action": "close_complaints"}

    def test_outside_jurisdiction(self):
        with pytest.raises(PermissionDeniedError, match="Outside your jurisdiction"):
            require_access(ward_supervisor(), "assign_staff", "w9", "water")


class TestLoading:
    """Test loading jurisdiction for each role."""

    async def test_admin_is_unrestricted(self, db_session, admin):
        jurisdiction = await load_jurisdiction(db_session, admin)

        assert jurisdiction.is_senior is True
        assert jurisdiction.can("generate_reports") is True

    async def test_supervisor_from_profile(self, db_session, supervisor, ward):
        jurisdiction = await load_jurisdiction(db_session, supervisor)

        assert jurisdiction.wards == [ward.id]
        assert jurisdiction.can("assign_staff") is True
        assert jurisdiction.can("generate_reports") is True

    async def test_citizen_has_no_jurisdiction(self, db_session, citizen):
        jurisdiction = await load_jurisdiction(db_session, citizen)
        assert jurisdiction.covers(citizen.ward_id, None) is False

    async def test_scope_clause_filters_rows(self, db_session, supervisor, citizen, ward, other_ward):
        for w in (ward, other_ward):
            db_session.add(Complaint(
                tracking_code=f"CMP-TEST-{w.ward_number}",
                citizen_id=citizen.id,
                ward_id=w.id,
                title="Pothole on the main road",
                description="A deep pothole has formed in the middle of the main road near the school.",
            ))
        await db_session.commit()

        jurisdiction = await load_jurisdiction(db_session, supervisor)

        stmt = select(Complaint.ward_id).where(
            jurisdiction.scope_clause(Complaint.ward_id, Complaint.assigned_department_id)
        )
        assert (await db_session.execute(stmt)).scalars().all() == [ward.id]


class TestPermissionFlags:
    """Test permission flags through the API."""

    async def test_close_requires_permission(
        self, client, db_session, supervisor, supervisor_headers, complaint
    ):
        profile = await db_session.scalar(
            select(SupervisorProfile).where(SupervisorProfile.user_id == supervisor.id)
        )
        profile.can_close_complaints = False
        await db_session.commit()

        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/close",
            json={"notes": "Duplicate"},
            headers=supervisor_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"]["details"]["action"] == "close_complaints"

    async def test_role_change_to_supervisor(self, client, admin_headers, citizen):
        response = await client.put(
            f"{API}/admin/users/{citizen.id}/role", json={"role": UserRole.SUPERVISOR.value}, headers=admin_headers
        )
        assert response.json()["role"] == "supervisor"
