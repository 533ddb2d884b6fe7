"""Integration tests for supervisor queues, assignment and tasks."""
from datetime import datetime, timedelta

import pytest
from fastapi import status
from sqlalchemy import select

from civic_portal.models import AvailabilityStatus, Complaint, StaffProfile, SupervisorProfile, UserRole
from civic_portal.utils.time import utcnow

API = "/api/v1"


@pytest.fixture
async def second_staff(make_user, db_session, ward, department):
    user = await make_user("linesman@civic.local", UserRole.STAFF, full_name="Line Technician")
    db_session.add(StaffProfile(
        user_id=user.id,
        staff_code="ROADS-0002",
        department_id=department.id,
        ward_id=ward.id,
        availability_status=AvailabilityStatus.AVAILABLE,
        current_workload=3,
        max_concurrent_assignments=10,
    ))
    await db_session.commit()
    return user


class TestQueues:
    """Test supervisor views of the backlog."""

    async def test_dashboard(self, client, supervisor_headers, complaint, staff_user):
        response = await client.get(f"{API}/supervisor/dashboard", headers=supervisor_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_complaints"] == 1
        assert data["by_status"] == {"received": 1}
        assert data["unassigned"] == 1
        assert data["staff_count"] == 1
        assert data["sla_compliance"] == 100

    async def test_unassigned_queue(self, client, supervisor_headers, complaint, staff_user):
        before = await client.get(f"{API}/supervisor/unassigned", headers=supervisor_headers)
        assert before.json()["total"] == 1

        await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/assign",
            json={"staff_id": staff_user.id},
            headers=supervisor_headers,
        )

        after = await client.get(f"{API}/supervisor/unassigned", headers=supervisor_headers)
        assert after.json()["total"] == 0

    async def test_overdue_list(self, client, db_session, supervisor_headers, complaint):
        row = await db_session.get(Complaint, complaint["id"])
        row.sla_due_at = utcnow() - timedelta(hours=2)
        await db_session.commit()

        overdue = await client.get(f"{API}/supervisor/sla/overdue", headers=supervisor_headers)
        at_risk = await client.get(f"{API}/supervisor/sla/at_risk", headers=supervisor_headers)

        assert [c["id"] for c in overdue.json()] == [complaint["id"]]
        assert at_risk.json() == []

    async def test_staff_list_with_workload(self, client, supervisor_headers, staff_user, second_staff):
        response = await client.get(f"{API}/supervisor/staff", headers=supervisor_headers)

        names = [s["full_name"] for s in response.json()]
        assert names == ["Field Engineer", "Line Technician"]
        assert response.json()[1]["workload"]["percentage"] == 30

    async def test_citizen_blocked(self, client, citizen_headers):
        response = await client.get(f"{API}/supervisor/dashboard", headers=citizen_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestAssignment:
    """Test suggestions, reassignment and bulk operations."""

    async def test_suggested_staff(self, client, supervisor_headers, complaint, staff_user, second_staff):
        response = await client.get(
            f"{API}/supervisor/complaints/{complaint['id']}/suggested-staff", headers=supervisor_headers
        )

        ranked = response.json()
        assert [s["user_id"] for s in ranked] == [staff_user.id, second_staff.id]
        assert ranked[0]["ward_match"] is True

    async def test_reassign_moves_workload(
        self, client, supervisor_headers, complaint, staff_user, second_staff, headers_for
    ):
        await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/assign",
            json={"staff_id": staff_user.id},
            headers=supervisor_headers,
        )

        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/reassign",
            json={"staff_id": second_staff.id, "reason": "Needs an electrician"},
            headers=supervisor_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["assigned_staff_id"] == second_staff.id

        first = await client.get(f"{API}/staff/profile", headers=headers_for(staff_user))
        second = await client.get(f"{API}/staff/profile", headers=headers_for(second_staff))
        assert first.json()["current_workload"] == 0
        assert second.json()["current_workload"] == 4

        detail = await client.get(f"{API}/complaints/{complaint['id']}", headers=supervisor_headers)
        history = detail.json()["assignment_history"]
        assert history[-1]["previous_staff_id"] == staff_user.id
        assert history[-1]["notes"] == "Needs an electrician"

    async def test_reassign_requires_reason(self, client, supervisor_headers, complaint, staff_user):
        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/reassign",
            json={"staff_id": staff_user.id, "reason": ""},
            headers=supervisor_headers,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_bulk_assign_reports_failures(self, client, supervisor_headers, complaint, staff_user):
        response = await client.post(
            f"{API}/supervisor/complaints/bulk-assign",
            json={"complaint_ids": [complaint["id"], "missing-id"], "staff_id": staff_user.id},
            headers=supervisor_headers,
        )

        data = response.json()
        assert data["updated"] == [complaint["id"]]
        assert list(data["failed"]) == ["missing-id"]

    async def test_bulk_status(self, client, supervisor_headers, complaint):
        response = await client.post(
            f"{API}/supervisor/complaints/bulk-status",
            json={"complaint_ids": [complaint["id"]], "status": "under_review"},
            headers=supervisor_headers,
        )
        assert response.json()["updated"] == [complaint["id"]]

    async def test_priority_change_recomputes_deadline(self, client, supervisor_headers, complaint):
        response = await client.patch(
            f"{API}/supervisor/complaints/{complaint['id']}/priority",
            json={"priority": "critical", "reason": "Live wire exposed"},
            headers=supervisor_headers,
        )

        assert response.json()["priority"] == "critical"
        new_due = datetime.fromisoformat(response.json()["sla_due_at"])
        assert new_due < datetime.fromisoformat(complaint["sla_due_at"])

        again = await client.patch(
            f"{API}/supervisor/complaints/{complaint['id']}/priority",
            json={"priority": "critical"},
            headers=supervisor_headers,
        )
        assert again.json()["error"]["code"] == "NO_OP_PRIORITY"

    async def test_close(self, client, supervisor_headers, complaint):
        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/close",
            json={"notes": "Duplicate of an earlier report"},
            headers=supervisor_headers,
        )

        assert response.json()["status"] == "closed"
        assert response.json()["closed_at"] is not None

    async def test_rebalance_plan_empty_when_balanced(self, client, supervisor_headers, staff_user, second_staff):
        response = await client.get(f"{API}/supervisor/rebalance", headers=supervisor_headers)
        assert response.json() == []


class TestTasks:
    """Test internal tasks."""

    async def create_task(self, client, headers, staff_user, **overrides):
        body = {
            "title": "Inspect transformer",
            "description": "Check the transformer feeding the ward office lights.",
            "assigned_to": staff_user.id,
            "priority": "high",
        }
        body.update(overrides)
        return await client.post(f"{API}/supervisor/tasks", json=body, headers=headers)

    async def test_create_and_list(self, client, supervisor_headers, staff_headers, staff_user, ward):
        created = await self.create_task(client, supervisor_headers, staff_user)

        assert created.status_code == status.HTTP_201_CREATED
        assert created.json()["ward_id"] == ward.id
        assert created.json()["status"] == "not_started"

        mine = await client.get(f"{API}/staff/tasks", headers=staff_headers)
        assert mine.json()["total"] == 1

        inbox = await client.get(f"{API}/notifications", headers=staff_headers)
        assert inbox.json()["data"][0]["title"] == "New task assigned"

    async def test_staff_updates_but_cannot_cancel(self, client, supervisor_headers, staff_headers, staff_user):
        task_id = (await self.create_task(client, supervisor_headers, staff_user)).json()["id"]

        done = await client.patch(
            f"{API}/staff/tasks/{task_id}/status", json={"status": "completed"}, headers=staff_headers
        )
        assert done.json()["completed_at"] is not None

        cancel = await client.patch(
            f"{API}/staff/tasks/{task_id}/status", json={"status": "cancelled"}, headers=staff_headers
        )
        assert cancel.status_code == status.HTTP_403_FORBIDDEN

    async def test_stats_and_overdue(self, client, supervisor_headers, staff_user):
        past = (utcnow() - timedelta(days=1)).isoformat()
        await self.create_task(client, supervisor_headers, staff_user, due_date=past)
        await self.create_task(client, supervisor_headers, staff_user, title="Repaint poles")

        response = await client.get(f"{API}/supervisor/tasks/stats", headers=supervisor_headers)

        data = response.json()
        assert data["total"] == 2
        assert data["by_status"]["not_started"] == 2
        assert data["overdue"] == 1

    async def test_delete(self, client, supervisor_headers, staff_user):
        task_id = (await self.create_task(client, supervisor_headers, staff_user)).json()["id"]

        response = await client.delete(f"{API}/supervisor/tasks/{task_id}", headers=supervisor_headers)
        assert response.status_code == status.HTTP_200_OK

        listing = await client.get(f"{API}/supervisor/tasks", headers=supervisor_headers)
        assert listing.json()["total"] == 0

    async def test_permission_flag_required(self, client, db_session, supervisor, supervisor_headers, staff_user):
        profile = await db_session.scalar(select(SupervisorProfile).where(SupervisorProfile.user_id == supervisor.id))
        profile.can_create_tasks = False
        await db_session.commit()

        response = await self.create_task(client, supervisor_headers, staff_user)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestStaffSelfService:
    """Test staff availability and performance views."""

    async def test_busy_staff_not_suggested(
        self, client, supervisor_headers, staff_headers, complaint, staff_user, second_staff
    ):
        response = await client.put(
            f"{API}/staff/availability", json={"availability_status": "busy"}, headers=staff_headers
        )
        assert response.json()["availability_status"] == "busy"

        suggested = await client.get(
            f"{API}/supervisor/complaints/{complaint['id']}/suggested-staff", headers=supervisor_headers
        )
        assert [s["user_id"] for s in suggested.json()] == [second_staff.id]

    async def test_performance_after_resolution(
        self, client, supervisor_headers, staff_headers, complaint, staff_user
    ):
        await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/assign",
            json={"staff_id": staff_user.id},
            headers=supervisor_headers,
        )
        await client.post(
            f"{API}/staff/complaints/{complaint['id']}/complete",
            json={"resolution_notes": "Replaced the bulb and the fuse."},
            headers=staff_headers,
        )

        mine = await client.get(f"{API}/staff/performance", headers=staff_headers)
        theirs = await client.get(
            f"{API}/supervisor/staff/{staff_user.id}/performance", headers=supervisor_headers
        )

        assert mine.json() == theirs.json()
        assert mine.json()["resolved"] == 1
        assert mine.json()["resolution_rate"] == 100.0
        assert mine.json()["sla_compliance"] == 100


@pytest.fixture
async def outside_complaint(client, citizen_headers, category, other_ward):
    response = await client.post(
        f"{API}/complaints",
        json={
            "title": "Garbage not collected on the river road",
            "description": "Bins along the river road have not been emptied for over a week and are overflowing.",
            "category_id": category.id,
            "ward_id": other_ward.id,
        },
        headers=citizen_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


class TestReports:
    """Test jurisdiction-scoped reports and exports."""

    async def test_monthly_report_covers_jurisdiction_only(
        self, client, supervisor_headers, complaint, outside_complaint
    ):
        response = await client.get(f"{API}/supervisor/reports/monthly?format=json", headers=supervisor_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["scope"] == "jurisdiction"
        assert data["complaints_submitted"] == 1
        assert data["categories"] == [{"category": "Street lighting", "count": 1}]
        assert [d["total"] for d in data["departments"]] == [1]

    async def test_monthly_report_html_and_pdf(self, client, supervisor_headers, complaint):
        html = await client.get(f"{API}/supervisor/reports/monthly", headers=supervisor_headers)
        pdf = await client.get(f"{API}/supervisor/reports/monthly?format=pdf", headers=supervisor_headers)

        assert "Monthly Jurisdiction Report" in html.text
        assert pdf.headers["content-type"] == "application/pdf"
        assert "jurisdiction_report_" in pdf.headers["content-disposition"]
        assert pdf.content.startswith(b"%PDF")

    async def test_export_covers_jurisdiction_only(
        self, client, supervisor_headers, complaint, outside_complaint
    ):
        response = await client.get(f"{API}/supervisor/complaints/export", headers=supervisor_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/csv")
        assert complaint["tracking_code"] in response.text
        assert outside_complaint["tracking_code"] not in response.text

    async def test_report_permission_required(self, client, db_session, supervisor, supervisor_headers):
        profile = await db_session.scalar(select(SupervisorProfile).where(SupervisorProfile.user_id == supervisor.id))
        profile.can_generate_reports = False
        await db_session.commit()

        report = await client.get(f"{API}/supervisor/reports/monthly", headers=supervisor_headers)
        export = await client.get(f"{API}/supervisor/complaints/export", headers=supervisor_headers)

        assert report.status_code == status.HTTP_403_FORBIDDEN
        assert report.json()["error"]["details"] == {"action": "generate_reports"}
        assert export.status_code == status.HTTP_403_FORBIDDEN

    async def test_admin_report_stays_municipal(self, client, admin_headers, complaint, outside_complaint):
        response = await client.get(f"{API}/admin/reports/monthly?format=json", headers=admin_headers)

        assert response.json()["scope"] == "municipality"
        assert response.json()["complaints_submitted"] == 2
