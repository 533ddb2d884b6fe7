"""Integration tests for the complaint lifecycle."""
from fastapi import status

API = "/api/v1"

DESCRIPTION = (
    "Water has been leaking from the main pipe near the temple for three days "
    "and the road is now flooded."
)


def new_complaint(category, ward, **overrides):
    body = {
        "title": "Burst water pipe near the temple",
        "description": DESCRIPTION,
        "category_id": category.id,
        "ward_id": ward.id,
    }
    body.update(overrides)
    return body


async def assign(client, complaint, staff_user, supervisor_headers):
    response = await client.post(
        f"{API}/supervisor/complaints/{complaint['id']}/assign",
        json={"staff_id": staff_user.id, "note": "Please check today"},
        headers=supervisor_headers,
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()


class TestSubmission:
    """Test filing complaints."""

    async def test_submit_complaint(self, complaint, category, ward):
        """Test a new complaint is received with a tracking code and deadline."""
        assert complaint["status"] == "received"
        assert complaint["priority"] == "high"
        assert complaint["tracking_code"].startswith("CMP-")
        assert complaint["assigned_department_id"] == category.default_department_id
        assert complaint["ward_id"] == ward.id
        assert complaint["sla_due_at"] is not None

    async def test_default_priority_is_medium(self, client, citizen_headers, category, ward):
        response = await client.post(
            f"{API}/complaints", json=new_complaint(category, ward), headers=citizen_headers
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["priority"] == "medium"

    async def test_short_title_rejected(self, client, citizen_headers, category, ward):
        response = await client.post(
            f"{API}/complaints", json=new_complaint(category, ward, title="Pipe"), headers=citizen_headers
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_short_description_rejected(self, client, citizen_headers, category, ward):
        response = await client.post(
            f"{API}/complaints",
            json=new_complaint(category, ward, description="Pipe is broken."),
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_unknown_category(self, client, citizen_headers, category, ward):
        response = await client.post(
            f"{API}/complaints",
            json=new_complaint(category, ward, category_id="does-not-exist"),
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_staff_cannot_submit(self, client, staff_headers, category, ward):
        response = await client.post(
            f"{API}/complaints", json=new_complaint(category, ward), headers=staff_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_requires_authentication(self, client, category, ward):
        response = await client.post(f"{API}/complaints", json=new_complaint(category, ward))
        assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)

    async def test_submission_notifies_citizen(self, client, citizen_headers, complaint):
        response = await client.get(f"{API}/notifications", headers=citizen_headers)
        assert [n["type"] for n in response.json()["data"]] == ["complaint_status"]


class TestVisibility:
    """Test who can see a complaint."""

    async def test_owner_sees_detail(self, client, citizen_headers, complaint):
        response = await client.get(f"{API}/complaints/{complaint['id']}", headers=citizen_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["complaint"]["id"] == complaint["id"]
        assert data["category_name"] == "Street lighting"
        assert [h["new_status"] for h in data["status_history"]] == ["received"]
        assert data["sla"]["status"] == "on_time"

    async def test_other_citizen_denied(self, client, other_citizen, headers_for, complaint):
        response = await client.get(f"{API}/complaints/{complaint['id']}", headers=headers_for(other_citizen))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_list_is_scoped(self, client, citizen_headers, other_citizen, headers_for, complaint):
        own = await client.get(f"{API}/complaints", headers=citizen_headers)
        other = await client.get(f"{API}/complaints", headers=headers_for(other_citizen))

        assert own.json()["total"] == 1
        assert other.json()["total"] == 0

    async def test_unassigned_staff_sees_nothing(self, client, staff_headers, complaint):
        response = await client.get(f"{API}/complaints/{complaint['id']}", headers=staff_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_track_by_code(self, client, citizen_headers, complaint):
        response = await client.get(
            f"{API}/complaints/track/{complaint['tracking_code']}", headers=citizen_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == complaint["id"]

    async def test_unknown_tracking_code(self, client, citizen_headers):
        response = await client.get(f"{API}/complaints/track/CMP-00000000-XXXX", headers=citizen_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_filter_by_status(self, client, admin_headers, complaint):
        received = await client.get(f"{API}/complaints?status=received", headers=admin_headers)
        resolved = await client.get(f"{API}/complaints?status=resolved", headers=admin_headers)

        assert received.json()["total"] == 1
        assert resolved.json()["total"] == 0


class TestComments:
    """Test public and internal comments."""

    async def test_internal_comment_hidden_from_citizen(
        self, client, citizen_headers, supervisor_headers, complaint
    ):
        await client.post(
            f"{API}/complaints/{complaint['id']}/comments",
            json={"content": "Check the transformer first", "is_internal": True},
            headers=supervisor_headers,
        )
        await client.post(
            f"{API}/complaints/{complaint['id']}/comments",
            json={"content": "We are looking into it"},
            headers=supervisor_headers,
        )

        citizen_view = await client.get(f"{API}/complaints/{complaint['id']}", headers=citizen_headers)
        supervisor_view = await client.get(f"{API}/complaints/{complaint['id']}", headers=supervisor_headers)

        assert [c["content"] for c in citizen_view.json()["comments"]] == ["We are looking into it"]
        assert len(supervisor_view.json()["comments"]) == 2

    async def test_citizen_cannot_post_internal(self, client, citizen_headers, complaint):
        response = await client.post(
            f"{API}/complaints/{complaint['id']}/comments",
            json={"content": "Secret note", "is_internal": True},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_citizen_comment(self, client, citizen_headers, complaint):
        response = await client.post(
            f"{API}/complaints/{complaint['id']}/comments",
            json={"content": "Still dark tonight"},
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["author_role"] == "citizen"


class TestWorkflow:
    """Test assignment through resolution and feedback."""

    async def test_assign_start_complete_feedback(
        self, client, complaint, staff_user, citizen_headers, staff_headers, supervisor_headers
    ):
        assigned = await assign(client, complaint, staff_user, supervisor_headers)
        assert assigned["status"] == "assigned"
        assert assigned["assigned_staff_id"] == staff_user.id

        queue = await client.get(f"{API}/staff/queue", headers=staff_headers)
        assert [c["id"] for c in queue.json()["data"]] == [complaint["id"]]

        profile = await client.get(f"{API}/staff/profile", headers=staff_headers)
        assert profile.json()["current_workload"] == 1

        started = await client.post(f"{API}/staff/complaints/{complaint['id']}/start", headers=staff_headers)
        assert started.json()["status"] == "in_progress"

        completed = await client.post(
            f"{API}/staff/complaints/{complaint['id']}/complete",
            json={"resolution_notes": "Replaced the lamp and fuse"},
            headers=staff_headers,
        )
        assert completed.status_code == status.HTTP_200_OK
        assert completed.json()["status"] == "resolved"
        assert completed.json()["resolved_at"] is not None
        assert completed.json()["resolution_notes"] == "Replaced the lamp and fuse"

        profile = await client.get(f"{API}/staff/profile", headers=staff_headers)
        assert profile.json()["current_workload"] == 0

        feedback = await client.post(
            f"{API}/complaints/{complaint['id']}/feedback",
            json={"rating": 5, "issue_resolved": True},
            headers=citizen_headers,
        )
        assert feedback.status_code == status.HTTP_201_CREATED

        again = await client.post(
            f"{API}/complaints/{complaint['id']}/feedback",
            json={"rating": 1},
            headers=citizen_headers,
        )
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.json()["error"]["code"] == "FEEDBACK_EXISTS"

    async def test_feedback_before_resolution(self, client, citizen_headers, complaint):
        response = await client.post(
            f"{API}/complaints/{complaint['id']}/feedback",
            json={"rating": 4},
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "NOT_RESOLVED"

    async def test_assign_twice_to_same_staff(self, client, complaint, staff_user, supervisor_headers):
        await assign(client, complaint, staff_user, supervisor_headers)

        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/assign",
            json={"staff_id": staff_user.id},
            headers=supervisor_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "ALREADY_ASSIGNED"

    async def test_staff_only_works_own_complaints(self, client, complaint, staff_headers):
        response = await client.post(f"{API}/staff/complaints/{complaint['id']}/start", headers=staff_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_staff_cannot_close(self, client, complaint, staff_user, staff_headers, supervisor_headers):
        await assign(client, complaint, staff_user, supervisor_headers)

        response = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "closed"},
            headers=staff_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_citizen_cannot_assign(self, client, complaint, staff_user, citizen_headers):
        response = await client.post(
            f"{API}/supervisor/complaints/{complaint['id']}/assign",
            json={"staff_id": staff_user.id},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_assignment_history_hidden_from_citizen(
        self, client, complaint, staff_user, citizen_headers, supervisor_headers
    ):
        await assign(client, complaint, staff_user, supervisor_headers)

        citizen_view = await client.get(f"{API}/complaints/{complaint['id']}", headers=citizen_headers)
        supervisor_view = await client.get(f"{API}/complaints/{complaint['id']}", headers=supervisor_headers)

        assert citizen_view.json()["assignment_history"] == []
        assert len(supervisor_view.json()["assignment_history"]) == 1
        assert supervisor_view.json()["assigned_staff_name"] == "Field Engineer"


class TestStatusRules:
    """Test the status change rules."""

    async def test_reopen_resolved_complaint(self, client, complaint, citizen_headers, admin_headers):
        resolved = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "resolved", "note": "Fixed"},
            headers=admin_headers,
        )
        assert resolved.json()["status"] == "resolved"

        reopened = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "reopened", "note": "Light is off again"},
            headers=citizen_headers,
        )

        assert reopened.status_code == status.HTTP_200_OK
        assert reopened.json()["status"] == "reopened"
        assert reopened.json()["resolved_at"] is None

    async def test_reopen_open_complaint_rejected(self, client, complaint, citizen_headers):
        response = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "reopened"},
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    async def test_no_op_change_rejected(self, client, complaint, admin_headers):
        response = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "received"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "NO_OP_TRANSITION"

    async def test_citizen_cannot_resolve(self, client, complaint, citizen_headers):
        response = await client.patch(
            f"{API}/complaints/{complaint['id']}/status",
            json={"status": "resolved"},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_history_records_each_change(self, client, complaint, admin_headers):
        for new_status in ("under_review", "resolved"):
            await client.patch(
                f"{API}/complaints/{complaint['id']}/status",
                json={"status": new_status},
                headers=admin_headers,
            )

        detail = await client.get(f"{API}/complaints/{complaint['id']}", headers=admin_headers)
        history = detail.json()["status_history"]

        assert [h["new_status"] for h in history] == ["received", "under_review", "resolved"]
        assert history[1]["old_status"] == "received"


class TestJurisdiction:
    """Test supervisors are limited to their wards and departments."""

    async def test_supervisor_sees_own_ward(self, client, supervisor_headers, complaint):
        response = await client.get(f"{API}/complaints", headers=supervisor_headers)
        assert response.json()["total"] == 1

    async def test_supervisor_denied_outside_ward(
        self, client, citizen_headers, supervisor_headers, category, other_ward
    ):
        filed = await client.post(
            f"{API}/complaints", json=new_complaint(category, other_ward), headers=citizen_headers
        )
        complaint_id = filed.json()["id"]

        detail = await client.get(f"{API}/complaints/{complaint_id}", headers=supervisor_headers)
        listing = await client.get(f"{API}/complaints", headers=supervisor_headers)

        assert detail.status_code == status.HTTP_403_FORBIDDEN
        assert listing.json()["total"] == 0

    async def test_admin_sees_everything(self, client, admin_headers, citizen_headers, category, other_ward, complaint):
        await client.post(f"{API}/complaints", json=new_complaint(category, other_ward), headers=citizen_headers)

        response = await client.get(f"{API}/complaints", headers=admin_headers)
        assert response.json()["total"] == 2


class TestAttachmentsAndUpvotes:
    """Test attachment limits and upvotes."""

    async def test_attachment_limit(self, client, citizen_headers, complaint):
        url = f"{API}/complaints/{complaint['id']}/attachments"
        for i in range(5):
            response = await client.post(
                url,
                json={"file_name": f"photo{i}.jpg", "file_type": "image/jpeg", "file_size": 2048},
                headers=citizen_headers,
            )
            assert response.status_code == status.HTTP_201_CREATED

        response = await client.post(
            url,
            json={"file_name": "photo5.jpg", "file_type": "image/jpeg", "file_size": 2048},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "TOO_MANY_ATTACHMENTS"

        detail = await client.get(f"{API}/complaints/{complaint['id']}", headers=citizen_headers)
        assert len(detail.json()["citizen_attachments"]) == 5

    async def test_attachment_type_checked(self, client, citizen_headers, complaint):
        response = await client.post(
            f"{API}/complaints/{complaint['id']}/attachments",
            json={"file_name": "virus.exe", "file_type": "application/x-msdownload", "file_size": 100},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_upvote_once(self, client, other_citizen, headers_for, complaint):
        headers = headers_for(other_citizen)
        first = await client.post(f"{API}/complaints/{complaint['id']}/upvote", headers=headers)
        second = await client.post(f"{API}/complaints/{complaint['id']}/upvote", headers=headers)

        assert first.json()["upvote_count"] == 1
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.json()["error"]["code"] == "ALREADY_UPVOTED"

    async def test_citizen_stats(self, client, citizen_headers, admin_headers, complaint, category, ward):
        other = await client.post(f"{API}/complaints", json=new_complaint(category, ward), headers=citizen_headers)
        await client.patch(
            f"{API}/complaints/{other.json()['id']}/status",
            json={"status": "resolved"},
            headers=admin_headers,
        )

        response = await client.get(f"{API}/complaints/stats", headers=citizen_headers)

        assert response.json() == {"total": 2, "open": 1, "in_progress": 0, "resolved": 1}
