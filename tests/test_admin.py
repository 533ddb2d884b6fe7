"""Integration tests for administration, dashboards and reports."""
from fastapi import status

from civic_portal.utils.time import today

API = "/api/v1"


class TestUserManagement:
    """Test admin user management."""

    async def test_list_and_filter_users(self, client, admin_headers, citizen, staff_user):
        everyone = await client.get(f"{API}/admin/users", headers=admin_headers)
        citizens = await client.get(f"{API}/admin/users?role=citizen", headers=admin_headers)

        assert everyone.json()["total"] == 3
        assert [u["email"] for u in citizens.json()["data"]] == [citizen.email]

    async def test_search_users(self, client, admin_headers, citizen, staff_user):
        response = await client.get(f"{API}/admin/users?search=engineer", headers=admin_headers)
        assert [u["id"] for u in response.json()["data"]] == [staff_user.id]

    async def test_create_staff_account(self, client, admin_headers, department, ward):
        created = await client.post(
            f"{API}/admin/users",
            json={
                "email": "plumber@civic.local",
                "password": "Plumb3rPass",
                "full_name": "Water Plumber",
                "role": "staff",
            },
            headers=admin_headers,
        )
        assert created.status_code == status.HTTP_201_CREATED
        user_id = created.json()["id"]

        profile = await client.post(
            f"{API}/admin/staff-profiles",
            json={"user_id": user_id, "department_id": department.id, "ward_id": ward.id},
            headers=admin_headers,
        )
        assert profile.status_code == status.HTTP_201_CREATED
        assert profile.json()["staff_code"].startswith("ROADS-")

        duplicate = await client.post(
            f"{API}/admin/staff-profiles",
            json={"user_id": user_id, "department_id": department.id},
            headers=admin_headers,
        )
        assert duplicate.status_code == status.HTTP_409_CONFLICT

    async def test_user_detail_counts(self, client, admin_headers, citizen, complaint):
        response = await client.get(f"{API}/admin/users/{citizen.id}", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["complaint_count"] == 1

    async def test_deactivate_user_blocks_access(self, client, admin_headers, citizen, citizen_headers):
        response = await client.put(
            f"{API}/admin/users/{citizen.id}/status", json={"is_active": False}, headers=admin_headers
        )
        assert response.json()["is_active"] is False

        me = await client.get(f"{API}/auth/me", headers=citizen_headers)
        assert me.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_admin_cannot_demote_self(self, client, admin, admin_headers):
        response = await client.put(
            f"{API}/admin/users/{admin.id}/role", json={"role": "citizen"}, headers=admin_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestReferenceData:
    """Test wards, departments, categories and SLA policies."""

    async def test_create_ward_and_list(self, client, admin_headers, citizen_headers, ward):
        created = await client.post(
            f"{API}/admin/wards", json={"ward_number": 12, "name": "Ward 12 - Hillside"}, headers=admin_headers
        )
        assert created.status_code == status.HTTP_201_CREATED

        duplicate = await client.post(
            f"{API}/admin/wards", json={"ward_number": 12, "name": "Another"}, headers=admin_headers
        )
        assert duplicate.status_code == status.HTTP_409_CONFLICT

        listing = await client.get(f"{API}/wards", headers=citizen_headers)
        assert [w["ward_number"] for w in listing.json()] == [4, 12]

    async def test_department_code_uppercased(self, client, admin_headers):
        response = await client.post(
            f"{API}/admin/departments", json={"name": "Health Services", "code": "health"}, headers=admin_headers
        )
        assert response.json()["code"] == "HEALTH"

    async def test_create_category(self, client, admin_headers, citizen_headers, department):
        response = await client.post(
            f"{API}/admin/categories",
            json={"name": "Potholes", "default_department_id": department.id},
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED

        listing = await client.get(f"{API}/categories", headers=citizen_headers)
        assert "Potholes" in [c["name"] for c in listing.json()]

    async def test_sla_policy_override(self, client, admin_headers, citizen_headers, category, ward):
        defaults = await client.get(f"{API}/admin/sla", headers=admin_headers)
        assert {p["priority"]: p["resolution_hours"] for p in defaults.json()}["low"] == 72

        updated = await client.put(
            f"{API}/admin/sla/low", json={"resolution_hours": 96}, headers=admin_headers
        )
        assert updated.json() == {"priority": "low", "resolution_hours": 96, "is_default": False}

        policies = await client.get(f"{API}/admin/sla", headers=admin_headers)
        low = next(p for p in policies.json() if p["priority"] == "low")
        assert low["resolution_hours"] == 96
        assert low["is_default"] is False

    async def test_non_admin_blocked(self, client, supervisor_headers):
        response = await client.post(
            f"{API}/admin/wards", json={"ward_number": 20, "name": "Ward 20"}, headers=supervisor_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestDashboards:
    """Test admin dashboard figures."""

    async def test_metrics(self, client, admin_headers, complaint, bill):
        response = await client.get(f"{API}/admin/dashboard/metrics", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_complaints"] == 1
        assert data["open_complaints"] == 1
        assert data["total_citizens"] == 1
        assert data["pending_bills"] == 1

    async def test_status_distribution(self, client, admin_headers, complaint):
        response = await client.get(f"{API}/admin/dashboard/status-distribution", headers=admin_headers)
        assert response.json()["received"] == 1

    async def test_trend_and_breakdowns(self, client, admin_headers, complaint):
        for path in ("dashboard/trend?days=7", "dashboard/departments", "dashboard/wards"):
            response = await client.get(f"{API}/admin/{path}", headers=admin_headers)
            assert response.status_code == status.HTTP_200_OK, path

    async def test_refresh(self, client, admin_headers):
        response = await client.post(f"{API}/admin/dashboard/refresh", headers=admin_headers)
        assert response.json()["success"] is True


class TestReports:
    """Test report generation and exports."""

    async def test_monthly_report_json(self, client, admin_headers, complaint):
        now = today()
        response = await client.get(
            f"{API}/admin/reports/monthly?year={now.year}&month={now.month}&format=json", headers=admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["complaints_submitted"] == 1

    async def test_monthly_report_html(self, client, admin_headers, complaint):
        response = await client.get(f"{API}/admin/reports/monthly", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/html")
        assert "<td>Street lighting</td><td>1</td>" in response.text

    async def test_monthly_report_pdf(self, client, admin_headers, complaint):
        response = await client.get(f"{API}/admin/reports/monthly?format=pdf", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "application/pdf"
        assert "attachment" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    async def test_staff_report(self, client, admin_headers, staff_user):
        start = today().isoformat()
        response = await client.get(
            f"{API}/admin/reports/staff/{staff_user.id}?start={start}&end={start}", headers=admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["complaints_assigned"] == 0

    async def test_staff_report_bad_period(self, client, admin_headers, staff_user):
        response = await client.get(
            f"{API}/admin/reports/staff/{staff_user.id}?start=2025-02-10&end=2025-02-01", headers=admin_headers
        )
        assert response.json()["error"]["code"] == "INVALID_PERIOD"

    async def test_csv_export(self, client, admin_headers, complaint):
        response = await client.get(f"{API}/admin/complaints/export", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Tracking Code,Title,Status,Priority")
        assert complaint["tracking_code"] in lines[1]
        assert "Sita" in lines[1]

    async def test_transactions_bad_range(self, client, admin_headers):
        response = await client.get(
            f"{API}/admin/transactions?date_from=2025-03-01T00:00:00&date_to=2025-02-01T00:00:00",
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestHealth:
    """Test health and readiness endpoints."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"

    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["service"] == "Civic Portal"

    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    async def test_validation_errors_use_error_envelope(self, client, admin_headers):
        response = await client.post(f"{API}/admin/wards", json={"name": "No number"}, headers=admin_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        body = response.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]["errors"][0]["field"] == "ward_number"
        assert body["request_id"]
