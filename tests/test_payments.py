"""Tests for late fees, bill payment and receipts."""
from datetime import date, datetime, timedelta

from fastapi import status

from civic_portal.services.payments import calculate_late_fee, days_overdue
from civic_portal.utils.time import today

API = "/api/v1"
DUE = date(2025, 1, 31)


class TestLateFees:
    """Test the late fee rule: 0.1% per day, capped at 20%."""

    def test_no_fee_on_due_date(self):
        assert calculate_late_fee(DUE, 5000.0, DUE) == 0.0
        assert calculate_late_fee(DUE, 5000.0, DUE - timedelta(days=3)) == 0.0

    def test_fee_per_day(self):
        """Test ten days late on 5000 costs 1%."""
        assert calculate_late_fee(DUE, 5000.0, DUE + timedelta(days=10)) == 50.0

    def test_fee_capped(self):
        """Test the fee never exceeds 20% of the base amount."""
        assert calculate_late_fee(DUE, 5000.0, DUE + timedelta(days=400)) == 1000.0

    def test_rounds_half_up(self):
        assert calculate_late_fee(DUE, 1500.0, DUE + timedelta(days=1)) == 2.0
        assert calculate_late_fee(DUE, 1250.0, DUE + timedelta(days=1)) == 1.0

    def test_partial_day_counts_as_full(self):
        """Test a started day counts when a timestamp is given."""
        moment = datetime(2025, 2, 1, 0, 30)  # half an hour into the first late day
        assert days_overdue(DUE, moment) == 1
        assert days_overdue(DUE, datetime(2025, 1, 31, 23, 59)) == 0

    def test_date_and_timestamp_agree(self):
        """Test a calendar date and midday on it give the same count."""
        for offset in (0, 1, 10):
            day = DUE + timedelta(days=offset)
            assert days_overdue(DUE, day) == days_overdue(DUE, datetime(day.year, day.month, day.day, 12, 0))

    def test_zero_base_amount(self):
        assert calculate_late_fee(DUE, 0.0, DUE + timedelta(days=10)) == 0.0


class TestBillRoutes:
    """Test citizen bill views."""

    async def test_list_own_bills(self, client, citizen_headers, bill, overdue_bill):
        response = await client.get(f"{API}/bills", headers=citizen_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert {b["bill_number"] for b in data["data"]} == {"BILL-TEST-0001", "BILL-TEST-0002"}

    async def test_bill_detail_includes_late_fee(self, client, citizen_headers, overdue_bill):
        response = await client.get(f"{API}/bills/{overdue_bill.id}", headers=citizen_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["late_fee"] == 50.0
        assert data["amount_due"] == 5050.0
        assert data["days_overdue"] == 10

    async def test_other_citizen_cannot_view_bill(self, client, other_citizen, headers_for, bill):
        response = await client.get(f"{API}/bills/{bill.id}", headers=headers_for(other_citizen))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_bill_stats(self, client, citizen_headers, bill, overdue_bill):
        response = await client.get(f"{API}/bills/stats", headers=citizen_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["pending"] == 2
        assert data["overdue"] == 1
        assert data["total_due"] == 1130.0 + 5050.0


class TestPayments:
    """Test paying bills."""

    async def test_pay_exact_amount(self, client, citizen_headers, bill):
        response = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        payment = response.json()
        assert payment["status"] == "completed"
        assert payment["late_fee_paid"] == 0.0
        assert payment["transaction_id"]

        detail = await client.get(f"{API}/bills/{bill.id}", headers=citizen_headers)
        assert detail.json()["bill"]["status"] == "completed"
        assert detail.json()["amount_due"] == 0.0

    async def test_amount_within_tolerance(self, client, citizen_headers, bill):
        response = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.05, "payment_method": "card"},
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED

    async def test_amount_mismatch(self, client, citizen_headers, bill):
        response = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1000.0, "payment_method": "khalti"},
            headers=citizen_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        error = response.json()["error"]
        assert error["code"] == "AMOUNT_MISMATCH"
        assert error["details"]["expected"] == 1130.0

    async def test_overdue_bill_requires_late_fee(self, client, citizen_headers, overdue_bill):
        """Test the base total alone no longer settles an overdue bill."""
        short = await client.post(
            f"{API}/payments",
            json={"bill_id": overdue_bill.id, "amount": 5000.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )
        assert short.status_code == status.HTTP_400_BAD_REQUEST

        paid = await client.post(
            f"{API}/payments",
            json={"bill_id": overdue_bill.id, "amount": 5050.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )
        assert paid.status_code == status.HTTP_201_CREATED
        assert paid.json()["late_fee_paid"] == 50.0

    async def test_cannot_pay_twice(self, client, citizen_headers, bill):
        body = {"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"}
        await client.post(f"{API}/payments", json=body, headers=citizen_headers)

        response = await client.post(f"{API}/payments", json=body, headers=citizen_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "BILL_ALREADY_PAID"

    async def test_cannot_pay_someone_elses_bill(self, client, other_citizen, headers_for, bill):
        response = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=headers_for(other_citizen),
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_receipt_and_history(self, client, citizen_headers, bill):
        paid = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )
        transaction_id = paid.json()["transaction_id"]

        receipt = await client.get(f"{API}/payments/receipts/{transaction_id}", headers=citizen_headers)
        assert receipt.status_code == status.HTTP_200_OK
        assert receipt.json()["bill"]["bill_number"] == "BILL-TEST-0001"
        assert receipt.json()["citizen_name"]

        history = await client.get(f"{API}/payments/history", headers=citizen_headers)
        assert history.json()["total"] == 1

    async def test_payment_creates_notification(self, client, citizen_headers, bill):
        await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )

        response = await client.get(f"{API}/notifications", headers=citizen_headers)
        types = [n["type"] for n in response.json()["data"]]
        assert "payment_success" in types


class TestAdminBilling:
    """Test bill issuing and cancellation."""

    async def test_issue_bill(self, client, admin_headers, citizen, citizen_headers):
        due = (today() + timedelta(days=30)).isoformat()
        response = await client.post(
            f"{API}/admin/bills",
            json={
                "citizen_id": citizen.id,
                "bill_type": "waste",
                "base_amount": 300.0,
                "tax_amount": 39.0,
                "due_date": due,
            },
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["total_amount"] == 339.0
        assert response.json()["status"] == "pending"

        notifications = await client.get(f"{API}/notifications", headers=citizen_headers)
        assert notifications.json()["data"][0]["type"] == "bill_generated"

    async def test_bills_only_for_citizens(self, client, admin, admin_headers):
        response = await client.post(
            f"{API}/admin/bills",
            json={
                "citizen_id": admin.id,
                "bill_type": "water",
                "base_amount": 100.0,
                "due_date": today().isoformat(),
            },
            headers=admin_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_cancel_bill(self, client, admin_headers, citizen_headers, bill):
        response = await client.post(f"{API}/admin/bills/{bill.id}/cancel", headers=admin_headers)
        assert response.json()["status"] == "cancelled"

        pay = await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )
        assert pay.json()["error"]["code"] == "BILL_CANCELLED"

    async def test_citizen_cannot_issue_bills(self, client, citizen, citizen_headers):
        response = await client.post(
            f"{API}/admin/bills",
            json={
                "citizen_id": citizen.id,
                "bill_type": "water",
                "base_amount": 100.0,
                "due_date": today().isoformat(),
            },
            headers=citizen_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_revenue_after_payment(self, client, admin_headers, citizen_headers, bill):
        await client.post(
            f"{API}/payments",
            json={"bill_id": bill.id, "amount": 1130.0, "payment_method": "esewa"},
            headers=citizen_headers,
        )

        response = await client.get(f"{API}/admin/revenue?days=7", headers=admin_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_revenue"] == 1130.0
        assert data["transaction_count"] == 1
