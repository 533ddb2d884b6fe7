"""Unit tests for SLA deadlines, countdowns and compliance figures."""
from datetime import datetime, timedelta

from civic_portal.models import ComplaintPriority, ComplaintStatus
from civic_portal.services.sla import (
    calculate_resolution_time,
    calculate_sla_compliance,
    calculate_sla_deadline,
    format_countdown,
    get_remaining_time,
    get_sla_status,
    resolution_hours,
)

NOW = datetime(2025, 3, 10, 12, 0, 0)


class TestDeadlines:
    """Test resolution windows per priority."""

    def test_default_hours_per_priority(self):
        """Test the built-in resolution windows."""
        assert resolution_hours(ComplaintPriority.CRITICAL) == 4
        assert resolution_hours(ComplaintPriority.URGENT) == 12
        assert resolution_hours(ComplaintPriority.HIGH) == 24
        assert resolution_hours(ComplaintPriority.MEDIUM) == 48
        assert resolution_hours(ComplaintPriority.LOW) == 72

    def test_unknown_priority_falls_back(self):
        """Test unknown priorities get 48 hours."""
        assert resolution_hours("whenever") == 48
        assert resolution_hours(None) == 48

    def test_policy_overrides_default(self):
        """Test an admin policy takes precedence over the defaults."""
        assert resolution_hours("high", {"high": 36}) == 36
        assert resolution_hours("low", {"high": 36}) == 72

    def test_deadline_from_submission(self):
        """Test the deadline is submission time plus the window."""
        deadline = calculate_sla_deadline(ComplaintPriority.CRITICAL, NOW)
        assert deadline == NOW + timedelta(hours=4)


class TestRemainingTime:
    """Test countdown calculation."""

    def test_on_time(self):
        remaining = get_remaining_time(NOW + timedelta(hours=30, minutes=15), now=NOW)

        assert remaining["hours"] == 30
        assert remaining["minutes"] == 15
        assert remaining["is_overdue"] is False
        assert remaining["status"] == "on_time"

    def test_at_risk_under_four_hours(self):
        """Test deadlines less than four hours away are at risk."""
        remaining = get_remaining_time(NOW + timedelta(hours=3, minutes=59), now=NOW)
        assert remaining["status"] == "at_risk"

    def test_overdue(self):
        remaining = get_remaining_time(NOW - timedelta(minutes=1), now=NOW)

        assert remaining["is_overdue"] is True
        assert remaining["percentage"] == 100
        assert remaining["status"] == "overdue"

    def test_completed_short_circuits(self):
        """Test completed complaints never report overdue."""
        remaining = get_remaining_time(NOW - timedelta(days=3), completed=True, now=NOW)

        assert remaining["status"] == "completed"
        assert remaining["is_overdue"] is False

    def test_percentage_against_72h_window(self):
        """Test elapsed percentage is measured against a 72 hour window."""
        remaining = get_remaining_time(NOW + timedelta(hours=36), now=NOW)
        assert remaining["percentage"] == 50

    def test_percentage_clamped_for_long_deadlines(self):
        remaining = get_remaining_time(NOW + timedelta(hours=100), now=NOW)
        assert remaining["percentage"] == 0


class TestSlaStatus:
    """Test badge status and countdown labels."""

    def test_resolved_is_completed(self):
        status = get_sla_status(NOW - timedelta(hours=5), ComplaintStatus.RESOLVED, now=NOW)

        assert status["status"] == "completed"
        assert status["color"] == "green"

    def test_open_and_overdue(self):
        status = get_sla_status(NOW - timedelta(hours=5), ComplaintStatus.IN_PROGRESS, now=NOW)

        assert status["status"] == "overdue"
        assert status["color"] == "red"

    def test_missing_deadline_is_on_time(self):
        assert get_sla_status(None, ComplaintStatus.RECEIVED, now=NOW)["status"] == "on_time"

    def test_countdown_labels(self):
        """Test the three countdown formats."""
        assert format_countdown(NOW - timedelta(hours=5), now=NOW) == "Overdue by 5h"
        assert format_countdown(NOW + timedelta(hours=3, minutes=20), now=NOW) == "3h 20m"
        assert format_countdown(NOW + timedelta(hours=52), now=NOW) == "2d 4h"
        assert format_countdown(NOW, completed=True, now=NOW) == "Completed"


class TestComplianceFigures:
    """Test aggregate SLA figures."""

    def test_compliance_percentage(self):
        assert calculate_sla_compliance(8, 6) == 75

    def test_compliance_without_complaints(self):
        """Test an empty period counts as fully compliant."""
        assert calculate_sla_compliance(0, 0) == 100

    def test_mean_resolution_time(self):
        """Test the mean ignores unresolved items."""
        items = [
            {"submitted_at": NOW, "resolved_at": NOW + timedelta(hours=10)},
            {"submitted_at": NOW, "resolved_at": NOW + timedelta(hours=5)},
            {"submitted_at": NOW, "resolved_at": None},
        ]
        assert calculate_resolution_time(items) == 7.5

    def test_negative_spans_count_as_zero(self):
        items = [
            {"submitted_at": NOW, "resolved_at": NOW - timedelta(hours=2)},
            {"submitted_at": NOW, "resolved_at": NOW + timedelta(hours=4)},
        ]
        assert calculate_resolution_time(items) == 2.0

    def test_mean_of_nothing(self):
        assert calculate_resolution_time([]) == 0.0
