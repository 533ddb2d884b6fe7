"""SLA deadline and countdown helpers.

Pure functions over datetimes so that both the complaint service and the
dashboards can share them. ``now`` is injectable everywhere for tests.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

from civic_portal.utils.time import utcnow

# Resolution hours per priority
DEFAULT_SLA_HOURS: Dict[str, int] = {
    "critical": 4,
    "urgent": 12,
    "high": 24,
    "medium": 48,
    "low": 72,
}
FALLBACK_SLA_HOURS = 48

# Visual window the progress percentage is measured against
SLA_WINDOW_HOURS = 72
AT_RISK_HOURS = 4

SLA_STATUS_META = {
    "completed": {"color": "green", "label": "Completed", "description": "SLA completed on time"},
    "overdue": {"color": "red", "label": "Overdue", "description": "SLA deadline has passed"},
    "at_risk": {"color": "orange", "label": "At Risk", "description": "Approaching SLA deadline"},
    "on_time": {"color": "blue", "label": "On Track", "description": "SLA on track"},
}


def _priority_key(priority: Any) -> str:
    return getattr(priority, "value", priority) or ""


def resolution_hours(priority: Any, policy: Optional[Mapping[str, int]] = None) -> int:
    """Hours allowed for a priority; admin policy overrides the defaults."""
    key = _priority_key(priority)
    if policy and policy.get(key):
        return int(policy[key])
    return DEFAULT_SLA_HOURS.get(key, FALLBACK_SLA_HOURS)


def calculate_sla_deadline(
    priority: Any,
    submitted_at: datetime,
    policy: Optional[Mapping[str, int]] = None,
) -> datetime:
    return submitted_at + timedelta(hours=resolution_hours(priority, policy))


def get_remaining_time(
    deadline: datetime,
    completed: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Time left until ``deadline``.

    Returns:
        Dict with hours, minutes, seconds, is_overdue, percentage (elapsed
        share of a 72h window, 0-100) and status
        (on_time | at_risk | overdue | completed).
    """
    if completed:
        return {"hours": 0, "minutes": 0, "seconds": 0, "is_overdue": False,
                "percentage": 100, "status": "completed"}

    now = now or utcnow()
    diff = (deadline - now).total_seconds()

    if diff <= 0:
        return {"hours": 0, "minutes": 0, "seconds": 0, "is_overdue": True,
                "percentage": 100, "status": "overdue"}

    window = SLA_WINDOW_HOURS * 3600
    percentage = min(100.0, max(0.0, (window - diff) / window * 100))

    hours = int(diff // 3600)
    minutes = int((diff % 3600) // 60)
    seconds = int(diff % 60)

    return {
        "hours": hours,
        "minutes": minutes,
        "seconds": seconds,
        "is_overdue": False,
        "percentage": round(percentage),
        "status": "at_risk" if hours < AT_RISK_HOURS else "on_time",
    }


def get_sla_status(
    deadline: Optional[datetime],
    complaint_status: Any,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """SLA badge for a complaint: status plus display colour/label/description."""
    status_value = _priority_key(complaint_status)
    if status_value in ("resolved", "closed"):
        key = "completed"
    elif deadline is None:
        key = "on_time"
    else:
        key = get_remaining_time(deadline, now=now)["status"]
    return {"status": key, **SLA_STATUS_META[key]}


def format_countdown(
    deadline: datetime,
    completed: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Short countdown label: ``"Overdue by 5h"``, ``"3h 20m"`` or ``"2d 4h"``."""
    if completed:
        return "Completed"

    now = now or utcnow()
    remaining = get_remaining_time(deadline, now=now)

    if remaining["is_overdue"]:
        hours = int(abs((now - deadline).total_seconds()) // 3600)
        return f"Overdue by {hours}h"

    if remaining["hours"] < 24:
        return f"{remaining['hours']}h {remaining['minutes']}m"

    return f"{remaining['hours'] // 24}d {remaining['hours'] % 24}h"


def calculate_sla_compliance(total: int, on_time: int) -> int:
    if total == 0:
        return 100
    return round(on_time / total * 100)


def calculate_resolution_time(items: Iterable[Mapping[str, Optional[datetime]]]) -> float:
    """Mean hours between ``submitted_at`` and ``resolved_at``, one decimal.

    Items missing either timestamp are ignored; negative spans count as 0.
    """
    spans = [
        max(0.0, (item["resolved_at"] - item["submitted_at"]).total_seconds())
        for item in items
        if item.get("submitted_at") and item.get("resolved_at")
    ]
    if not spans:
        return 0.0
    return round(sum(spans) / len(spans) / 3600, 1)
