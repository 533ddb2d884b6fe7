"""Staff workload capacity and rebalancing helpers."""
from typing import Any, Dict, List, Optional, Sequence

from civic_portal.core.config import settings

OVERLOAD_THRESHOLD = 80
AVAILABLE_THRESHOLD = 50
MAX_MOVES_PER_STAFF = 2


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def check_workload_capacity(staff: Any) -> Dict[str, Any]:
    """Capacity usage for a staff profile (ORM row or dict).

    Capacity falls back to DEFAULT_STAFF_CAPACITY when unset or zero; the
    percentage is clamped to [0, 100].
    """
    capacity = _get(staff, "max_concurrent_assignments") or settings.default_staff_capacity
    current = max(0, _get(staff, "current_workload") or 0)
    percentage = min(100, round(current / capacity * 100))

    return {
        "current": current,
        "capacity": capacity,
        "percentage": percentage,
        "available_slots": max(0, capacity - current),
        "is_overloaded": percentage >= OVERLOAD_THRESHOLD,
    }


def workload_color(percentage: float) -> str:
    if percentage < AVAILABLE_THRESHOLD:
        return "green"
    if percentage < OVERLOAD_THRESHOLD:
        return "amber"
    return "red"


def _status_value(staff: Any) -> str:
    status = _get(staff, "availability_status")
    return getattr(status, "value", status) or ""


def suggest_staff(
    staff_list: Sequence[Any],
    ward_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Rank available staff for an assignment.

    Least-loaded first; on equal load, staff from the complaint's ward win.
    """
    candidates = []
    for staff in staff_list:
        if _status_value(staff) != "available" or not _get(staff, "is_active", True):
            continue
        capacity = check_workload_capacity(staff)
        candidates.append({
            "user_id": _get(staff, "user_id"),
            "staff_code": _get(staff, "staff_code"),
            "ward_id": _get(staff, "ward_id"),
            "department_id": _get(staff, "department_id"),
            "capacity_percentage": capacity["percentage"],
            "available_slots": capacity["available_slots"],
            "ward_match": bool(ward_id) and _get(staff, "ward_id") == ward_id,
        })

    candidates.sort(key=lambda c: (c["capacity_percentage"], not c["ward_match"]))
    for rank, candidate in enumerate(candidates, start=1):
        candidate["recommendation_rank"] = rank

    return candidates[:limit] if limit else candidates


def distribute_evenly(
    assignments: Sequence[Dict[str, Any]],
    staff_list: Sequence[Any],
) -> List[Dict[str, Any]]:
    """Propose moves from overloaded staff to lightly loaded staff.

    Each overloaded member gives up at most two assignments; targets are
    available staff under 50% capacity, chosen round-robin.

    Args:
        assignments: Dicts with ``id``, ``type`` and ``staff_id``
        staff_list: Staff profiles (ORM rows or dicts)

    Returns:
        Dicts with ``assignment_id``, ``type``, ``from_staff`` and ``to_staff``
    """
    overloaded = [s for s in staff_list if check_workload_capacity(s)["is_overloaded"]]
    targets = [
        s for s in staff_list
        if check_workload_capacity(s)["percentage"] < AVAILABLE_THRESHOLD
        and _status_value(s) == "available"
    ]

    if not targets:
        return []

    moves = []
    target_index = 0
    for source in overloaded:
        source_id = _get(source, "user_id")
        owned = [a for a in assignments if a["staff_id"] == source_id]
        for assignment in owned[:MAX_MOVES_PER_STAFF]:
            target = targets[target_index]
            moves.append({
                "assignment_id": assignment["id"],
                "type": assignment.get("type", "complaint"),
                "from_staff": source_id,
                "to_staff": _get(target, "user_id"),
            })
            target_index = (target_index + 1) % len(targets)

    return moves
