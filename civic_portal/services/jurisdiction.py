"""Supervisor jurisdiction and permission checks.

A supervisor covers an entity (complaint, staff member, task) when the
entity's ward OR department is among the supervisor's assignments. Senior
supervisors and admins cover everything.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import PermissionDeniedError
from civic_portal.models import SupervisorLevel, SupervisorProfile, User, UserRole

ACTIONS = ("assign_staff", "escalate", "close_complaints", "create_tasks", "generate_reports")


@dataclass
class Jurisdiction:
    user_id: str
    wards: List[str] = field(default_factory=list)
    departments: List[str] = field(default_factory=list)
    is_senior: bool = False
    permissions: Dict[str, bool] = field(default_factory=dict)

    def covers(self, ward_id: Optional[str] = None, department_id: Optional[str] = None) -> bool:
        if self.is_senior:
            return True
        return (ward_id is not None and ward_id in self.wards) or (
            department_id is not None and department_id in self.departments
        )

    def can(self, action: str) -> bool:
        return bool(self.permissions.get(action, False))

    def scope_clause(self, ward_column, department_column):
        """SQL filter restricting rows to this jurisdiction (None when unrestricted)."""
        if self.is_senior:
            return None
        clauses = []
        if self.wards:
            clauses.append(ward_column.in_(self.wards))
        if self.departments:
            clauses.append(department_column.in_(self.departments))
        return or_(*clauses) if clauses else false()


def jurisdiction_from_profile(user_id: str, profile: Optional[SupervisorProfile]) -> Jurisdiction:
    if profile is None:
        return Jurisdiction(user_id=user_id)
    return Jurisdiction(
        user_id=user_id,
        wards=list(profile.assigned_wards or []),
        departments=list(profile.assigned_departments or []),
        is_senior=SupervisorLevel(profile.supervisor_level) == SupervisorLevel.SENIOR,
        permissions={action: bool(getattr(profile, f"can_{action}")) for action in ACTIONS},
    )


async def load_jurisdiction(db: AsyncSession, user: User) -> Jurisdiction:
    """Jurisdiction for a supervisor; admins get an unrestricted one."""
    if UserRole(user.role) == UserRole.ADMIN:
        return Jurisdiction(
            user_id=user.id,
            is_senior=True,
            permissions={action: True for action in ACTIONS},
        )
    if UserRole(user.role) != UserRole.SUPERVISOR:
        return Jurisdiction(user_id=user.id)

    profile = await db.scalar(select(SupervisorProfile).where(SupervisorProfile.user_id == user.id))
    return jurisdiction_from_profile(user.id, profile)


def can_access(
    jurisdiction: Jurisdiction,
    action: Optional[str] = None,
    ward_id: Optional[str] = None,
    department_id: Optional[str] = None,
    check_entity: bool = True,
) -> bool:
    """Permission flag (when an action is named) AND jurisdiction coverage."""
    if action and not jurisdiction.can(action):
        return False
    if check_entity:
        return jurisdiction.covers(ward_id, department_id)
    return True


def require_access(
    jurisdiction: Jurisdiction,
    action: Optional[str] = None,
    ward_id: Optional[str] = None,
    department_id: Optional[str] = None,
    check_entity: bool = True,
) -> None:
    if not can_access(jurisdiction, action, ward_id, department_id, check_entity):
        if action and not jurisdiction.can(action):
            raise PermissionDeniedError(
                f"Missing permission: {action}", details={"action": action}
            )
        raise PermissionDeniedError("Outside your jurisdiction")
