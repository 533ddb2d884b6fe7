"""Wards, departments, complaint categories and SLA policy."""
from typing import Dict, List, Type

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.exceptions import ConflictError, ResourceNotFoundError
from civic_portal.core.logging import get_logger
from civic_portal.domain.reference import (
    CategoryCreate,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentUpdate,
    WardCreate,
    WardUpdate,
)
from civic_portal.models import ComplaintCategory, ComplaintPriority, Department, SlaPolicy, User, Ward
from civic_portal.services.sla import DEFAULT_SLA_HOURS
from civic_portal.utils.time import utcnow

logger = get_logger(__name__)


async def _list(db: AsyncSession, model: Type, order_by, active_only: bool) -> List:
    stmt = select(model)
    if active_only:
        stmt = stmt.where(model.is_active.is_(True))
    result = await db.execute(stmt.order_by(order_by))
    return list(result.scalars().all())


async def _get(db: AsyncSession, model: Type, label: str, ident: str):
    row = await db.get(model, ident)
    if row is None:
        raise ResourceNotFoundError(label, ident)
    return row


def _apply(row, changes: BaseModel) -> None:
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(row, field, value)


# Wards

async def list_wards(db: AsyncSession, active_only: bool = True) -> List[Ward]:
    return await _list(db, Ward, Ward.ward_number, active_only)


async def get_ward(db: AsyncSession, ward_id: str) -> Ward:
    return await _get(db, Ward, "Ward", ward_id)


async def create_ward(db: AsyncSession, data: WardCreate) -> Ward:
    existing = await db.scalar(select(Ward).where(Ward.ward_number == data.ward_number))
    if existing:
        raise ConflictError(f"Ward {data.ward_number} already exists", code="WARD_EXISTS")
    ward = Ward(**data.model_dump())
    db.add(ward)
    await db.flush()
    logger.info(f"Ward {ward.ward_number} created")
    return ward


async def update_ward(db: AsyncSession, ward_id: str, data: WardUpdate) -> Ward:
    ward = await get_ward(db, ward_id)
    _apply(ward, data)
    await db.flush()
    return ward


# Departments

async def list_departments(db: AsyncSession, active_only: bool = True) -> List[Department]:
    return await _list(db, Department, Department.name, active_only)


async def get_department(db: AsyncSession, department_id: str) -> Department:
    return await _get(db, Department, "Department", department_id)


async def create_department(db: AsyncSession, data: DepartmentCreate) -> Department:
    code = data.code.upper()
    if await db.scalar(select(Department).where(Department.code == code)):
        raise ConflictError(f"Department code {code} already exists", code="DEPARTMENT_EXISTS")
    department = Department(**{**data.model_dump(), "code": code})
    db.add(department)
    await db.flush()
    logger.info(f"Department {code} created")
    return department


async def update_department(db: AsyncSession, department_id: str, data: DepartmentUpdate) -> Department:
    department = await get_department(db, department_id)
    _apply(department, data)
    await db.flush()
    return department


# Complaint categories

async def list_categories(db: AsyncSession, active_only: bool = True) -> List[ComplaintCategory]:
    return await _list(db, ComplaintCategory, ComplaintCategory.name, active_only)


async def get_category(db: AsyncSession, category_id: str) -> ComplaintCategory:
    return await _get(db, ComplaintCategory, "Category", category_id)


async def create_category(db: AsyncSession, data: CategoryCreate) -> ComplaintCategory:
    if data.default_department_id:
        await get_department(db, data.default_department_id)
    category = ComplaintCategory(**data.model_dump())
    db.add(category)
    await db.flush()
    return category


async def update_category(db: AsyncSession, category_id: str, data: CategoryUpdate) -> ComplaintCategory:
    category = await get_category(db, category_id)
    if data.default_department_id:
        await get_department(db, data.default_department_id)
    _apply(category, data)
    await db.flush()
    return category


# SLA policy

async def get_sla_policy(db: AsyncSession) -> Dict[str, int]:
    """Effective resolution hours per priority value."""
    result = await db.execute(select(SlaPolicy))
    overrides = {ComplaintPriority(p.priority).value: p.resolution_hours for p in result.scalars().all()}
    return {**DEFAULT_SLA_HOURS, **overrides}


async def list_sla_policies(db: AsyncSession) -> List[Dict]:
    result = await db.execute(select(SlaPolicy))
    overrides = {ComplaintPriority(p.priority).value: p.resolution_hours for p in result.scalars().all()}
    return [
        {
            "priority": priority,
            "resolution_hours": overrides.get(priority.value, DEFAULT_SLA_HOURS[priority.value]),
            "is_default": priority.value not in overrides,
        }
        for priority in ComplaintPriority
    ]


async def upsert_sla_policy(
    db: AsyncSession, actor: User, priority: ComplaintPriority, resolution_hours: int
) -> Dict:
    policy = await db.scalar(select(SlaPolicy).where(SlaPolicy.priority == priority))
    if policy is None:
        policy = SlaPolicy(priority=priority, resolution_hours=resolution_hours, updated_by=actor.id)
        db.add(policy)
    else:
        policy.resolution_hours = resolution_hours
        policy.updated_by = actor.id
        policy.updated_at = utcnow()
    await db.flush()
    logger.info(f"SLA for {priority.value} set to {resolution_hours}h", extra={"user_id": actor.id})
    return {"priority": priority, "resolution_hours": resolution_hours, "is_default": False}
