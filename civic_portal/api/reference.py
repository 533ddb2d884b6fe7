"""Public lookup lists used by the citizen and staff frontends."""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.database import get_db
from civic_portal.domain.reference import CategoryOut, DepartmentOut, WardOut
from civic_portal.services import reference

router = APIRouter(tags=["reference"])


@router.get("/wards", response_model=List[WardOut])
async def list_wards(db: AsyncSession = Depends(get_db)):
    return await reference.list_wards(db)


@router.get("/departments", response_model=List[DepartmentOut])
async def list_departments(db: AsyncSession = Depends(get_db)):
    return await reference.list_departments(db)


@router.get("/categories", response_model=List[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)):
    """Active complaint categories with their owning department."""
    return await reference.list_categories(db)
