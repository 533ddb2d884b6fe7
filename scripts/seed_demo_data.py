#!/usr/bin/env python3
"""
Demo data seeder for the Civic Portal

Creates wards, departments, complaint categories, one account per role
(with staff and supervisor profiles) and a couple of bills so that a fresh
development database can be explored through the API docs.

Usage:
    python scripts/seed_demo_data.py

Environment:
    DATABASE_URL selects the target database (defaults to local SQLite)
    SEED_PASSWORD overrides the password given to every demo account
"""

import asyncio
import os
import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from civic_portal.core.database import close_db, get_session_factory, init_db
from civic_portal.core.logging import get_logger, setup_logging
from civic_portal.domain.billing import BillCreate
from civic_portal.domain.notice import NoticeCreate
from civic_portal.domain.reference import CategoryCreate, DepartmentCreate, WardCreate
from civic_portal.domain.staff import StaffProfileCreate, SupervisorProfileCreate
from civic_portal.models import BillType, Department, StaffProfile, SupervisorLevel, User, UserRole, Ward
from civic_portal.services import notices, payments, reference, staff, users
from civic_portal.utils.time import today

logger = get_logger("seed")

DEMO_PASSWORD = os.getenv("SEED_PASSWORD", "Demo1234")

WARDS = [
    (1, "Ward 1 - Old Town"),
    (2, "Ward 2 - Riverside"),
    (3, "Ward 3 - Market District"),
]

DEPARTMENTS = [
    ("Roads and Infrastructure", "ROADS"),
    ("Water Supply", "WATER"),
    ("Sanitation", "SANIT"),
]

# (category name, department code)
CATEGORIES = [
    ("Potholes", "ROADS"),
    ("Street lighting", "ROADS"),
    ("Water leakage", "WATER"),
    ("No water supply", "WATER"),
    ("Garbage collection", "SANIT"),
]

ACCOUNTS = [
    ("admin@civic.local", "Portal Administrator", UserRole.ADMIN),
    ("supervisor@civic.local", "Ward Supervisor", UserRole.SUPERVISOR),
    ("staff@civic.local", "Field Engineer", UserRole.STAFF),
    ("citizen@civic.local", "Sita Sharma", UserRole.CITIZEN),
]


async def seed_reference(db):
    """Create wards, departments and categories unless wards already exist."""
    if await db.scalar(select(Ward.id).limit(1)):
        logger.info("Reference data already present, skipping")
        wards = list((await db.scalars(select(Ward).order_by(Ward.ward_number))).all())
        departments = {d.code: d for d in (await db.scalars(select(Department))).all()}
        return wards, departments

    wards = [await reference.create_ward(db, WardCreate(ward_number=n, name=name)) for n, name in WARDS]
    departments = {}
    for name, code in DEPARTMENTS:
        departments[code] = await reference.create_department(db, DepartmentCreate(name=name, code=code))
    for name, code in CATEGORIES:
        await reference.create_category(
            db, CategoryCreate(name=name, default_department_id=departments[code].id)
        )
    logger.info(f"Created {len(wards)} wards, {len(departments)} departments, {len(CATEGORIES)} categories")
    return wards, departments


async def seed_accounts(db, ward, department):
    """Create one account per role; existing emails are reused."""
    accounts = {}
    for email, full_name, role in ACCOUNTS:
        user = await users.get_user_by_email(db, email)
        if user is None:
            user = await users.create_user(db, email, DEMO_PASSWORD, full_name, role, ward_id=ward.id)
            logger.info(f"Created {role.value} account {email}")
        accounts[role] = user

    admin = accounts[UserRole.ADMIN]
    staff_user = accounts[UserRole.STAFF]
    if not await db.scalar(select(StaffProfile.id).where(StaffProfile.user_id == staff_user.id)):
        await staff.create_staff_profile(
            db, admin,
            StaffProfileCreate(
                user_id=staff_user.id,
                department_id=department.id,
                ward_id=ward.id,
                staff_role="field_engineer",
            ),
        )
    await staff.create_supervisor_profile(
        db, admin,
        SupervisorProfileCreate(
            user_id=accounts[UserRole.SUPERVISOR].id,
            supervisor_level=SupervisorLevel.COMBINED,
            assigned_wards=[ward.id],
            assigned_departments=[department.id],
            can_generate_reports=True,
        ),
    )
    return accounts


async def seed_bills_and_notices(db, admin: User, citizen: User, department):
    _, existing = await payments.list_bills(db, citizen)
    if existing:
        return
    await payments.create_bill(
        db, admin,
        BillCreate(
            citizen_id=citizen.id,
            bill_type=BillType.WATER,
            department_id=department.id,
            description="Water supply charges",
            base_amount=1200.0,
            tax_amount=156.0,
            due_date=today() + timedelta(days=15),
        ),
    )
    await payments.create_bill(
        db, admin,
        BillCreate(
            citizen_id=citizen.id,
            bill_type=BillType.PROPERTY_TAX,
            description="Annual property tax",
            base_amount=8500.0,
            due_date=today() - timedelta(days=10),
        ),
    )
    await notices.create_notice(
        db, admin,
        NoticeCreate(
            title="Welcome to the Civic Portal",
            excerpt="File complaints, pay bills and follow ward news online.",
            content="Residents can now file complaints, pay municipal bills and vote on budget proposals online.",
        ),
    )
    logger.info("Created demo bills and notice")


async def seed():
    await init_db()
    async with get_session_factory()() as db:
        try:
            wards, departments = await seed_reference(db)
            accounts = await seed_accounts(db, wards[0], departments["ROADS"])
            await seed_bills_and_notices(
                db, accounts[UserRole.ADMIN], accounts[UserRole.CITIZEN], departments["WATER"]
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    await close_db()


def main():
    setup_logging(level="INFO", json_format=False)
    print("=" * 60)
    print("Civic Portal - Demo Data Seeder")
    print("=" * 60)

    asyncio.run(seed())

    print("\nDemo accounts (password: " + DEMO_PASSWORD + "):")
    for email, _, role in ACCOUNTS:
        print(f"  {role.value:<11} {email}")


if __name__ == "__main__":
    main()
