"""Aggregate router mounted by the application under ``API_PREFIX``."""
from fastapi import APIRouter

from civic_portal.api import (
    admin,
    auth,
    budgeting,
    complaints,
    notices,
    notifications,
    payments,
    reference,
    staff,
    supervisor,
    users,
)

router = APIRouter()

router.include_router(auth.router)
router.include_router(users.router)
router.include_router(reference.router)
router.include_router(complaints.router)
router.include_router(payments.router)
router.include_router(notices.router)
router.include_router(notifications.router)
router.include_router(budgeting.router)
router.include_router(staff.router)
router.include_router(supervisor.router)
router.include_router(admin.router)
