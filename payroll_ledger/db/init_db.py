"""
Schema bootstrap — run once at process start, never lazily per request.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from payroll_ledger.db.base import Base

# Ensure all models are imported so metadata.create_all can see them
from payroll_ledger.models.approval import DayApproval  # noqa: F401
from payroll_ledger.models.attendance import AttendanceSession  # noqa: F401
from payroll_ledger.models.audit import AuditEvent  # noqa: F401
from payroll_ledger.models.payment import MonthPayment  # noqa: F401
from payroll_ledger.models.staff import StaffMember  # noqa: F401

logger = logging.getLogger(__name__)


async def init_models(engine: AsyncEngine) -> None:
    """Create every ledger table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")
