"""
Approval ledger — per (staff member, day) approval snapshots.

Approving snapshots the day's current closed-session total; revoking keeps
the row but clears the snapshot. Both are upserts keyed on
(staff_id, work_date) and both leave an audit event behind.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.payroll_time import parse_calendar_day, to_local_iso
from payroll_ledger.db.session import unit_of_work
from payroll_ledger.db.upsert import upsert
from payroll_ledger.models.approval import DayApproval
from payroll_ledger.schemas.payroll import DayApprovalRead
from payroll_ledger.services.aggregator import total_minutes
from payroll_ledger.services.audit import SOURCE_MANUAL, AuditAction, record_event
from payroll_ledger.services.sessions import get_staff

logger = logging.getLogger(__name__)


def to_read(staff_id: int, work_date: date, approval: DayApproval | None) -> DayApprovalRead:
    if approval is None:
        return DayApprovalRead(staff_id=staff_id, work_date=work_date.isoformat(), approved=False)
    return DayApprovalRead(
        staff_id=approval.staff_id,
        work_date=approval.work_date.isoformat(),
        approved=bool(approval.approved),
        approved_minutes=approval.approved_minutes,
        approved_by=approval.approved_by,
        approved_at=to_local_iso(approval.approved_at),
    )


def _approval_query(staff_id: int, work_date: date):
    # Upserts bypass the identity map, so always reload the row.
    return (
        select(DayApproval)
        .where(DayApproval.staff_id == staff_id, DayApproval.work_date == work_date)
        .execution_options(populate_existing=True)
    )


async def get_approval(db: AsyncSession, staff_id: int, work_date: date | str) -> DayApproval | None:
    day = parse_calendar_day(work_date)
    result = await db.execute(_approval_query(staff_id, day))
    return result.scalar_one_or_none()


# ── In-transaction primitives ───────────────────────────────────────
async def record_approval(
    db: AsyncSession,
    staff_id: int,
    work_date: date,
    minutes: int,
    approved_by: str | None,
) -> DayApproval:
    await upsert(
        db,
        DayApproval,
        {"staff_id": staff_id, "work_date": work_date},
        {
            "approved": True,
            "approved_minutes": minutes,
            "approved_by": approved_by,
            "approved_at": datetime.now(timezone.utc),
        },
    )
    record_event(
        db,
        AuditAction.APPROVE_DAY,
        staff_id,
        work_date,
        details={"approvedMinutes": minutes, "approvedBy": approved_by},
        actor=approved_by,
    )
    result = await db.execute(_approval_query(staff_id, work_date))
    return result.scalar_one()


async def revoke_approval(
    db: AsyncSession,
    staff_id: int,
    work_date: date,
    *,
    actor: str | None = None,
    source: str = SOURCE_MANUAL,
    reason: str | None = None,
) -> DayApproval:
    await upsert(
        db,
        DayApproval,
        {"staff_id": staff_id, "work_date": work_date},
        {
            "approved": False,
            "approved_minutes": None,
            "approved_by": None,
            "approved_at": None,
        },
    )
    details: dict[str, object] = {"approved": False}
    if reason:
        details["reason"] = reason
    record_event(
        db,
        AuditAction.UNAPPROVE_DAY,
        staff_id,
        work_date,
        details=details,
        actor=actor,
        source=source,
    )
    result = await db.execute(_approval_query(staff_id, work_date))
    return result.scalar_one()


# ── Public operations ───────────────────────────────────────────────
async def approve_day(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    approved_by: str | None = None,
) -> DayApprovalRead:
    """Snapshot the day's current total as approved minutes."""
    day = parse_calendar_day(work_date)
    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        minutes = await total_minutes(db, staff_id, day)
        approval = await record_approval(db, staff_id, day, minutes, approved_by)
    logger.info("Approved staff %s on %s: %d min (by %s)", staff_id, day, minutes, approved_by)
    return to_read(staff_id, day, approval)


async def unapprove_day(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    *,
    actor: str | None = None,
) -> DayApprovalRead:
    day = parse_calendar_day(work_date)
    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        approval = await revoke_approval(db, staff_id, day, actor=actor)
    logger.info("Revoked approval of staff %s on %s", staff_id, day)
    return to_read(staff_id, day, approval)
