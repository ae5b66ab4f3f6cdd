"""
Append-only audit log of ledger mutations.

Only ``record_event`` writes, and it only ever adds a row to the caller's
open transaction, so a rolled-back operation leaves no audit trace.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.payroll_time import parse_calendar_day, to_local_iso
from payroll_ledger.models.audit import AuditEvent
from payroll_ledger.schemas.payroll import AuditEventRead

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    APPROVE_DAY = "approve_day"
    UNAPPROVE_DAY = "unapprove_day"
    CREATE_SESSION = "create_session"
    UPDATE_SESSION = "update_session"
    DELETE_SESSION = "delete_session"


SESSION_ACTIONS = (
    AuditAction.CREATE_SESSION.value,
    AuditAction.UPDATE_SESSION.value,
    AuditAction.DELETE_SESSION.value,
)

SOURCE_MANUAL = "manual"
SOURCE_KIOSK = "kiosk"


def record_event(
    db: AsyncSession,
    action: AuditAction,
    staff_id: int,
    work_date: date,
    *,
    session_id: int | None = None,
    details: dict[str, Any] | None = None,
    actor: str | None = None,
    source: str = SOURCE_MANUAL,
) -> AuditEvent:
    event = AuditEvent(
        action=action.value,
        staff_id=staff_id,
        work_date=work_date,
        session_id=session_id,
        details=details,
        actor=actor,
        source=source,
    )
    db.add(event)
    logger.debug("Audit %s staff=%s day=%s session=%s", action.value, staff_id, work_date, session_id)
    return event


async def list_events(
    db: AsyncSession,
    *,
    staff_id: int | None = None,
    work_date: date | str | None = None,
    limit: int = 200,
) -> list[AuditEventRead]:
    """Most recent events first, optionally filtered by staff member and day."""
    query = select(AuditEvent).order_by(AuditEvent.id.desc()).limit(limit)
    if staff_id is not None:
        query = query.where(AuditEvent.staff_id == staff_id)
    if work_date is not None:
        query = query.where(AuditEvent.work_date == parse_calendar_day(work_date))
    result = await db.execute(query)
    return [
        AuditEventRead(
            id=ev.id,
            action=ev.action,
            staff_id=ev.staff_id,
            work_date=ev.work_date.isoformat(),
            session_id=ev.session_id,
            details=ev.details,
            actor=ev.actor,
            source=ev.source,
            created_at=to_local_iso(ev.created_at),
        )
        for ev in result.scalars().all()
    ]


async def session_events_for_day(
    db: AsyncSession, staff_id: int, work_date: date
) -> list[AuditEvent]:
    """Session create/update/delete events of one staff-day, oldest first."""
    result = await db.execute(
        select(AuditEvent)
        .where(
            AuditEvent.staff_id == staff_id,
            AuditEvent.work_date == work_date,
            AuditEvent.action.in_(SESSION_ACTIONS),
        )
        .order_by(AuditEvent.id.asc())
    )
    return list(result.scalars().all())


async def days_with_edits(
    db: AsyncSession, staff_ids: Iterable[int], start: date, end: date
) -> set[tuple[int, date]]:
    """(staff_id, day) pairs whose sessions were corrected by hand."""
    ids = list(staff_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(AuditEvent.staff_id, AuditEvent.work_date)
        .where(
            AuditEvent.staff_id.in_(ids),
            AuditEvent.work_date >= start,
            AuditEvent.work_date <= end,
            AuditEvent.action.in_(SESSION_ACTIONS),
            AuditEvent.source == SOURCE_MANUAL,
        )
        .distinct()
    )
    return {(row.staff_id, row.work_date) for row in result.all()}
