"""
Read-side payroll views: the staff × day matrix and the sessions of one day.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import ValidationError
from payroll_ledger.core.payroll_time import (enumerate_days, minutes_to_hours,
                                              month_bounds, normalize_instant,
                                              parse_calendar_day, parse_month)
from payroll_ledger.models.approval import DayApproval
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.models.staff import StaffMember
from payroll_ledger.schemas.payroll import (DaySession, PayrollMatrixCell,
                                            PayrollMatrixResponse,
                                            PayrollMatrixRow)
from payroll_ledger.services.aggregator import session_minutes
from payroll_ledger.services.audit import (SOURCE_MANUAL, days_with_edits,
                                           session_events_for_day)
from payroll_ledger.services.corrections import to_day_session
from payroll_ledger.services.sessions import get_staff, list_day_sessions

logger = logging.getLogger(__name__)

MAX_MATRIX_DAYS = 93


# ── Matrix ──────────────────────────────────────────────────────────
def _resolve_range(month: object, start: object, end: object) -> tuple[date, date]:
    if month is not None:
        return month_bounds(parse_month(month))
    if start is None or end is None:
        raise ValidationError("Debes indicar un mes o un rango de fechas (start y end).")
    first, last = parse_calendar_day(start), parse_calendar_day(end)
    if first > last:
        raise ValidationError("La fecha inicial debe ser anterior o igual a la final.")
    if (last - first).days + 1 > MAX_MATRIX_DAYS:
        raise ValidationError(f"El rango no puede superar {MAX_MATRIX_DAYS} días.")
    return first, last


def _day_status(approved: bool, has_edits: bool) -> str:
    if has_edits:
        return "edited_and_approved" if approved else "edited_not_approved"
    return "approved" if approved else "pending"


async def payroll_matrix(
    db: AsyncSession,
    *,
    month: object = None,
    start: object = None,
    end: object = None,
) -> PayrollMatrixResponse:
    """Dense grid of active staff × days.

    A cell shows the approved snapshot when the day is approved and the
    current closed-session total otherwise.
    """
    first, last = _resolve_range(month, start, end)
    days = enumerate_days(first, last)

    staff_members = (
        await db.execute(
            select(StaffMember)
            .where(StaffMember.is_active.is_(True))
            .order_by(StaffMember.full_name.asc(), StaffMember.id.asc())
        )
    ).scalars().all()
    staff_ids = [s.id for s in staff_members]
    if not staff_ids:
        return PayrollMatrixResponse(days=[d.isoformat() for d in days], rows=[])

    minutes: dict[tuple[int, date], int] = defaultdict(int)
    sessions = await db.execute(
        select(AttendanceSession).where(
            AttendanceSession.staff_id.in_(staff_ids),
            AttendanceSession.work_date >= first,
            AttendanceSession.work_date <= last,
        )
    )
    for session in sessions.scalars().all():
        minutes[(session.staff_id, session.work_date)] += session_minutes(session)

    approvals = await db.execute(
        select(DayApproval)
        .where(
            DayApproval.staff_id.in_(staff_ids),
            DayApproval.work_date >= first,
            DayApproval.work_date <= last,
        )
        .execution_options(populate_existing=True)
    )
    approved: dict[tuple[int, date], DayApproval] = {
        (a.staff_id, a.work_date): a for a in approvals.scalars().all() if a.approved
    }
    edited = await days_with_edits(db, staff_ids, first, last)

    rows: list[PayrollMatrixRow] = []
    for staff in staff_members:
        cells: list[PayrollMatrixCell] = []
        for day in days:
            key = (staff.id, day)
            approval = approved.get(key)
            is_approved = approval is not None
            approved_hours = minutes_to_hours(approval.approved_minutes or 0) if is_approved else None
            cells.append(
                PayrollMatrixCell(
                    date=day.isoformat(),
                    hours=approved_hours if approved_hours is not None else minutes_to_hours(minutes[key]),
                    approved=is_approved,
                    approved_hours=approved_hours,
                    has_edits=key in edited,
                    day_status=_day_status(is_approved, key in edited),
                )
            )
        rows.append(PayrollMatrixRow(staff_id=staff.id, staff_name=staff.full_name, cells=cells))

    logger.debug("Matrix %s..%s: %d staff × %d days", first, last, len(rows), len(days))
    return PayrollMatrixResponse(days=[d.isoformat() for d in days], rows=rows)


# ── Day sessions ────────────────────────────────────────────────────
def _snapshot_minutes(snapshot: dict) -> int:
    checkin, checkout = snapshot.get("checkinTime"), snapshot.get("checkoutTime")
    if not checkin or not checkout:
        return 0
    seconds = (normalize_instant(checkout) - normalize_instant(checkin)).total_seconds()
    return max(0, int(seconds // 60))


async def day_sessions(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    *,
    include_history: bool = False,
) -> list[DaySession]:
    """Sessions filed under *work_date*, ordered by check-in.

    Sessions corrected by hand carry ``wasEdited`` and the times they had
    before the first correction. With *include_history* the pre-edit
    versions and deleted sessions follow as ``isOriginalRecord`` entries.
    """
    day = parse_calendar_day(work_date)
    await get_staff(db, staff_id)

    current = [to_day_session(s) for s in await list_day_sessions(db, staff_id, day)]
    current_ids = {s.session_id for s in current}

    # Earliest manual "before" snapshot = the state prior to any correction.
    originals: dict[int, dict] = {}
    for event in await session_events_for_day(db, staff_id, day):
        before = (event.details or {}).get("before")
        if event.source != SOURCE_MANUAL or event.session_id is None:
            continue
        if not before or event.session_id in originals:
            continue
        originals[event.session_id] = before

    for entry in current:
        before = originals.get(entry.session_id)
        if before is None:
            continue
        entry.was_edited = True
        entry.original_session_id = entry.session_id
        entry.original_checkin_time = before.get("checkinTime")
        entry.original_checkout_time = before.get("checkoutTime")

    if not include_history:
        return current

    history: list[DaySession] = []
    for session_id, before in originals.items():
        minutes = _snapshot_minutes(before)
        survives = session_id in current_ids
        history.append(
            DaySession(
                session_id=session_id,
                staff_id=staff_id,
                work_date=day.isoformat(),
                checkin_time=before.get("checkinTime"),
                checkout_time=before.get("checkoutTime"),
                minutes=minutes,
                hours=minutes_to_hours(minutes),
                original_session_id=session_id,
                replacement_session_id=session_id if survives else None,
                is_original_record=True,
                was_edited=survives,
            )
        )
    history.sort(key=lambda s: (s.checkin_time or "", s.session_id))
    return current + history
