"""
Day aggregator — worked minutes of one staff member on one payroll day.

A session belongs to the day its check-in falls on in the payroll zone.
Open sessions (no checkout yet) count zero unless the caller explicitly
asks for a live total, which treats "now" as the checkout.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.payroll_time import ensure_utc, minutes_to_hours, parse_calendar_day
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.schemas.payroll import DayTotals
from payroll_ledger.services.sessions import list_day_sessions


def session_minutes(session: AttendanceSession, *, now: datetime | None = None) -> int:
    """Whole minutes between check-in and checkout, never negative."""
    checkout = session.checkout_utc
    if checkout is None:
        if now is None:
            return 0
        checkout = ensure_utc(now)
    seconds = (checkout - session.checkin_utc).total_seconds()
    return max(0, int(seconds // 60))


async def total_minutes(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    *,
    live: bool = False,
    now: datetime | None = None,
) -> int:
    """Sum of session minutes for *staff_id* on *work_date*.

    Payroll callers use the default (closed sessions only) so totals are
    deterministic; dashboards may pass ``live=True``.
    """
    day = parse_calendar_day(work_date)
    sessions = await list_day_sessions(db, staff_id, day)
    open_until = (now or datetime.now(timezone.utc)) if live else None
    return sum(session_minutes(s, now=open_until) for s in sessions)


async def day_totals(db: AsyncSession, staff_id: int, work_date: date | str) -> DayTotals:
    minutes = await total_minutes(db, staff_id, work_date)
    return DayTotals(total_minutes=minutes, total_hours=minutes_to_hours(minutes))
