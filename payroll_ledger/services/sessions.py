"""
Session store accessor — reads and writes of raw attendance sessions.

Nothing here commits: every function runs inside the caller's unit of
work so that session edits, approval invalidation and audit rows land in
one transaction. ``work_date`` is (re)derived from the check-in instant on
every write.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import (ConflictError, NotFoundError,
                                            ValidationError, WrongWorkDateError)
from payroll_ledger.core.payroll_time import (day_bounds, enumerate_days,
                                              local_date_of,
                                              normalize_instant, to_local_iso)
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.models.staff import StaffMember

logger = logging.getLogger(__name__)

# An open session reaches forward without bound when checking overlaps.
_OPEN_END = datetime.max.replace(tzinfo=timezone.utc)


# ── Lookups ─────────────────────────────────────────────────────────
async def get_staff(db: AsyncSession, staff_id: int, *, lock: bool = False) -> StaffMember:
    """Fetch a staff member or raise ``NotFoundError``.

    With ``lock=True`` the row is selected FOR UPDATE, which serialises
    concurrent corrections of the same staff member.
    """
    query = select(StaffMember).where(StaffMember.id == staff_id)
    if lock:
        query = query.with_for_update()
    staff = (await db.execute(query)).scalar_one_or_none()
    if staff is None:
        raise NotFoundError("No encontramos al colaborador indicado.")
    return staff


async def get_session(
    db: AsyncSession,
    session_id: int,
    *,
    staff_id: int | None = None,
    lock: bool = False,
) -> AttendanceSession:
    query = select(AttendanceSession).where(AttendanceSession.id == session_id)
    if lock:
        query = query.with_for_update()
    session = (await db.execute(query)).scalar_one_or_none()
    if session is None or (staff_id is not None and session.staff_id != staff_id):
        raise NotFoundError(f"No encontramos la sesión {session_id} del colaborador.")
    return session


async def list_day_sessions(
    db: AsyncSession, staff_id: int, work_date: date
) -> list[AttendanceSession]:
    result = await db.execute(
        select(AttendanceSession)
        .where(
            AttendanceSession.staff_id == staff_id,
            AttendanceSession.work_date == work_date,
        )
        .order_by(AttendanceSession.checkin_time.asc(), AttendanceSession.id.asc())
    )
    return list(result.scalars().all())


async def find_open_session(
    db: AsyncSession, staff_id: int, *, lock: bool = False
) -> AttendanceSession | None:
    query = (
        select(AttendanceSession)
        .where(
            AttendanceSession.staff_id == staff_id,
            AttendanceSession.checkout_time.is_(None),
        )
        .order_by(AttendanceSession.checkin_time.desc())
        .limit(1)
    )
    if lock:
        query = query.with_for_update()
    return (await db.execute(query)).scalar_one_or_none()


# ── Validation ──────────────────────────────────────────────────────
def validate_interval(
    work_date: date, checkin_raw: object, checkout_raw: object
) -> tuple[datetime, datetime]:
    """Normalise a session's endpoints and check they fit *work_date*.

    Raises ``ValidationError`` when checkout is not after checkin and
    ``WrongWorkDateError`` when either endpoint falls on another local day.
    """
    checkin = normalize_instant(checkin_raw, default_day=work_date)
    checkout = normalize_instant(checkout_raw, default_day=work_date)
    if checkout <= checkin:
        raise ValidationError("La hora de salida debe ser posterior a la hora de entrada.")
    if local_date_of(checkin) != work_date or local_date_of(checkout) != work_date:
        raise WrongWorkDateError()
    return checkin, checkout


async def assert_no_overlap(db: AsyncSession, staff_id: int, work_date: date) -> None:
    """Re-query the staff member's sessions around *work_date* and reject overlaps.

    Covers every session filed under the day, closed sessions from
    neighbouring days whose interval crosses into it, and sessions still
    open from any earlier day, which reach forward without bound. Pending
    changes are flushed first so the check sees the transaction's own writes.
    """
    await db.flush()
    start, end = day_bounds(work_date)
    result = await db.execute(
        select(AttendanceSession).where(
            AttendanceSession.staff_id == staff_id,
            or_(
                AttendanceSession.work_date == work_date,
                and_(
                    AttendanceSession.checkout_time.is_not(None),
                    AttendanceSession.checkout_time > start,
                    AttendanceSession.checkin_time < end,
                ),
                and_(
                    AttendanceSession.checkout_time.is_(None),
                    AttendanceSession.checkin_time < end,
                ),
            ),
        )
    )
    ordered = sorted(result.scalars().all(), key=lambda s: (s.checkin_utc, s.id))

    horizon: datetime | None = None
    for session in ordered:
        if horizon is not None and session.checkin_utc < horizon:
            logger.warning(
                "Overlap detected for staff %s on %s at session %s",
                staff_id, work_date, session.id,
            )
            raise ConflictError("Los horarios se superponen con otra sesión registrada.")
        reach = session.checkout_utc or _OPEN_END
        horizon = reach if horizon is None else max(horizon, reach)


async def assert_span_clear(db: AsyncSession, session: AttendanceSession) -> None:
    """Run ``assert_no_overlap`` for every local day *session* touches.

    An open session is also checked against anything that starts or ends
    after its check-in, on any later day.
    """
    first = local_date_of(session.checkin_utc)
    if session.checkout_time is None:
        await assert_no_overlap(db, session.staff_id, first)
        later = await db.execute(
            select(AttendanceSession.id)
            .where(
                AttendanceSession.staff_id == session.staff_id,
                AttendanceSession.id != session.id,
                or_(
                    AttendanceSession.checkin_time >= session.checkin_time,
                    AttendanceSession.checkout_time > session.checkin_time,
                ),
            )
            .limit(1)
        )
        if later.scalar_one_or_none() is not None:
            raise ConflictError("Los horarios se superponen con otra sesión registrada.")
        return
    last = local_date_of(session.checkout_utc - timedelta(microseconds=1))
    for day in enumerate_days(first, last):
        await assert_no_overlap(db, session.staff_id, day)


# ── Writes ──────────────────────────────────────────────────────────
async def insert_session(
    db: AsyncSession,
    staff_id: int,
    checkin: datetime,
    checkout: datetime | None = None,
) -> AttendanceSession:
    session = AttendanceSession(
        staff_id=staff_id,
        checkin_time=checkin,
        checkout_time=checkout,
        work_date=local_date_of(checkin),
    )
    db.add(session)
    await db.flush()
    return session


async def replace_session_times(
    db: AsyncSession,
    session: AttendanceSession,
    checkin: datetime,
    checkout: datetime | None,
) -> AttendanceSession:
    session.checkin_time = checkin
    session.checkout_time = checkout
    session.work_date = local_date_of(checkin)
    await db.flush()
    return session


async def remove_session(db: AsyncSession, session: AttendanceSession) -> None:
    await db.delete(session)
    await db.flush()


def session_snapshot(session: AttendanceSession) -> dict[str, str | None]:
    """Before/after state stored in audit details."""
    return {
        "checkinTime": to_local_iso(session.checkin_time),
        "checkoutTime": to_local_iso(session.checkout_time),
    }
