"""
Single-session corrections, kiosk check-in / check-out and auto-checkout.

Each operation is its own unit of work and, in the same transaction,
revokes the approval of every day it touches: an approval is never left
pointing at pre-edit minutes. Batch corrections that should end approved
go through ``payroll_ledger.services.overrides`` instead.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import (ConflictError, NotFoundError,
                                            ValidationError, WrongWorkDateError)
from payroll_ledger.core.payroll_time import (auto_checkout_at, minutes_to_hours,
                                              normalize_instant,
                                              parse_calendar_day)
from payroll_ledger.db.session import unit_of_work
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.schemas.payroll import DaySession
from payroll_ledger.services.aggregator import session_minutes
from payroll_ledger.services.approvals import revoke_approval
from payroll_ledger.services.audit import SOURCE_KIOSK, AuditAction, record_event
from payroll_ledger.services.sessions import (assert_no_overlap,
                                              assert_span_clear,
                                              find_open_session, get_session,
                                              get_staff, insert_session,
                                              remove_session,
                                              replace_session_times,
                                              session_snapshot,
                                              validate_interval)

logger = logging.getLogger(__name__)


def to_day_session(session: AttendanceSession) -> DaySession:
    minutes = session_minutes(session)
    snapshot = session_snapshot(session)
    return DaySession(
        session_id=session.id,
        staff_id=session.staff_id,
        work_date=session.work_date.isoformat(),
        checkin_time=snapshot["checkinTime"],
        checkout_time=snapshot["checkoutTime"],
        minutes=minutes,
        hours=minutes_to_hours(minutes),
    )


# ── Manual corrections ──────────────────────────────────────────────
async def create_session(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    checkin_time: object,
    checkout_time: object,
    *,
    actor: str | None = None,
) -> DaySession:
    """File a new closed session under *work_date* and revoke the day's approval."""
    day = parse_calendar_day(work_date)
    checkin, checkout = validate_interval(day, checkin_time, checkout_time)

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        session = await insert_session(db, staff_id, checkin, checkout)
        await assert_no_overlap(db, staff_id, day)
        record_event(
            db,
            AuditAction.CREATE_SESSION,
            staff_id,
            day,
            session_id=session.id,
            details={"after": session_snapshot(session)},
            actor=actor,
        )
        await revoke_approval(db, staff_id, day, actor=actor, reason="create_session")

    logger.info("Created session %s for staff %s on %s", session.id, staff_id, day)
    return to_day_session(session)


async def update_session(
    db: AsyncSession,
    session_id: int,
    staff_id: int,
    work_date: date | str,
    checkin_time: object,
    checkout_time: object,
    *,
    actor: str | None = None,
) -> DaySession:
    """Replace both endpoints of one session; it must stay on *work_date*."""
    day = parse_calendar_day(work_date)
    checkin, checkout = validate_interval(day, checkin_time, checkout_time)

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        session = await get_session(db, session_id, staff_id=staff_id, lock=True)
        if session.work_date != day:
            raise WrongWorkDateError(f"La sesión {session_id} no pertenece al día {day}.")
        before = session_snapshot(session)
        await replace_session_times(db, session, checkin, checkout)
        await assert_no_overlap(db, staff_id, day)
        record_event(
            db,
            AuditAction.UPDATE_SESSION,
            staff_id,
            day,
            session_id=session.id,
            details={"before": before, "after": session_snapshot(session)},
            actor=actor,
        )
        await revoke_approval(db, staff_id, day, actor=actor, reason="update_session")

    logger.info("Updated session %s for staff %s on %s", session_id, staff_id, day)
    return to_day_session(session)


async def delete_session(
    db: AsyncSession,
    session_id: int,
    staff_id: int,
    work_date: date | str | None = None,
    *,
    actor: str | None = None,
) -> None:
    """Delete one session and revoke the approval of the day it was filed under."""
    expected_day = parse_calendar_day(work_date) if work_date is not None else None

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        session = await get_session(db, session_id, staff_id=staff_id, lock=True)
        day = session.work_date
        if expected_day is not None and day != expected_day:
            raise WrongWorkDateError(f"La sesión {session_id} no pertenece al día {expected_day}.")
        before = session_snapshot(session)
        await remove_session(db, session)
        record_event(
            db,
            AuditAction.DELETE_SESSION,
            staff_id,
            day,
            session_id=session_id,
            details={"before": before},
            actor=actor,
        )
        await revoke_approval(db, staff_id, day, actor=actor, reason="delete_session")

    logger.info("Deleted session %s for staff %s on %s", session_id, staff_id, day)


# ── Kiosk ───────────────────────────────────────────────────────────
async def check_in(db: AsyncSession, staff_id: int, *, now: datetime | None = None) -> DaySession:
    """Open a session at *now*; a staff member can have only one open session."""
    instant = normalize_instant(now) if now is not None else datetime.now(timezone.utc)

    async with unit_of_work(db):
        staff = await get_staff(db, staff_id, lock=True)
        if not staff.is_active:
            raise ValidationError("El colaborador está inactivo.")
        if await find_open_session(db, staff_id, lock=True) is not None:
            raise ConflictError("El colaborador ya tiene una sesión abierta.")
        session = await insert_session(db, staff_id, instant)
        await assert_span_clear(db, session)
        record_event(
            db,
            AuditAction.CREATE_SESSION,
            staff_id,
            session.work_date,
            session_id=session.id,
            details={"after": session_snapshot(session)},
            source=SOURCE_KIOSK,
        )
        await revoke_approval(db, staff_id, session.work_date, source=SOURCE_KIOSK, reason="check_in")

    logger.info("Check-in staff %s (session %s)", staff_id, session.id)
    return to_day_session(session)


async def check_out(db: AsyncSession, staff_id: int, *, now: datetime | None = None) -> DaySession:
    """Close the staff member's open session at *now*."""
    instant = normalize_instant(now) if now is not None else datetime.now(timezone.utc)

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        session = await find_open_session(db, staff_id, lock=True)
        if session is None:
            raise NotFoundError("El colaborador no tiene una sesión abierta.")
        if instant <= session.checkin_utc:
            raise ValidationError("La hora de salida debe ser posterior a la hora de entrada.")
        before = session_snapshot(session)
        await replace_session_times(db, session, session.checkin_utc, instant)
        await assert_span_clear(db, session)
        record_event(
            db,
            AuditAction.UPDATE_SESSION,
            staff_id,
            session.work_date,
            session_id=session.id,
            details={"before": before, "after": session_snapshot(session)},
            source=SOURCE_KIOSK,
        )
        await revoke_approval(db, staff_id, session.work_date, source=SOURCE_KIOSK, reason="check_out")

    logger.info("Check-out staff %s (session %s)", staff_id, session.id)
    return to_day_session(session)


async def close_expired_sessions(db: AsyncSession, *, now: datetime | None = None) -> list[DaySession]:
    """Close every open session whose auto-checkout instant has passed.

    A forgotten session is closed at ``AUTO_CHECKOUT_TIME`` on its check-in
    day (local midnight if it was opened later than that). All closures,
    their audit rows and the revocation of each affected day land in one
    transaction.
    """
    instant = normalize_instant(now) if now is not None else datetime.now(timezone.utc)
    closed: list[AttendanceSession] = []

    async with unit_of_work(db):
        staff_ids = (
            await db.execute(
                select(AttendanceSession.staff_id)
                .where(AttendanceSession.checkout_time.is_(None))
                .distinct()
            )
        ).scalars().all()
        for staff_id in sorted(staff_ids):
            await get_staff(db, staff_id, lock=True)

        result = await db.execute(
            select(AttendanceSession)
            .where(AttendanceSession.checkout_time.is_(None))
            .order_by(AttendanceSession.staff_id, AttendanceSession.checkin_time)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        for session in result.scalars().all():
            closing = auto_checkout_at(session.checkin_utc)
            if closing > instant:
                continue
            before = session_snapshot(session)
            await replace_session_times(db, session, session.checkin_utc, closing)
            record_event(
                db,
                AuditAction.UPDATE_SESSION,
                session.staff_id,
                session.work_date,
                session_id=session.id,
                details={"before": before, "after": session_snapshot(session), "reason": "auto_checkout"},
                source=SOURCE_KIOSK,
            )
            closed.append(session)

        for staff_id, day in sorted({(s.staff_id, s.work_date) for s in closed}):
            await revoke_approval(db, staff_id, day, source=SOURCE_KIOSK, reason="auto_checkout")

    if closed:
        logger.info("Auto-checkout closed %d stale session(s)", len(closed))
    return [to_day_session(s) for s in closed]
