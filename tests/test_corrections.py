"""Tests for single-session corrections and kiosk check-in / check-out."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import (ConflictError, NotFoundError,
                                            ValidationError, WrongWorkDateError)
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.models.audit import AuditEvent
from payroll_ledger.services.aggregator import total_minutes
from payroll_ledger.services.approvals import approve_day, get_approval
from payroll_ledger.services.corrections import (check_in, check_out,
                                                 close_expired_sessions,
                                                 create_session,
                                                 delete_session,
                                                 update_session)

DAY = "2025-10-07"


async def _audit(db: AsyncSession, staff_id: int) -> list[AuditEvent]:
    result = await db.execute(
        select(AuditEvent).where(AuditEvent.staff_id == staff_id).order_by(AuditEvent.id)
    )
    return list(result.scalars().all())


# ── Invalidation ────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_delete_revokes_approval(db_session: AsyncSession, make_staff, make_session):
    """Deleting a session of an approved day leaves the day not approved."""
    staff_id = await make_staff(staff_id=9)
    await make_session(staff_id, f"{DAY}T08:00", f"{DAY}T09:00", session_id=101)
    await make_session(staff_id, f"{DAY}T10:00", f"{DAY}T12:00")
    await approve_day(db_session, staff_id, DAY)

    await delete_session(db_session, 101, staff_id, DAY, actor="supervisor")

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None
    assert approval.approved is False
    assert approval.approved_minutes is None
    assert await total_minutes(db_session, staff_id, DAY) == 120

    actions = [e.action for e in await _audit(db_session, staff_id)]
    assert actions == ["approve_day", "delete_session", "unapprove_day"]


@pytest.mark.asyncio
async def test_create_revokes_approval(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await approve_day(db_session, staff_id, DAY)

    created = await create_session(db_session, staff_id, DAY, f"{DAY}T08:00", f"{DAY}T09:45")
    assert created.minutes == 105
    assert created.hours == 1.75
    assert created.checkin_time == "2025-10-07T08:00:00-05:00"

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None and approval.approved is False


@pytest.mark.asyncio
async def test_update_revokes_approval_and_audits_before_after(
    db_session: AsyncSession, make_staff, make_session
):
    staff_id = await make_staff()
    sid = await make_session(staff_id, f"{DAY}T08:00", f"{DAY}T09:00")
    await approve_day(db_session, staff_id, DAY)

    updated = await update_session(
        db_session, sid, staff_id, DAY, f"{DAY}T08:00", f"{DAY}T10:00", actor="rrhh"
    )
    assert updated.minutes == 120

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None and approval.approved is False

    events = await _audit(db_session, staff_id)
    update = next(e for e in events if e.action == "update_session")
    assert update.actor == "rrhh"
    assert update.source == "manual"
    assert update.details["before"]["checkoutTime"] == "2025-10-07T09:00:00-05:00"
    assert update.details["after"]["checkoutTime"] == "2025-10-07T10:00:00-05:00"


@pytest.mark.asyncio
async def test_update_cannot_move_session_to_another_day(db_session: AsyncSession, make_staff, make_session):
    staff_id = await make_staff()
    sid = await make_session(staff_id, f"{DAY}T08:00", f"{DAY}T09:00")

    with pytest.raises(WrongWorkDateError):
        await update_session(db_session, sid, staff_id, DAY, "2025-10-08T08:00", "2025-10-08T09:00")
    with pytest.raises(WrongWorkDateError):
        await update_session(db_session, sid, staff_id, "2025-10-08", "2025-10-08T08:00", "2025-10-08T09:00")


@pytest.mark.asyncio
async def test_create_overlapping_session_is_rolled_back(db_session: AsyncSession, make_staff, make_session):
    staff_id = await make_staff()
    await make_session(staff_id, f"{DAY}T08:00", f"{DAY}T12:00")
    await approve_day(db_session, staff_id, DAY)

    with pytest.raises(ConflictError):
        await create_session(db_session, staff_id, DAY, f"{DAY}T11:30", f"{DAY}T13:00")

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None and approval.approved is True
    assert approval.approved_minutes == 240
    assert [e.action for e in await _audit(db_session, staff_id)] == ["approve_day"]


@pytest.mark.asyncio
async def test_create_rejects_reversed_interval(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    with pytest.raises(ValidationError):
        await create_session(db_session, staff_id, DAY, f"{DAY}T10:00", f"{DAY}T10:00")


@pytest.mark.asyncio
async def test_delete_unknown_session(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    with pytest.raises(NotFoundError):
        await delete_session(db_session, 12345, staff_id)


@pytest.mark.asyncio
async def test_closed_session_from_previous_day_blocks_overlap(
    db_session: AsyncSession, make_staff, make_session
):
    """A night session filed under the 6th still reaches into the 7th."""
    staff_id = await make_staff()
    # 22:00 on the 6th until 02:00 on the 7th (local), filed under the 6th.
    await make_session(staff_id, "2025-10-06T22:00", f"{DAY}T02:00")

    with pytest.raises(ConflictError):
        await create_session(db_session, staff_id, DAY, f"{DAY}T01:00", f"{DAY}T03:00")
    created = await create_session(db_session, staff_id, DAY, f"{DAY}T02:00", f"{DAY}T03:00")
    assert created.minutes == 60


# ── Kiosk ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_check_in_and_out(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    opened = await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 13, 0, tzinfo=timezone.utc))
    assert opened.checkout_time is None
    assert opened.work_date == DAY
    assert opened.minutes == 0

    closed = await check_out(db_session, staff_id, now=datetime(2025, 10, 7, 17, 30, tzinfo=timezone.utc))
    assert closed.session_id == opened.session_id
    assert closed.checkout_time == "2025-10-07T12:30:00-05:00"
    assert closed.minutes == 270

    events = await _audit(db_session, staff_id)
    assert {e.source for e in events} == {"kiosk"}
    assert [e.action for e in events] == [
        "create_session", "unapprove_day", "update_session", "unapprove_day",
    ]


@pytest.mark.asyncio
async def test_late_check_in_is_filed_under_local_day(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    # 04:50 UTC on the 8th = 23:50 local on the 7th
    opened = await check_in(db_session, staff_id, now=datetime(2025, 10, 8, 4, 50, tzinfo=timezone.utc))
    assert opened.work_date == DAY


@pytest.mark.asyncio
async def test_second_check_in_conflicts(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 13, 0, tzinfo=timezone.utc))
    with pytest.raises(ConflictError):
        await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 14, 0, tzinfo=timezone.utc))

    result = await db_session.execute(
        select(AttendanceSession).where(AttendanceSession.staff_id == staff_id)
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_check_out_without_open_session(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    with pytest.raises(NotFoundError):
        await check_out(db_session, staff_id)


@pytest.mark.asyncio
async def test_check_out_before_check_in(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 13, 0, tzinfo=timezone.utc))
    with pytest.raises(ValidationError):
        await check_out(db_session, staff_id, now=datetime(2025, 10, 7, 12, 0, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_check_out_revokes_approval(db_session: AsyncSession, make_staff, make_session):
    staff_id = await make_staff()
    await make_session(staff_id, f"{DAY}T07:00", f"{DAY}T08:00")
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 14, 0, tzinfo=timezone.utc))
    await approve_day(db_session, staff_id, DAY)

    await check_out(db_session, staff_id, now=datetime(2025, 10, 7, 15, 0, tzinfo=timezone.utc))

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None and approval.approved is False
    assert await total_minutes(db_session, staff_id, DAY) == 120


@pytest.mark.asyncio
async def test_inactive_staff_cannot_check_in(db_session: AsyncSession, make_staff):
    staff_id = await make_staff(is_active=False)
    with pytest.raises(ValidationError):
        await check_in(db_session, staff_id)


@pytest.mark.asyncio
async def test_naive_now_is_local_wall_clock(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    opened = await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 8, 0))
    assert opened.checkin_time == "2025-10-07T08:00:00-05:00"

    closed = await check_out(db_session, staff_id, now=datetime(2025, 10, 7, 9, 15))
    assert closed.checkout_time == "2025-10-07T09:15:00-05:00"
    assert closed.minutes == 75


# ── Sessions open across midnight ───────────────────────────────────
@pytest.mark.asyncio
async def test_open_session_blocks_next_day_session(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 20, 0))

    with pytest.raises(ConflictError):
        await create_session(db_session, staff_id, "2025-10-08", "08:00", "10:00")

    result = await db_session.execute(
        select(AttendanceSession).where(AttendanceSession.staff_id == staff_id)
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_check_out_rejects_overlap_on_next_day(db_session: AsyncSession, make_staff, make_session):
    staff_id = await make_staff()
    opened = await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 20, 0))
    # Raw insert standing in for a session filed while the kiosk one was open.
    await make_session(staff_id, "2025-10-08T08:00", "2025-10-08T10:00")

    with pytest.raises(ConflictError):
        await check_out(db_session, staff_id, now=datetime(2025, 10, 8, 12, 0))

    result = await db_session.execute(
        select(AttendanceSession)
        .where(AttendanceSession.id == opened.session_id)
        .execution_options(populate_existing=True)
    )
    assert result.scalar_one().checkout_time is None


@pytest.mark.asyncio
async def test_check_in_before_a_later_session_conflicts(db_session: AsyncSession, make_staff, make_session):
    staff_id = await make_staff()
    await make_session(staff_id, "2025-10-08T08:00", "2025-10-08T10:00")

    with pytest.raises(ConflictError):
        await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 20, 0))


@pytest.mark.asyncio
async def test_check_out_after_midnight_stays_on_check_in_day(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 22, 0))

    closed = await check_out(db_session, staff_id, now=datetime(2025, 10, 8, 2, 0))
    assert closed.work_date == DAY
    assert closed.minutes == 240


# ── Auto-checkout ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_auto_checkout_closes_at_cutoff(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    opened = await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 8, 0))
    await approve_day(db_session, staff_id, DAY)

    assert await close_expired_sessions(db_session, now=datetime(2025, 10, 7, 20, 29)) == []

    (closed,) = await close_expired_sessions(db_session, now=datetime(2025, 10, 7, 20, 30))
    assert closed.session_id == opened.session_id
    assert closed.checkout_time == "2025-10-07T20:30:00-05:00"
    assert closed.minutes == 750

    approval = await get_approval(db_session, staff_id, DAY)
    assert approval is not None and approval.approved is False

    events = await _audit(db_session, staff_id)
    update, unapprove = events[-2:]
    assert (update.action, update.source) == ("update_session", "kiosk")
    assert update.details["reason"] == "auto_checkout"
    assert update.details["before"]["checkoutTime"] is None
    assert (unapprove.action, unapprove.source) == ("unapprove_day", "kiosk")

    assert await close_expired_sessions(db_session, now=datetime(2025, 10, 9, 9, 0)) == []


@pytest.mark.asyncio
async def test_auto_checkout_after_cutoff_closes_at_midnight(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    await check_in(db_session, staff_id, now=datetime(2025, 10, 7, 21, 0))

    assert await close_expired_sessions(db_session, now=datetime(2025, 10, 7, 23, 59)) == []

    (closed,) = await close_expired_sessions(db_session, now=datetime(2025, 10, 8, 0, 0))
    assert closed.work_date == DAY
    assert closed.checkout_time == "2025-10-08T00:00:00-05:00"
    assert closed.minutes == 180


@pytest.mark.asyncio
async def test_auto_checkout_leaves_fresh_sessions_open(db_session: AsyncSession, make_staff):
    stale = await make_staff("Ana")
    fresh = await make_staff("Bruno")
    await check_in(db_session, stale, now=datetime(2025, 10, 6, 9, 0))
    await check_in(db_session, fresh, now=datetime(2025, 10, 7, 9, 0))

    closed = await close_expired_sessions(db_session, now=datetime(2025, 10, 7, 12, 0))
    assert [s.staff_id for s in closed] == [stale]
    assert closed[0].checkout_time == "2025-10-06T20:30:00-05:00"

    result = await db_session.execute(
        select(AttendanceSession)
        .where(AttendanceSession.staff_id == fresh)
        .execution_options(populate_existing=True)
    )
    assert result.scalar_one().checkout_time is None
