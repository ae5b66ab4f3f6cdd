"""
Session override transaction — batch-correct one staff member's day and re-approve it.

The whole batch runs in a single unit of work, in a fixed order:

1. lock the staff member (missing → ``NotFoundError``)
2. delete sessions, auditing each one's last state
3. rewrite overridden sessions under a row lock, auditing before/after
4. insert added sessions, auditing each
5. re-query the day and reject any overlap (``ConflictError``)
6. recompute the day total and upsert the approval snapshot, audited
7. commit

Every payload is normalised and validated before step 1 touches the
store. Any failure rolls back all sessions, audit rows and the approval.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import ValidationError, WrongWorkDateError
from payroll_ledger.core.payroll_time import parse_calendar_day
from payroll_ledger.db.session import unit_of_work
from payroll_ledger.schemas.payroll import OverrideResult, SessionOverride, SessionTimes
from payroll_ledger.services.aggregator import total_minutes
from payroll_ledger.services.approvals import record_approval, to_read
from payroll_ledger.services.audit import AuditAction, record_event
from payroll_ledger.services.sessions import (assert_no_overlap, get_session,
                                              get_staff, insert_session,
                                              remove_session,
                                              replace_session_times,
                                              session_snapshot,
                                              validate_interval)

logger = logging.getLogger(__name__)


def _details(note: str | None, **snapshots: object) -> dict[str, object]:
    details: dict[str, object] = dict(snapshots)
    if note:
        details["note"] = note
    return details


async def apply_overrides(
    db: AsyncSession,
    staff_id: int,
    work_date: date | str,
    deletions: Sequence[int] = (),
    overrides: Sequence[SessionOverride] = (),
    additions: Sequence[SessionTimes] = (),
    approved_by: str | None = None,
    *,
    note: str | None = None,
) -> OverrideResult:
    day = parse_calendar_day(work_date)

    touched = [int(sid) for sid in deletions] + [o.session_id for o in overrides]
    if len(set(touched)) != len(touched):
        raise ValidationError("Cada sesión solo puede eliminarse o modificarse una vez por solicitud.")

    planned_overrides = [
        (o.session_id, *validate_interval(day, o.checkin_time, o.checkout_time))
        for o in overrides
    ]
    planned_additions = [
        validate_interval(day, a.checkin_time, a.checkout_time) for a in additions
    ]

    deleted: list[int] = []
    updated: list[int] = []
    created: list[int] = []

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)

        for session_id in deletions:
            session = await get_session(db, int(session_id), staff_id=staff_id, lock=True)
            if session.work_date != day:
                raise WrongWorkDateError(f"La sesión {session_id} no pertenece al día {day}.")
            before = session_snapshot(session)
            await remove_session(db, session)
            record_event(
                db,
                AuditAction.DELETE_SESSION,
                staff_id,
                day,
                session_id=session.id,
                details=_details(note, before=before),
                actor=approved_by,
            )
            deleted.append(session.id)

        for session_id, checkin, checkout in planned_overrides:
            session = await get_session(db, session_id, staff_id=staff_id, lock=True)
            if session.work_date != day:
                raise WrongWorkDateError(f"La sesión {session_id} no pertenece al día {day}.")
            before = session_snapshot(session)
            await replace_session_times(db, session, checkin, checkout)
            record_event(
                db,
                AuditAction.UPDATE_SESSION,
                staff_id,
                day,
                session_id=session.id,
                details=_details(note, before=before, after=session_snapshot(session)),
                actor=approved_by,
            )
            updated.append(session.id)

        for checkin, checkout in planned_additions:
            session = await insert_session(db, staff_id, checkin, checkout)
            record_event(
                db,
                AuditAction.CREATE_SESSION,
                staff_id,
                day,
                session_id=session.id,
                details=_details(note, after=session_snapshot(session)),
                actor=approved_by,
            )
            created.append(session.id)

        await assert_no_overlap(db, staff_id, day)

        minutes = await total_minutes(db, staff_id, day)
        approval = await record_approval(db, staff_id, day, minutes, approved_by)

    logger.info(
        "Override for staff %s on %s: -%d ~%d +%d sessions, approved %d min",
        staff_id, day, len(deleted), len(updated), len(created), minutes,
    )
    return OverrideResult(
        staff_id=staff_id,
        work_date=day.isoformat(),
        deleted=deleted,
        updated=updated,
        created=created,
        approval=to_read(staff_id, day, approval),
    )
