"""Tests for the month summary projector and payment bookkeeping."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import InvalidDate, NotFoundError, ValidationError
from payroll_ledger.services.approvals import approve_day, unapprove_day
from payroll_ledger.services.month_summary import (month_summary,
                                                   set_month_amount_override,
                                                   set_month_paid)


async def _seed_approved_month(db: AsyncSession, make_staff, make_session) -> int:
    """11.75 approved hours at 5.00/h spread over three October days."""
    staff_id = await make_staff("Ana Pérez", "5.00")
    await make_session(staff_id, "2025-10-01T08:00", "2025-10-01T12:00")  # 240
    await make_session(staff_id, "2025-10-02T08:00", "2025-10-02T12:30")  # 270
    await make_session(staff_id, "2025-10-31T08:00", "2025-10-31T11:15")  # 195
    for day in ("2025-10-01", "2025-10-02", "2025-10-31"):
        await approve_day(db, staff_id, day)
    return staff_id


@pytest.mark.asyncio
async def test_amount_is_hours_times_wage(db_session: AsyncSession, make_staff, make_session):
    staff_id = await _seed_approved_month(db_session, make_staff, make_session)

    rows = await month_summary(db_session, "2025-10-01")
    assert len(rows) == 1
    row = rows[0]
    assert row.staff_id == staff_id
    assert row.staff_name == "Ana Pérez"
    assert row.month == "2025-10-01"
    assert row.approved_hours_month == 11.75
    assert row.hourly_wage == 5.0
    assert row.approved_amount == 58.75
    assert row.paid is False


@pytest.mark.asyncio
async def test_only_approved_days_of_the_month_count(db_session: AsyncSession, make_staff, make_session):
    staff_id = await _seed_approved_month(db_session, make_staff, make_session)
    await make_session(staff_id, "2025-10-03T08:00", "2025-10-03T10:00")  # never approved
    await make_session(staff_id, "2025-11-01T08:00", "2025-11-01T10:00")
    await approve_day(db_session, staff_id, "2025-11-01")
    await unapprove_day(db_session, staff_id, "2025-10-31")

    (row,) = await month_summary(db_session, "2025-10")
    assert row.approved_hours_month == 8.5
    assert row.approved_amount == 42.5


@pytest.mark.asyncio
async def test_override_amount_wins(db_session: AsyncSession, make_staff, make_session):
    staff_id = await _seed_approved_month(db_session, make_staff, make_session)

    row = await set_month_amount_override(db_session, staff_id, "2025-10-01", Decimal("60.00"))
    assert row.approved_amount == 60.0
    assert row.approved_hours_month == 11.75

    cleared = await set_month_amount_override(db_session, staff_id, "2025-10-01", None)
    assert cleared.approved_amount == 58.75


@pytest.mark.asyncio
async def test_staff_without_approvals_gets_zero_row(db_session: AsyncSession, make_staff):
    await make_staff("Zoe", "7.25")
    await make_staff("Bruno", "4.00")
    await make_staff("Inactive", "9.00", is_active=False)

    rows = await month_summary(db_session, "2025-10-01")
    assert [r.staff_name for r in rows] == ["Bruno", "Zoe"]
    assert all(r.approved_amount == 0 for r in rows)


@pytest.mark.asyncio
async def test_set_month_paid_round_trip(db_session: AsyncSession, make_staff, make_session):
    staff_id = await _seed_approved_month(db_session, make_staff, make_session)

    row = await set_month_paid(
        db_session,
        staff_id,
        "2025-10-01",
        True,
        paid_at="2025-11-05",
        amount_paid=Decimal("58.75"),
        reference="TRX-991",
        paid_by="tesoreria",
    )
    assert row.paid is True
    assert row.paid_at == "2025-11-05T00:00:00-05:00"
    assert row.amount_paid == 58.75
    assert row.reference == "TRX-991"
    assert row.paid_by == "tesoreria"

    (summary,) = await month_summary(db_session, "2025-10-01")
    assert summary.paid is True
    assert summary.reference == "TRX-991"

    unpaid = await set_month_paid(db_session, staff_id, "2025-10-01", False, paid_at="2025-11-05")
    assert unpaid.paid is False
    assert unpaid.paid_at is None
    assert unpaid.approved_amount == 58.75


@pytest.mark.asyncio
async def test_paid_without_date_uses_now(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    row = await set_month_paid(db_session, staff_id, "2025-10-01", True)
    assert row.paid is True
    assert row.paid_at is not None


@pytest.mark.asyncio
async def test_payment_errors(db_session: AsyncSession, make_staff):
    staff_id = await make_staff()
    with pytest.raises(NotFoundError):
        await set_month_paid(db_session, 999, "2025-10-01", True)
    with pytest.raises(InvalidDate):
        await set_month_paid(db_session, staff_id, "2025-10-15", True)
    with pytest.raises(ValidationError):
        await set_month_amount_override(db_session, staff_id, "2025-10-01", Decimal("-1"))


@pytest.mark.asyncio
async def test_inactive_staff_with_payment_still_listed(db_session: AsyncSession, make_staff):
    active = await make_staff("Active")
    gone = await make_staff("Gone", is_active=False)
    await set_month_paid(db_session, gone, "2025-10-01", True, amount_paid=10)

    rows = await month_summary(db_session, "2025-10-01")
    assert {r.staff_id for r in rows} == {active, gone}
