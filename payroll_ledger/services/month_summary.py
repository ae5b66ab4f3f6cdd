"""
Month summary projector — approved hours and pay per staff member and month.

Only approved day snapshots count. Payment bookkeeping lives in its own
table and is written independently of the day ledger.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.core.exceptions import ValidationError
from payroll_ledger.core.payroll_time import (month_bounds, normalize_instant,
                                              parse_month, to_local_iso)
from payroll_ledger.db.session import unit_of_work
from payroll_ledger.db.upsert import upsert
from payroll_ledger.models.approval import DayApproval
from payroll_ledger.models.payment import MonthPayment
from payroll_ledger.models.staff import StaffMember
from payroll_ledger.schemas.payroll import MonthSummaryRow
from payroll_ledger.services.sessions import get_staff

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def _round2(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _to_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _non_negative(value: Decimal | float | None, field: str) -> Decimal | None:
    if value is None:
        return None
    amount = _round2(Decimal(str(value)))
    if amount < 0:
        raise ValidationError(f"El campo {field} no puede ser negativo.")
    return amount


async def _approved_minutes_by_staff(
    db: AsyncSession, first: date, last: date, staff_id: int | None = None
) -> dict[int, int]:
    query = (
        select(DayApproval.staff_id, func.sum(DayApproval.approved_minutes))
        .where(
            DayApproval.approved.is_(True),
            DayApproval.work_date >= first,
            DayApproval.work_date <= last,
        )
        .group_by(DayApproval.staff_id)
    )
    if staff_id is not None:
        query = query.where(DayApproval.staff_id == staff_id)
    result = await db.execute(query)
    return {sid: int(total or 0) for sid, total in result.all()}


async def _payments_by_staff(
    db: AsyncSession, month: date, staff_id: int | None = None
) -> dict[int, MonthPayment]:
    # Payments are upserted outside the ORM, so reload cached rows.
    query = (
        select(MonthPayment)
        .where(MonthPayment.month == month)
        .execution_options(populate_existing=True)
    )
    if staff_id is not None:
        query = query.where(MonthPayment.staff_id == staff_id)
    result = await db.execute(query)
    return {p.staff_id: p for p in result.scalars().all()}


def _build_row(
    staff: StaffMember, month: date, minutes: int, payment: MonthPayment | None
) -> MonthSummaryRow:
    hours = _round2(Decimal(minutes) / Decimal(60))
    wage = Decimal(staff.hourly_wage or 0)
    override = payment.approved_amount_override if payment is not None else None
    amount = _round2(Decimal(override)) if override is not None else _round2(hours * wage)

    row = MonthSummaryRow(
        staff_id=staff.id,
        staff_name=staff.full_name,
        month=month.isoformat(),
        approved_hours_month=float(hours),
        hourly_wage=float(wage),
        approved_amount=float(amount),
    )
    if payment is not None:
        row.paid = bool(payment.paid)
        row.paid_at = to_local_iso(payment.paid_at)
        row.amount_paid = _to_float(payment.amount_paid)
        row.reference = payment.reference
        row.paid_by = payment.paid_by
    return row


async def month_summary(db: AsyncSession, month: date | str) -> list[MonthSummaryRow]:
    """One row per active staff member, plus inactive ones with activity in *month*.

    ``approvedHoursMonth`` sums the approved snapshots of the month's days;
    ``approvedAmount`` is the stored override when present, otherwise
    hours × wage rounded half-up to cents.
    """
    first = parse_month(month)
    _, last = month_bounds(first)

    minutes_by_staff = await _approved_minutes_by_staff(db, first, last)
    payments = await _payments_by_staff(db, first)

    involved = set(minutes_by_staff) | set(payments)
    query = select(StaffMember).order_by(StaffMember.full_name.asc(), StaffMember.id.asc())
    if involved:
        query = query.where(or_(StaffMember.is_active.is_(True), StaffMember.id.in_(involved)))
    else:
        query = query.where(StaffMember.is_active.is_(True))
    staff_members = (await db.execute(query)).scalars().all()

    return [
        _build_row(staff, first, minutes_by_staff.get(staff.id, 0), payments.get(staff.id))
        for staff in staff_members
    ]


async def _summary_row(db: AsyncSession, staff_id: int, month: date) -> MonthSummaryRow:
    _, last = month_bounds(month)
    staff = await get_staff(db, staff_id)
    minutes = await _approved_minutes_by_staff(db, month, last, staff_id)
    payments = await _payments_by_staff(db, month, staff_id)
    return _build_row(staff, month, minutes.get(staff_id, 0), payments.get(staff_id))


async def set_month_paid(
    db: AsyncSession,
    staff_id: int,
    month: date | str,
    paid: bool,
    paid_at: object | None = None,
    amount_paid: Decimal | float | None = None,
    reference: str | None = None,
    paid_by: str | None = None,
) -> MonthSummaryRow:
    """Record (or clear) the payment of *staff_id* for *month*."""
    first = parse_month(month)
    paid_amount = _non_negative(amount_paid, "amountPaid")
    if paid:
        paid_instant = normalize_instant(paid_at) if paid_at is not None else datetime.now(timezone.utc)
    else:
        paid_instant = None

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        await upsert(
            db,
            MonthPayment,
            {"staff_id": staff_id, "month": first},
            {
                "paid": paid,
                "paid_at": paid_instant,
                "amount_paid": paid_amount,
                "reference": reference,
                "paid_by": paid_by,
            },
        )

    logger.info("Month %s for staff %s marked paid=%s (by %s)", first, staff_id, paid, paid_by)
    return await _summary_row(db, staff_id, first)


async def set_month_amount_override(
    db: AsyncSession,
    staff_id: int,
    month: date | str,
    amount: Decimal | float | None,
) -> MonthSummaryRow:
    """Pin the month's approved amount, or clear the pin with ``None``."""
    first = parse_month(month)
    value = _non_negative(amount, "amount")

    async with unit_of_work(db):
        await get_staff(db, staff_id, lock=True)
        await upsert(
            db,
            MonthPayment,
            {"staff_id": staff_id, "month": first},
            {"approved_amount_override": value},
        )

    logger.info("Month %s for staff %s amount override=%s", first, staff_id, value)
    return await _summary_row(db, staff_id, first)
