"""
Monthly payment bookkeeping — one row per (staff member, month).

Maintained independently of the day ledger: recording a payment never
touches sessions or approvals.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (Boolean, Column, Date, DateTime, ForeignKey, Integer,
                        Numeric, String, UniqueConstraint)

from payroll_ledger.db.base import Base


class MonthPayment(Base):
    __tablename__ = "payroll_month_payments"
    __table_args__ = (
        UniqueConstraint("staff_id", "month", name="uq_month_payment_staff_month"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    staff_id: int = Column(Integer, ForeignKey("staff_members.id"), nullable=False)  # type: ignore[assignment]
    month: date = Column(Date, nullable=False)  # type: ignore[assignment]  # first day of month
    paid: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    paid_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    amount_paid: Decimal | None = Column(Numeric(12, 2), nullable=True)  # type: ignore[assignment]
    reference: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    paid_by: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    approved_amount_override: Decimal | None = Column(Numeric(12, 2), nullable=True)  # type: ignore[assignment]
