"""
Day approval model — one row per (staff member, payroll day).

``approved_minutes`` is a snapshot taken at approval time; it is not
recomputed when sessions change. Any later session edit flips the row back
to not-approved instead of deleting it.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (Boolean, CheckConstraint, Column, Date, DateTime,
                        ForeignKey, Integer, String, UniqueConstraint)

from payroll_ledger.db.base import Base


class DayApproval(Base):
    __tablename__ = "payroll_day_approvals"
    __table_args__ = (
        UniqueConstraint("staff_id", "work_date", name="uq_day_approval_staff_date"),
        CheckConstraint(
            "approved OR approved_minutes IS NULL",
            name="ck_day_approval_minutes_only_when_approved",
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    staff_id: int = Column(Integer, ForeignKey("staff_members.id"), nullable=False)  # type: ignore[assignment]
    work_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    approved: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    approved_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    approved_by: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    approved_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
