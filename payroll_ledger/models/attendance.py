"""
Attendance session model — one continuous presence interval of a staff member.

``work_date`` is the payroll-local calendar day of ``checkin_time``. It is
written only by ``payroll_ledger.services.sessions`` so it can never drift
from the check-in instant.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (CheckConstraint, Column, Date, DateTime, ForeignKey,
                        Index, Integer)
from sqlalchemy.orm import relationship

from payroll_ledger.core.payroll_time import ensure_utc
from payroll_ledger.db.base import Base


class AttendanceSession(Base):
    __tablename__ = "staff_attendance"
    __table_args__ = (
        CheckConstraint(
            "checkout_time IS NULL OR checkout_time > checkin_time",
            name="ck_attendance_checkout_after_checkin",
        ),
        Index("ix_attendance_staff_work_date", "staff_id", "work_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    staff_id: int = Column(Integer, ForeignKey("staff_members.id"), nullable=False)  # type: ignore[assignment]
    checkin_time: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    checkout_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    work_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime | None = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=True,
        onupdate=lambda: datetime.now(timezone.utc),
    )

    staff = relationship("StaffMember", back_populates="sessions")

    # SQLite hands timestamps back naive; everything stored is UTC.
    @property
    def checkin_utc(self) -> datetime:
        return ensure_utc(self.checkin_time)

    @property
    def checkout_utc(self) -> datetime | None:
        if self.checkout_time is None:
            return None
        return ensure_utc(self.checkout_time)
