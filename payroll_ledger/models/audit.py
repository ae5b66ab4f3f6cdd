"""
Audit event model — append-only trail of every ledger mutation.

Rows are written in the same transaction as the change they describe and
are never updated or deleted. ``session_id`` has no foreign key so events
for deleted sessions survive.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, Index, Integer, String

from payroll_ledger.db.base import Base


class AuditEvent(Base):
    __tablename__ = "payroll_audit_events"
    __table_args__ = (Index("ix_audit_staff_work_date", "staff_id", "work_date"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    action: str = Column(String(30), nullable=False)  # type: ignore[assignment]
    # approve_day | unapprove_day | create_session | update_session | delete_session
    staff_id: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    work_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    session_id: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    details: dict | None = Column(JSON, nullable=True)  # type: ignore[assignment]
    actor: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    source: str = Column(String(20), nullable=False, default="manual")  # type: ignore[assignment]
    # manual | kiosk
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
