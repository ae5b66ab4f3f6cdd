"""
Staff member model — read-only from the ledger's point of view.

The ledger checks existence, shows the name and reads the hourly wage;
staff identity is owned by the personnel module.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship

from payroll_ledger.db.base import Base


class StaffMember(Base):
    __tablename__ = "staff_members"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    full_name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    hourly_wage: Decimal = Column(  # type: ignore[assignment]
        Numeric(10, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    sessions = relationship("AttendanceSession", back_populates="staff")
