"""
Kiosk endpoints — staff check-in / check-out and stale-session auto-checkout.

All of them close over "now"; every call invalidates the approval of the day it
touches.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.api.v1.deps import get_db
from payroll_ledger.schemas.payroll import CheckInRequest, CheckOutRequest, DaySession
from payroll_ledger.services import corrections

router = APIRouter(prefix="/staff", tags=["staff-attendance"])


@router.post("/check-in", response_model=DaySession, status_code=201)
async def check_in(body: CheckInRequest, db: AsyncSession = Depends(get_db)) -> DaySession:
    return await corrections.check_in(db, body.staff_id)


@router.post("/check-out", response_model=DaySession)
async def check_out(body: CheckOutRequest, db: AsyncSession = Depends(get_db)) -> DaySession:
    return await corrections.check_out(db, body.staff_id)


@router.post("/auto-checkout", response_model=list[DaySession])
async def auto_checkout(db: AsyncSession = Depends(get_db)) -> list[DaySession]:
    """Close sessions left open past the configured cutoff; meant for a scheduler."""
    return await corrections.close_expired_sessions(db)
