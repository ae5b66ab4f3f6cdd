"""
Payroll endpoints — matrix, day views, approvals, corrections and month pay.

Handlers only parse input and delegate to ``payroll_ledger.services``;
ledger errors are turned into JSON by the global exception handlers.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.api.v1.deps import get_db
from payroll_ledger.schemas.payroll import (ApproveDayRequest, AuditEventRead,
                                            DayApprovalRead, DaySession,
                                            DayTotals, DeleteResponse,
                                            MonthAmountRequest,
                                            MonthSummaryRow,
                                            OverrideAndApproveRequest,
                                            OverrideResult,
                                            PayrollMatrixResponse,
                                            SessionCreateRequest,
                                            SessionUpdateRequest,
                                            SetMonthPaidRequest)
from payroll_ledger.services import (aggregator, approvals, audit,
                                     corrections, month_summary, overrides,
                                     reports)

router = APIRouter(prefix="/payroll", tags=["payroll"])
logger = logging.getLogger(__name__)


# ── Read views ──────────────────────────────────────────────────────
@router.get("/matrix", response_model=PayrollMatrixResponse)
async def payroll_matrix(
    month: Optional[str] = Query(default=None),
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> PayrollMatrixResponse:
    return await reports.payroll_matrix(db, month=month, start=start, end=end)


@router.get("/day-sessions", response_model=list[DaySession])
async def day_sessions(
    staff_id: int = Query(alias="staffId"),
    work_date: str = Query(alias="date"),
    include_history: bool = Query(default=False, alias="includeHistory"),
    db: AsyncSession = Depends(get_db),
) -> list[DaySession]:
    return await reports.day_sessions(db, staff_id, work_date, include_history=include_history)


@router.get("/day-totals", response_model=DayTotals)
async def day_totals(
    staff_id: int = Query(alias="staffId"),
    work_date: str = Query(alias="date"),
    db: AsyncSession = Depends(get_db),
) -> DayTotals:
    return await aggregator.day_totals(db, staff_id, work_date)


# ── Approvals ───────────────────────────────────────────────────────
@router.post("/approve-day", response_model=DayApprovalRead)
async def approve_day(
    body: ApproveDayRequest,
    db: AsyncSession = Depends(get_db),
) -> DayApprovalRead:
    """Approve the day's current total, or revoke with ``approved: false``."""
    if body.approved:
        return await approvals.approve_day(db, body.staff_id, body.work_date, body.approved_by)
    return await approvals.unapprove_day(db, body.staff_id, body.work_date, actor=body.approved_by)


@router.post("/override-and-approve", response_model=OverrideResult)
async def override_and_approve(
    body: OverrideAndApproveRequest,
    db: AsyncSession = Depends(get_db),
) -> OverrideResult:
    return await overrides.apply_overrides(
        db,
        body.staff_id,
        body.work_date,
        deletions=body.deletions,
        overrides=body.overrides,
        additions=body.additions,
        approved_by=body.approved_by,
        note=body.note,
    )


# ── Single-session corrections ──────────────────────────────────────
@router.post("/sessions", response_model=DaySession, status_code=201)
async def create_session(
    body: SessionCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> DaySession:
    return await corrections.create_session(
        db, body.staff_id, body.work_date, body.checkin_time, body.checkout_time, actor=body.actor
    )


@router.patch("/sessions/{session_id}", response_model=DaySession)
async def update_session(
    session_id: int,
    body: SessionUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> DaySession:
    return await corrections.update_session(
        db,
        session_id,
        body.staff_id,
        body.work_date,
        body.checkin_time,
        body.checkout_time,
        actor=body.actor,
    )


@router.delete("/sessions/{session_id}", response_model=DeleteResponse)
async def delete_session(
    session_id: int,
    staff_id: int = Query(alias="staffId"),
    work_date: Optional[str] = Query(default=None, alias="workDate"),
    actor: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> DeleteResponse:
    await corrections.delete_session(db, session_id, staff_id, work_date, actor=actor)
    return DeleteResponse(success=True, message=f"Session {session_id} deleted")


# ── Month summary / payments ────────────────────────────────────────
@router.get("/month-summary", response_model=list[MonthSummaryRow])
async def get_month_summary(
    month: str = Query(...),
    db: AsyncSession = Depends(get_db),
) -> list[MonthSummaryRow]:
    return await month_summary.month_summary(db, month)


@router.post("/month-paid", response_model=MonthSummaryRow)
async def set_month_paid(
    body: SetMonthPaidRequest,
    db: AsyncSession = Depends(get_db),
) -> MonthSummaryRow:
    return await month_summary.set_month_paid(
        db,
        body.staff_id,
        body.month,
        body.paid,
        paid_at=body.paid_at,
        amount_paid=body.amount_paid,
        reference=body.reference,
        paid_by=body.paid_by,
    )


@router.post("/month-amount", response_model=MonthSummaryRow)
async def set_month_amount(
    body: MonthAmountRequest,
    db: AsyncSession = Depends(get_db),
) -> MonthSummaryRow:
    return await month_summary.set_month_amount_override(db, body.staff_id, body.month, body.amount)


# ── Audit ───────────────────────────────────────────────────────────
@router.get("/audit", response_model=list[AuditEventRead])
async def list_audit_events(
    staff_id: Optional[int] = Query(default=None, alias="staffId"),
    work_date: Optional[str] = Query(default=None, alias="date"),
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> list[AuditEventRead]:
    return await audit.list_events(db, staff_id=staff_id, work_date=work_date, limit=limit)
