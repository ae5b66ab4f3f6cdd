"""Pydantic schemas for the payroll ledger (camelCase on the wire)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def _strip_optional(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


# ── Session payloads ───────────────────────────────────────────────
class SessionTimes(CamelModel):
    checkin_time: str
    checkout_time: str

    @field_validator("checkin_time", "checkout_time")
    @classmethod
    def _times(cls, v: str) -> str:
        return _strip_required(v)


class SessionOverride(SessionTimes):
    session_id: int


class OverrideAndApproveRequest(CamelModel):
    staff_id: int
    work_date: str
    overrides: list[SessionOverride] = Field(default_factory=list)
    additions: list[SessionTimes] = Field(default_factory=list)
    deletions: list[int] = Field(default_factory=list)
    note: str | None = None
    approved_by: str | None = None

    @field_validator("note", "approved_by")
    @classmethod
    def _optional_text(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class SessionCreateRequest(SessionTimes):
    staff_id: int
    work_date: str
    actor: str | None = None


class SessionUpdateRequest(SessionTimes):
    staff_id: int
    work_date: str
    actor: str | None = None


class CheckInRequest(CamelModel):
    staff_id: int


class CheckOutRequest(CamelModel):
    staff_id: int


# ── Approval payloads ──────────────────────────────────────────────
class ApproveDayRequest(CamelModel):
    staff_id: int
    work_date: str
    approved: bool = True
    approved_by: str | None = None

    @field_validator("approved_by")
    @classmethod
    def _approved_by(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class DayApprovalRead(CamelModel):
    staff_id: int
    work_date: str
    approved: bool
    approved_minutes: int | None = None
    approved_by: str | None = None
    approved_at: str | None = None


# ── Day views ──────────────────────────────────────────────────────
class DaySession(CamelModel):
    session_id: int
    staff_id: int
    work_date: str
    checkin_time: str | None
    checkout_time: str | None
    minutes: int
    hours: float
    original_session_id: int | None = None
    replacement_session_id: int | None = None
    is_original_record: bool = False
    was_edited: bool = False
    original_checkin_time: str | None = None
    original_checkout_time: str | None = None


class DayTotals(CamelModel):
    total_minutes: int
    total_hours: float


class OverrideResult(CamelModel):
    staff_id: int
    work_date: str
    deleted: list[int]
    updated: list[int]
    created: list[int]
    approval: DayApprovalRead


# ── Matrix ─────────────────────────────────────────────────────────
class PayrollMatrixCell(CamelModel):
    date: str
    hours: float
    approved: bool
    approved_hours: float | None = None
    has_edits: bool = False
    day_status: str = "pending"
    # pending | approved | edited_and_approved | edited_not_approved


class PayrollMatrixRow(CamelModel):
    staff_id: int
    staff_name: str | None = None
    cells: list[PayrollMatrixCell]


class PayrollMatrixResponse(CamelModel):
    days: list[str]
    rows: list[PayrollMatrixRow]


# ── Month summary / payments ───────────────────────────────────────
class MonthSummaryRow(CamelModel):
    staff_id: int
    staff_name: str | None = None
    month: str
    approved_hours_month: float
    hourly_wage: float
    approved_amount: float
    paid: bool = False
    paid_at: str | None = None
    amount_paid: float | None = None
    reference: str | None = None
    paid_by: str | None = None


class SetMonthPaidRequest(CamelModel):
    staff_id: int
    month: str
    paid: bool
    paid_at: str | None = None
    amount_paid: Decimal | None = None
    reference: str | None = None
    paid_by: str | None = None

    @field_validator("paid_at", "reference", "paid_by")
    @classmethod
    def _optional_text(cls, v: str | None) -> str | None:
        return _strip_optional(v)


class MonthAmountRequest(CamelModel):
    staff_id: int
    month: str
    amount: Decimal | None = None


# ── Audit ──────────────────────────────────────────────────────────
class AuditEventRead(CamelModel):
    id: int
    action: str
    staff_id: int
    work_date: str
    session_id: int | None = None
    details: dict[str, Any] | None = None
    actor: str | None = None
    source: str
    created_at: str | None = None


# ── Generic ────────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool


class DeleteResponse(BaseModel):
    success: bool
    message: str
