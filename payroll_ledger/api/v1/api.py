"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from payroll_ledger.api.v1.endpoints import payroll, staff_attendance, system

api_router = APIRouter()

# Matrix, day views, approvals, corrections, month summary, audit
api_router.include_router(payroll.router)

# Kiosk check-in / check-out
api_router.include_router(staff_attendance.router)

# Health
api_router.include_router(system.router)
