"""
Ledger error taxonomy + global exception handlers.

Services raise the ``LedgerError`` subclasses below; the HTTP layer turns
them into JSON bodies without leaking stack traces.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class LedgerError(Exception):
    """Base class for every failure the payroll engine reports to callers."""

    status_code: int = 400
    default_detail: str = "Solicitud inválida."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(LedgerError):
    """Malformed input, or a session whose checkout is not after its checkin."""

    status_code = 400
    default_detail = "Datos inválidos."


class InvalidTimestamp(ValidationError):
    default_detail = "Las horas indicadas no son válidas."


class InvalidDate(ValidationError):
    default_detail = "Debes indicar un día válido."


class NotFoundError(LedgerError):
    status_code = 404
    default_detail = "No encontramos el registro indicado."


class ConflictError(LedgerError):
    status_code = 409
    default_detail = "Los horarios se superponen con otra sesión registrada."


class WrongWorkDateError(ConflictError, ValidationError):
    """A session endpoint falls on a different local day than the one it is filed under."""

    status_code = 409
    default_detail = "Las sesiones deben pertenecer al día seleccionado."


class StorageError(LedgerError):
    """The relational store failed; the caller decides whether to retry."""

    status_code = 503
    default_detail = "No pudimos completar la operación en la base de datos."


# ── HTTP handlers ───────────────────────────────────────────────────
async def _ledger_error_handler(_request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Ledger storage failure: %s", exc.detail, exc_info=exc.__cause__)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(LedgerError, _ledger_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
