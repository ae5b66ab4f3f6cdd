"""
Payroll time normalisation.

Every instant the ledger persists is an aware UTC ``datetime``; every
payroll day is a calendar date in the single configured ``PAYROLL_TIMEZONE``.
A check-in at 23:50 local can be 04:50 UTC the next day, so calendar days
are always derived by projecting through that zone, never from UTC dates.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from payroll_ledger.core.config import settings
from payroll_ledger.core.exceptions import InvalidDate, InvalidTimestamp

PAYROLL_TZ = ZoneInfo(settings.PAYROLL_TIMEZONE)
AUTO_CHECKOUT_AT = time.fromisoformat(settings.AUTO_CHECKOUT_TIME)

_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")
_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})"
    r"(?::(\d{2})(?:\.(\d{1,6}))?)?"
    r"\s*(Z|z|[+-]\d{2}(?::?\d{2})?)?$"
)
# JavaScript Date.prototype.toString(), e.g. "Tue Oct 07 2025 08:00:00 GMT-0500 (Ecuador Time)"
_VERBOSE_RE = re.compile(
    r"^(?:Sun|Mon|Tue|Wed|Thu|Fri|Sat)\s+"
    r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+(\d{1,2})\s+(\d{4})\s+"
    r"(\d{2}):(\d{2})(?::(\d{2}))?\s+GMT([+-]\d{4})(?:\s+\(.+\))?$"
)
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?$")

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
        start=1,
    )
}


# ── Helpers ─────────────────────────────────────────────────────────
def ensure_utc(dt: datetime) -> datetime:
    """Normalise a stored timestamp to UTC-aware (naive values are UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_offset(raw: str) -> timezone:
    if raw in ("Z", "z"):
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    hours = int(digits[:2])
    minutes = int(digits[2:4]) if len(digits) > 2 else 0
    if hours > 23 or minutes > 59:
        raise InvalidTimestamp(f"Desfase horario no válido: {raw}")
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _build(year: int, month: int, day: int, hour: int, minute: int, second: int = 0,
           micro: int = 0, tzinfo: timezone | ZoneInfo = PAYROLL_TZ) -> datetime:
    try:
        local = datetime(year, month, day, hour, minute, second, micro, tzinfo=tzinfo)
    except ValueError as exc:
        raise InvalidTimestamp() from exc
    return local.astimezone(timezone.utc)


def _parse_clock(match: re.Match[str], day: date) -> datetime:
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").upper()
    if meridiem:
        if not 1 <= hour <= 12:
            raise InvalidTimestamp()
        hour = hour % 12 + (12 if meridiem == "PM" else 0)
    return _build(day.year, day.month, day.day, hour, minute, second)


# ── Public API ──────────────────────────────────────────────────────
def normalize_instant(value: object, *, default_day: date | None = None) -> datetime:
    """Convert a timestamp-like value into an aware UTC ``datetime``.

    Accepted inputs:

    * ``datetime``: naive values are wall-clock times in the payroll zone.
    * ``date``: local midnight of that day.
    * ``"YYYY-MM-DD"``: local midnight.
    * ``"YYYY-MM-DD[T ]HH:MM[:SS[.ffffff]]"`` with an optional ``Z`` /
      ``±HH`` / ``±HHMM`` / ``±HH:MM`` offset; no offset means local time.
    * JavaScript ``Date.toString()`` output.
    * ``"HH:MM[:SS]"`` or ``"hh:mm AM"`` when ``default_day`` is given.

    Raises ``InvalidTimestamp`` for anything else.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=PAYROLL_TZ)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return _build(value.year, value.month, value.day, 0, 0)
    if not isinstance(value, str):
        raise InvalidTimestamp()

    text = value.strip()
    if not text:
        raise InvalidTimestamp()

    match = _VERBOSE_RE.match(text)
    if match:
        month_name, day, year, hour, minute, second, offset = match.groups()
        return _build(
            int(year), _MONTHS[month_name], int(day), int(hour), int(minute),
            int(second or 0), tzinfo=_parse_offset(offset),
        )

    match = _DAY_RE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build(year, month, day, 0, 0)

    match = _TIMESTAMP_RE.match(text)
    if match:
        year, month, day, hour, minute, second, fraction, offset = match.groups()
        micro = int(fraction.ljust(6, "0")) if fraction else 0
        tzinfo = _parse_offset(offset) if offset else PAYROLL_TZ
        return _build(
            int(year), int(month), int(day), int(hour), int(minute),
            int(second or 0), micro, tzinfo=tzinfo,
        )

    if default_day is not None:
        match = _CLOCK_RE.match(text)
        if match:
            return _parse_clock(match, default_day)

    raise InvalidTimestamp(f"Las horas indicadas no son válidas: {text}")


def local_date_of(instant: datetime) -> date:
    """Calendar date of *instant* in the payroll zone."""
    return ensure_utc(instant).astimezone(PAYROLL_TZ).date()


def local_day_of(instant: datetime) -> str:
    """``YYYY-MM-DD`` of *instant* in the payroll zone."""
    return local_date_of(instant).isoformat()


def parse_calendar_day(value: object) -> date:
    """Validate a ``YYYY-MM-DD`` string (or ``date``) and return the date."""
    if isinstance(value, datetime):
        raise InvalidDate("Se esperaba un día, no una fecha y hora.")
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDate()
    match = _DAY_RE.match(value.strip())
    if not match:
        raise InvalidDate(f"Debes indicar un día válido (YYYY-MM-DD): {value}")
    try:
        return date(*(int(g) for g in match.groups()))
    except ValueError as exc:
        raise InvalidDate(f"El día indicado no existe: {value}") from exc


def parse_month(value: object) -> date:
    """Validate a month given as ``YYYY-MM-01`` / ``YYYY-MM`` and return its first day."""
    if isinstance(value, date) and not isinstance(value, datetime):
        if value.day != 1:
            raise InvalidDate("Debes indicar el mes en formato 'YYYY-MM-01'.")
        return value
    if not isinstance(value, str):
        raise InvalidDate("Debes indicar el mes en formato 'YYYY-MM-01'.")
    match = _MONTH_RE.match(value.strip())
    if not match:
        raise InvalidDate("Debes indicar el mes en formato 'YYYY-MM-01'.")
    year, month, day = match.groups()
    if day is not None and day != "01":
        raise InvalidDate("Debes indicar el mes en formato 'YYYY-MM-01'.")
    try:
        return date(int(year), int(month), 1)
    except ValueError as exc:
        raise InvalidDate(f"El mes indicado no existe: {value}") from exc


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC half-open window ``[start, end)`` covering the local calendar *day*."""
    start = datetime.combine(day, time.min, tzinfo=PAYROLL_TZ)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=PAYROLL_TZ)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def auto_checkout_at(checkin: datetime) -> datetime:
    """Instant at which a session opened at *checkin* and never closed expires.

    That is ``AUTO_CHECKOUT_AT`` on the check-in's local day, or local
    midnight when the session was opened after that cutoff.
    """
    day = local_date_of(checkin)
    cutoff = datetime.combine(day, AUTO_CHECKOUT_AT, tzinfo=PAYROLL_TZ).astimezone(timezone.utc)
    if cutoff > ensure_utc(checkin):
        return cutoff
    return day_bounds(day)[1]


def month_bounds(month: date) -> tuple[date, date]:
    _, last = calendar.monthrange(month.year, month.month)
    return month.replace(day=1), month.replace(day=last)


def enumerate_days(start: date, end: date) -> list[date]:
    if start > end:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def to_local_iso(instant: datetime | None) -> str | None:
    """Offset-bearing ISO-8601 rendering of *instant* in the payroll zone."""
    if instant is None:
        return None
    return ensure_utc(instant).astimezone(PAYROLL_TZ).isoformat(timespec="seconds")


def minutes_to_hours(minutes: int) -> float:
    """Minutes → hours rounded half-up to 2 decimals."""
    hours = (Decimal(minutes) / Decimal(60)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(hours)
