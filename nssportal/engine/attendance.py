"""
nssportal.engine.attendance — Volunteer Hour Accrual
=====================================================

Pure helpers for attendance marking.  Hours are kept at two-decimal
precision so crediting and then debiting the same amount restores the
previous total exactly.
"""

from __future__ import annotations

import math
from datetime import datetime

from nssportal.errors import ValidationError

MIN_DERIVED_HOURS = 1
HOURS_PRECISION = 2
MAX_HOURS_PER_EVENT_DAY = 24


def _round_hours(value: float) -> float:
    return round(value, HOURS_PRECISION)


def hours_for_attendance(
    start: datetime,
    end: datetime,
    supplied: float | None = None,
) -> float:
    """Hours to credit for attending an event.

    An explicitly supplied value wins; otherwise the event duration in
    whole hours, never less than one.  Supplied values are capped at
    24 hours per calendar day the event spans.
    """
    duration = (end - start).total_seconds() / 3600
    if supplied is not None:
        supplied = float(supplied)
        if not math.isfinite(supplied):
            raise ValidationError("Volunteer hours must be a finite number")
        if supplied < 0:
            raise ValidationError("Volunteer hours cannot be negative")
        cap = max_hours_for(start, end)
        if supplied > cap:
            raise ValidationError(f"Volunteer hours cannot exceed {cap:g} for this event")
        return _round_hours(supplied)
    return float(max(MIN_DERIVED_HOURS, math.floor(duration)))


def credit_hours(total: float, hours: float) -> float:
    return _round_hours(total + hours)


def debit_hours(total: float, hours: float) -> float:
    """Remove previously credited *hours*, flooring the total at zero."""
    return max(0.0, _round_hours(total - hours))


def max_hours_for(start: datetime, end: datetime) -> float:
    """Upper bound for hours credited for one event (24 per event day)."""
    days = (end.date() - start.date()).days + 1
    return float(MAX_HOURS_PER_EVENT_DAY * max(1, days))
