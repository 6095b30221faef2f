"""
Date-window classification of training records and certificates.

Everything here is pure: callers pass "today" (from an injected clock) and
persist the result themselves.
"""

from __future__ import annotations

import calendar
import os
from datetime import date, timedelta
from typing import Optional

from .status import ComplianceStatus

DEFAULT_WARNING_DAYS = int(os.getenv("CERTDB_DEFAULT_WARNING_DAYS", "30"))
RENEWAL_REMINDER_MONTHS = int(os.getenv("CERTDB_RENEWAL_REMINDER_MONTHS", "3"))


def add_months(base: date, months: int) -> date:
    """
    Add a number of calendar months to a date.
    The day is clamped to the last valid day of the target month.
    """
    if months == 0:
        return base

    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_expiry_date(issue_date: date, validity_months: Optional[int]) -> Optional[date]:
    """Expiry for a validity period; ``None`` when the training never expires."""
    if not validity_months or validity_months <= 0:
        return None
    return add_months(issue_date, validity_months)


def renewal_due_date(expiry_date: Optional[date]) -> Optional[date]:
    """When renewal should start: a fixed number of months before expiry."""
    if expiry_date is None:
        return None
    return add_months(expiry_date, -RENEWAL_REMINDER_MONTHS)


def days_until_expiry(expiry_date: Optional[date], today: date) -> Optional[int]:
    """Signed day difference; negative once the expiry date has passed."""
    if expiry_date is None:
        return None
    return (expiry_date - today).days


def classify(
    issue_date: Optional[date],
    expiry_date: Optional[date],
    completion_date: Optional[date],
    warning_days: Optional[int],
    *,
    today: date,
    tracks_completion: bool = True,
) -> ComplianceStatus:
    """
    Classify a record into pending / active / expiring_soon / expired.

    - No expiry date means permanent validity: ``active`` once completed,
      ``pending`` before that.
    - ``expiry_date <= today`` is expired. The expiry day itself counts as
      expired because its midnight has already passed.
    - ``today >= expiry_date - warning_days`` is expiring soon (inclusive).

    ``tracks_completion=False`` is for rows that only exist after the
    training was completed (training records, certificates); for them
    completion is implied. ``issue_date`` does not change the outcome; it is
    accepted so every caller passes the same record shape.
    """
    completed = completion_date is not None or not tracks_completion

    if expiry_date is None:
        return ComplianceStatus.ACTIVE if completed else ComplianceStatus.PENDING

    if expiry_date <= today:
        return ComplianceStatus.EXPIRED

    window = DEFAULT_WARNING_DAYS if warning_days is None else warning_days
    if today >= expiry_date - timedelta(days=window):
        return ComplianceStatus.EXPIRING_SOON

    if completed:
        return ComplianceStatus.ACTIVE
    return ComplianceStatus.PENDING
