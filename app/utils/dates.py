"""
Date helpers shared by the workflow services.

Calendar dates (project creation, application start, invoice issue) are stored
as YYYY-MM-DD strings; event timestamps (messages, notifications) as ISO-8601
UTC strings so they sort chronologically as text.
"""

import calendar
from datetime import UTC, date, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def today() -> date:
    return utc_now().date()


def today_iso() -> str:
    return today().isoformat()


def now_iso() -> str:
    return utc_now().isoformat(timespec="seconds")


def payment_deadline(issued: date) -> date:
    """
    Last calendar day of the month following the issue month.

    e.g. issued 2026-01-15 -> 2026-02-28, issued 2026-12-03 -> 2027-01-31
    """
    year, month = (issued.year + 1, 1) if issued.month == 12 else (issued.year, issued.month + 1)
    return date(year, month, calendar.monthrange(year, month)[1])
