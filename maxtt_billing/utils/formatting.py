"""Money and timestamp formatting for printed invoices.

## Rupees
    Rs. 12,34,567.89  (Indian grouping: last three digits, then pairs)

## Timestamps
Every printed time is shown at a fixed +05:30 offset. Strings without an
explicit offset (including date-only values such as "2025-08-14") are read
as UTC before the offset is applied, so a time captured on the client is
never shifted twice.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any

from ..core.enums import IST_OFFSET_MINUTES
from .converters import round_half_up

IST = timezone(timedelta(minutes=IST_OFFSET_MINUTES), name="IST")

PLACEHOLDER = "-"


def format_inr(amount: Any) -> str:
    """Format a rupee amount with Indian digit grouping.

    Examples:
        >>> format_inr(12154)
        'Rs. 12,154.00'
        >>> format_inr(1234567.891)
        'Rs. 12,34,567.89'
        >>> format_inr(None)
        'Rs. 0.00'
    """
    value = round_half_up(amount, 2)
    sign = "-" if value < 0 else ""
    int_part, _, dec = f"{abs(value):.2f}".partition(".")
    if len(int_part) > 3:
        head, last3 = int_part[:-3], int_part[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        int_part = ",".join(pairs + [last3])
    return f"{sign}Rs. {int_part}.{dec}"


def money(amount: Any) -> float:
    """Round to paise for storage and display."""
    return float(round_half_up(amount, 2))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings with or without an offset,
    "YYYY-MM-DD HH:MM:SS" strings and date-only strings. Anything without an
    offset is treated as UTC. Returns None when the value cannot be read.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        if "T" not in text and " " in text:
            text = text.replace(" ", "T", 1)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_ist(value: Any) -> datetime | None:
    dt = parse_timestamp(value)
    return dt.astimezone(IST) if dt else None


def format_ist(value: Any) -> str:
    """Format a timestamp as 'dd/mm/yyyy, HH:MM IST'.

    Examples:
        >>> format_ist("2025-08-14T10:00:00Z")
        '14/08/2025, 15:30 IST'
        >>> format_ist("not a date")
        '-'
    """
    dt = to_ist(value)
    if dt is None:
        return PLACEHOLDER
    return f"{dt.strftime('%d/%m/%Y, %H:%M')} IST"
