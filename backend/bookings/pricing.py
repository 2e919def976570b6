from __future__ import annotations

from datetime import time
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
MINUTES_PER_DAY = 24 * 60


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_end_time(start_time: time, duration_minutes: int) -> time:
    """
    Add a session length to a wall-clock start time.

    Minutes carry into hours and the result wraps past midnight, so 23:45 plus
    30 minutes is 00:15.
    """
    total = start_time.hour * 60 + start_time.minute + int(duration_minutes)
    hours, minutes = divmod(total % MINUTES_PER_DAY, 60)
    return time(hours, minutes, start_time.second)


def compute_price(hourly_rate, duration_minutes: int) -> Decimal:
    """Price of a session at ``hourly_rate``, rounded once to whole cents."""
    exact = _as_decimal(hourly_rate) * Decimal(int(duration_minutes)) / Decimal(60)
    return exact.quantize(CENT, rounding=ROUND_HALF_UP)


def price_to_cents(price) -> int:
    return int((_as_decimal(price) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def cents_to_price(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


def format_price(price) -> str:
    return f"${_as_decimal(price).quantize(CENT)}"


def format_session_time(value: time) -> str:
    """12-hour clock rendering used in notifications, e.g. ``9:05 AM``."""
    hour = value.hour % 12 or 12
    suffix = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {suffix}"
