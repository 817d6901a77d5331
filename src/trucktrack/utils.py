"""Shared utility functions for the TruckTrack fleet dashboard."""

from __future__ import annotations

import math
import numbers
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal


def generate_id(prefix: str = "") -> str:
    """Return a new opaque record id, optionally prefixed (e.g. "MAN-D-")."""
    return f"{prefix}{uuid.uuid4()}"


def today_iso() -> str:
    """Today's date as YYYY-MM-DD."""
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_amount(value) -> int | float | Decimal:
    """Coerce a money field to a number.

    Missing, NaN, infinite and non-numeric values become 0. Numeric strings
    are parsed. Other real numbers (ints, floats, Decimal, Fraction) are
    returned unchanged so totals keep their precision.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, Decimal):
        return value if value.is_finite() else 0
    if isinstance(value, numbers.Real):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
        if not math.isfinite(number):
            return 0
        return int(number) if number.is_integer() and "." not in text else number
    return 0


def add_amounts(total, amount):
    """Sum two amounts, dropping to float when Decimal meets float."""
    try:
        return total + amount
    except TypeError:
        return float(total) + float(amount)


def format_amount(value) -> str:
    """Render a number the way a browser would (100, 12.5 -- never 100.0)."""
    value = to_amount(value)
    if isinstance(value, numbers.Rational) and not isinstance(value, int):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_trip_date(value) -> datetime | None:
    """Parse an ISO-8601 date or datetime string. Returns None when malformed."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text[:10])
        except ValueError:
            return None
    return parsed.replace(tzinfo=None)
