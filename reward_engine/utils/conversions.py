import math
from datetime import datetime, timezone

MS_PER_SECOND = 1000
MS_PER_HOUR = 3600 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR


def utc_now():
    return datetime.now(timezone.utc)


def to_datetime(value):
    """Convert epoch milliseconds, ISO string or datetime to an aware UTC datetime.

    Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        try:
            if not math.isfinite(value):
                return None
            return datetime.fromtimestamp(value / MS_PER_SECOND, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip('-').isdigit():
            return to_datetime(int(text))
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return to_datetime(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


def to_millis(moment):
    """Convert a datetime to epoch milliseconds"""
    return int(to_datetime(moment).timestamp() * MS_PER_SECOND)


def to_non_negative_int(value):
    """Clamp a reported counter to a non-negative integer (0 when malformed)"""
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def to_optional_seconds(value):
    """Finite non-negative float, or None when missing or malformed"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)
