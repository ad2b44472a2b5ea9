"""
Input parsing and format predicates shared by the controller and the console.
"""

import re
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta

from calendar_app.models import DISPLAY_DATE_FORMAT
from calendar_app.models import ValidationError

_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
_PHONE_RE = re.compile(r"^\d{9}$")
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_WHITESPACE_RE = re.compile(r"\s+")


def is_time_valid(value: str) -> bool:
    """True for ``H:MM`` / ``HH:MM`` in the 00:00–23:59 range."""
    return bool(_TIME_RE.match(value.strip()))


def is_color_valid(value: str) -> bool:
    return bool(_COLOR_RE.match(value.strip()))


def normalize_phone(phone_number: str) -> str:
    """Strip every whitespace character from a phone number."""
    return _WHITESPACE_RE.sub("", phone_number)


def is_phone_number_valid(phone_number: str) -> bool:
    return bool(_PHONE_RE.match(normalize_phone(phone_number)))


def format_phone(phone_number: str) -> str:
    """Render a nine-digit phone number as ``XXX XXX XXX``."""
    digits = normalize_phone(phone_number)
    if not _PHONE_RE.match(digits):
        raise ValidationError(f"Invalid phone number: {phone_number!r} (expected 9 digits)")
    return f"{digits[:3]} {digits[3:6]} {digits[6:]}"


def parse_time(value: str) -> time:
    if not is_time_valid(value):
        raise ValidationError(f"Invalid time: {value!r} (expected HH:MM)")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def parse_offset(value: str) -> timedelta:
    """Parse a notification offset written as ``HH:MM`` into a duration."""
    parsed = parse_time(value)
    return timedelta(hours=parsed.hour, minutes=parsed.minute)


def format_offset(offset: timedelta) -> str:
    total_minutes = int(offset.total_seconds()) // 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def parse_date_time(value: str) -> datetime:
    """Parse ``dd.mm.yyyy HH:MM``."""
    try:
        return datetime.strptime(value.strip(), DISPLAY_DATE_FORMAT)
    except ValueError:
        raise ValidationError(
            f"Invalid date and time: {value!r} (expected dd.mm.yyyy HH:MM)"
        ) from None


def parse_date(value: str) -> date:
    """Parse either ``YYYY-MM-DD`` or ``dd.mm.yyyy``."""
    value = value.strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD or dd.mm.yyyy)")


def merge_date_time(day: date, at: time) -> datetime:
    """Combine a date and a clock time, dropping seconds."""
    return datetime.combine(day, at.replace(second=0, microsecond=0))


def require_text(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(f"{label} cannot be empty")
    return value
