"""Shared utilities used across the booking backend."""

import re
from datetime import date, timedelta
from typing import Any, Optional

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("(949) 555-0142")
        '9495550142'
        >>> normalize_phone("+1 949 555 0142")
        '+19495550142'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def is_blank(value: Any) -> bool:
    """True for None and for values that are empty after str() and strip()."""
    return value is None or str(value).strip() == ""


def looks_like_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value.strip()))


def split_name(full_name: str) -> tuple[str, str]:
    """Split a full name into (first, last), with the CRM's placeholder defaults.

    Examples:
        >>> split_name("Diana  Prince")
        ('Diana', 'Prince')
        >>> split_name("Krypto")
        ('Krypto', 'Recruit')
    """
    parts = full_name.strip().split()
    first = parts[0] if parts else "Hero"
    last = " ".join(parts[1:]) if len(parts) > 1 else "Recruit"
    return first, last


def normalize_weekday(value: str) -> Optional[str]:
    """Return the lowercase weekday name for a full or 3-letter day, else None."""
    cleaned = value.strip().lower()
    for day in WEEKDAYS:
        if cleaned == day or (len(cleaned) >= 3 and day.startswith(cleaned)):
            return day
    return None


def next_weekday(today: date, weekday: str) -> date:
    """Next occurrence of ``weekday`` strictly after ``today``."""
    target = WEEKDAYS.index(weekday)
    days_ahead = (target - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)
