import re
from datetime import date, datetime, time

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_date(value):
    # Expect ISO date like "2025-03-01"
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return date.fromisoformat(str(value).strip())


def parse_time(value):
    # Accept "HH:MM" or "HH:MM:SS"
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def is_valid_email(value: str) -> bool:
    return bool(value) and _EMAIL.match(value) is not None
