"""Generated identifiers and normalized names used across the services."""
import random
import re
import time
from datetime import datetime
from typing import Optional

_USERNAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_]")
_GRADE_NUMBER = re.compile(r"(\d+)")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_username(email: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Username for a new student account, derived from the e-mail local part.

    Rules:
    - characters outside [a-zA-Z0-9_] become "_"
    - a usable base (>= 3 chars) gets "_" + the last 6 timestamp digits
    - otherwise "student_<timestamp>"
    - longer than 30 chars: first 24 chars + "_" + last 5 timestamp digits
    """
    stamp = str(timestamp_ms if timestamp_ms is not None else _now_ms())
    base = _USERNAME_UNSAFE.sub("_", email.split("@")[0])

    if len(base) >= USERNAME_MIN_LENGTH:
        username = f"{base}_{stamp[-6:]}"
    else:
        username = f"student_{stamp}"

    if len(username) > USERNAME_MAX_LENGTH:
        username = f"{username[:24]}_{stamp[-5:]}"
    return username


def generate_receipt_number(timestamp_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """RCP + last 8 timestamp digits + 3 random digits."""
    rng = rng or random
    stamp = str(timestamp_ms if timestamp_ms is not None else _now_ms())[-8:]
    return f"RCP{stamp}{rng.randint(0, 999):03d}"


def extend_receipt_number(receipt_number: str, rng: Optional[random.Random] = None) -> str:
    """Four more random digits, for a number that is already taken."""
    rng = rng or random
    return f"{receipt_number}{rng.randint(0, 9999):04d}"


def normalize_grade(value: str) -> str:
    """'7', 'grade 7', 'Grade 7B' -> 'Grade 7'. Unknown formats are returned stripped."""
    value = (value or "").strip()
    match = _GRADE_NUMBER.search(value)
    if not match:
        return value
    return f"Grade {match.group(1)}"


def normalize_section(value: str) -> str:
    """'Sec B' -> 'B'."""
    value = (value or "").strip()
    if value.lower().startswith("sec "):
        value = value[4:]
    return value.strip()


def format_time(moment: datetime) -> str:
    """Ledger time column, e.g. '02:15 PM'."""
    return moment.strftime("%I:%M %p")
