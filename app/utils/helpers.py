"""
Helper utilities and common functions
"""

import re
from datetime import datetime, timezone
from typing import Optional, Union


def format_duration(seconds: Optional[int]) -> str:
    """Format duration as '3m 5s'"""
    if not seconds:
        return "unknown duration"
    return f"{seconds // 60}m {seconds % 60}s"


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate text to maximum length"""
    if not text or len(text) <= max_length:
        return text

    return text[:max_length - len(suffix)] + suffix


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164-like form.

    Unrecognized input is returned stripped rather than rejected, so a
    malformed number still groups with itself.
    """
    if phone is None:
        return None

    phone = str(phone).strip()
    if not phone:
        return None

    digits = re.sub(r'\D', '', phone)

    if len(digits) == 11 and digits.startswith('1'):
        # US number with country code
        return f"+{digits}"
    elif len(digits) == 10:
        # US number without country code
        return f"+1{digits}"
    elif len(digits) > 10:
        # International number
        return f"+{digits}"

    return phone


def to_utc_naive(value: datetime) -> datetime:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Parse ISO strings, epoch seconds/milliseconds or datetimes into naive UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, (int, float)):
        # Providers send epoch milliseconds
        if value > 1e11:
            value = value / 1000
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(text))

