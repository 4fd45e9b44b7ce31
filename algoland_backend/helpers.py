"""Small value helpers shared across the readers."""

import math
import re
from datetime import datetime, timezone

from algosdk import encoding

DIGITS = re.compile(r"^\d+$")


def utc_now_iso():
    """ISO-8601 UTC timestamp with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def normalise_address(value):
    """Trimmed, upper-cased address string or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text.upper() if text else None


def is_algorand_address(value):
    """Validate Algorand address format (58 chars, valid checksum)."""
    if not isinstance(value, str):
        return False
    candidate = value.strip()
    if len(candidate) != 58:
        return False
    return encoding.is_valid_address(candidate)


def to_safe_int(value):
    """Integer view of a loosely typed value, None when it has none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if re.match(r"^-?\d+$", text):
            return int(text)
    return None


def to_positive_id(value):
    """Asset or week id as a positive int, else None."""
    number = to_safe_int(value)
    if number is None or number <= 0:
        return None
    return number
