"""
Formatting helpers shared by the console API, the web UI and the CLI.

All functions are pure; dates are compared against an explicit `now` when one
is given so callers (and tests) control the clock.
"""
import math
from datetime import datetime, timezone
from typing import Optional

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_bytes(num_bytes: Optional[int]) -> str:
    """Format bytes to human-readable size, e.g. 1536 -> "1.5 KB".

    Values are rounded to two decimals and trailing zeros are dropped.
    """
    if not num_bytes or num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"


def format_absolute_date(value: Optional[datetime]) -> str:
    """Format a timestamp in local time, or "Never" when absent"""
    if value is None:
        return "Never"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_relative_date(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format a timestamp as "Today", "3 days ago", "2 months ago" and so on"""
    if value is None:
        return "Never"
    now = now or utc_now()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    diff_days = math.floor((now - value).total_seconds() / 86400)

    if diff_days <= 0:
        return "Today"
    if diff_days == 1:
        return "Yesterday"
    if diff_days < 7:
        return f"{diff_days} days ago"
    if diff_days < 30:
        return f"{diff_days // 7} weeks ago"
    if diff_days < 365:
        return f"{diff_days // 30} months ago"
    return f"{diff_days // 365} years ago"


def short_digest(digest: Optional[str], length: int = 24) -> str:
    """Truncate a digest for display"""
    if not digest:
        return ""
    if len(digest) <= length:
        return digest
    return f"{digest[:length]}..."


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    """Return "1 image" / "2 images" style phrases"""
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"
