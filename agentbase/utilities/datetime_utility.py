"""
Current date/time utility.
"""

import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Annotated, Optional

from ..tools import ExecutionContext, utility

_CUSTOM_TOKENS = re.compile(r"YYYY|YY|MM|DD|HH|mm|ss")


def format_custom(now: datetime, pattern: str) -> str:
    """Format with YYYY/YY/MM/DD/HH/mm/ss tokens."""
    values = {
        "YYYY": f"{now.year:04d}",
        "YY": f"{now.year % 100:02d}",
        "MM": f"{now.month:02d}",
        "DD": f"{now.day:02d}",
        "HH": f"{now.hour:02d}",
        "mm": f"{now.minute:02d}",
        "ss": f"{now.second:02d}",
    }
    return _CUSTOM_TOKENS.sub(lambda m: values[m.group(0)], pattern)


def format_now(now: datetime, fmt: str) -> tuple:
    """Return ``(formatted, format_type)`` for a named or custom format."""
    key = fmt.strip().upper()
    if key == "ISO":
        return now.isoformat(), "ISO"
    if key == "UTC":
        return format_datetime(now, usegmt=True), "UTC"
    if key == "LOCALE":
        return now.strftime("%c"), "Locale"
    if key == "DATE":
        return now.strftime("%a %b %d %Y"), "Date"
    if key == "TIME":
        return now.strftime("%H:%M:%S UTC"), "Time"
    if key in ("UNIX", "TIMESTAMP"):
        return str(int(now.timestamp())), "Unix Timestamp"
    if _CUSTOM_TOKENS.search(fmt):
        return format_custom(now, fmt), "Custom"
    return now.isoformat(), "ISO (fallback)"


@utility(id="utility_get_current_datetime")
async def get_current_datetime(
    format: Annotated[
        Optional[str],
        "Optional date format. Can be ISO, UTC, Locale, Date, Time, Unix/Timestamp, "
        "or a custom format string like YYYY-MM-DD HH:mm:ss",
    ] = "ISO",
    *,
    context: ExecutionContext,
) -> dict:
    """Get current date and time in various formats"""
    now = datetime.now(timezone.utc)
    formatted, format_type = format_now(now, format or "ISO")
    return {
        "timestamp": int(now.timestamp() * 1000),
        "formatted": formatted,
        "format_type": format_type,
        "year": now.year,
        "month": now.month,
        "day": now.day,
        "hour": now.hour,
        "minute": now.minute,
        "second": now.second,
        "timezone": "UTC",
    }
