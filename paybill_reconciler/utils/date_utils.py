"""Date manipulation utilities"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_mpesa_datetime(date_part: str, time_part: str, tz: ZoneInfo) -> Optional[datetime]:
    """
    Convert M-Pesa's "D/M/YY" and "H:MM AM" pair into an aware datetime.

    Two-digit years are taken as 20YY. Returns None when the pair does not
    describe a real calendar date (e.g. 31/2/24).
    """
    try:
        day, month, year = (int(p) for p in date_part.split("/"))
        if year < 100:
            year += 2000
        clock = datetime.strptime(" ".join(time_part.split()).upper(), "%I:%M %p")
        return datetime(year, month, day, clock.hour, clock.minute, tzinfo=tz)
    except ValueError:
        return None
