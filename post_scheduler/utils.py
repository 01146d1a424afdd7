# post_scheduler/utils.py
import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationError


def utc_now() -> datetime:
    """Current time as naive UTC, the form every timestamp is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"unknown timezone '{name}'")


def to_storage_utc(value: Optional[datetime], tz_name: str) -> Optional[datetime]:
    """Normalize an incoming publish time to naive UTC.

    Aware values are converted; naive values are read as wall-clock time in
    ``tz_name`` so that the calendar buckets them on the day the user picked.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=get_zone(tz_name))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage_utc(value: datetime, tz_name: str) -> datetime:
    return value.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name))


def parse_year_month(year_month: str) -> Tuple[int, int]:
    try:
        year_s, month_s = year_month.split("-")
        year, month = int(year_s), int(month_s)
    except (AttributeError, ValueError):
        raise ValidationError(f"month must be YYYY-MM, got '{year_month}'")
    if len(year_s) != 4 or not 1 <= month <= 12:
        raise ValidationError(f"month must be YYYY-MM, got '{year_month}'")
    return year, month


def month_bounds_utc(year_month: str, tz_name: str) -> Tuple[datetime, datetime]:
    """Half-open [start, end) of a calendar month in ``tz_name``, as naive UTC."""
    year, month = parse_year_month(year_month)
    zone = get_zone(tz_name)
    days = calendar.monthrange(year, month)[1]
    start_local = datetime(year, month, 1, tzinfo=zone)
    end_local = datetime.combine(date(year, month, days) + timedelta(days=1), datetime.min.time(), tzinfo=zone)
    start = start_local.astimezone(timezone.utc).replace(tzinfo=None)
    end = end_local.astimezone(timezone.utc).replace(tzinfo=None)
    return start, end


VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v", ".webm", ".avi", ".mkv")


def media_type_for_url(url: str) -> str:
    """'video' for URLs that point at a video file, otherwise 'image'."""
    path = urlsplit(url).path.lower()
    return "video" if path.endswith(VIDEO_EXTENSIONS) else "image"
