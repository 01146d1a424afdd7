# post_scheduler/services/calendar.py
from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional

import structlog

from ..config import SCHEDULER_TIMEZONE
from ..infrastructure.schedule_repo import ScheduledPostRepository
from ..models.scheduled_post import ScheduledPost
from ..utils import from_storage_utc, month_bounds_utc

logger = structlog.get_logger(__name__)


class CalendarProjection:
    """
    Read-only month view over a user's scheduled posts.

    Month boundaries and day buckets are both computed in the viewer's
    timezone, the same zone naive publish times are interpreted in on write,
    so a post always lands on the day it was picked for. Posts without a
    publish time never appear here.
    """

    def __init__(self, repo: ScheduledPostRepository, default_tz: str = SCHEDULER_TIMEZONE):
        self.repo = repo
        self.default_tz = default_tz

    async def list_month(self, user_id: str, year_month: str, tz: Optional[str] = None) -> List[ScheduledPost]:
        tz_name = tz or self.default_tz
        start, end = month_bounds_utc(year_month, tz_name)
        posts = await self.repo.list_scheduled_between(user_id, start, end)
        logger.debug("calendar_month_loaded", user_id=user_id, month=year_month, tz=tz_name, count=len(posts))
        return posts

    async def for_month(self, user_id: str, year_month: str, tz: Optional[str] = None) -> Dict[date, List[ScheduledPost]]:
        tz_name = tz or self.default_tz
        days: Dict[date, List[ScheduledPost]] = OrderedDict()
        for post in await self.list_month(user_id, year_month, tz_name):
            key = from_storage_utc(post.scheduled_at, tz_name).date()
            days.setdefault(key, []).append(post)
        return days
