# post_scheduler/routers/calendar_router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies.auth import get_current_user_id
from ..dependencies.services import get_schedule_service
from ..errors import SchedulerError
from ..schemas.schedule_schema import CalendarDay, CalendarEntry
from ..services.schedule_service import ScheduleService
from .http_errors import http_error

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("", response_model=List[CalendarEntry])
async def calendar_month(
    month: str = Query(..., description="YYYY-MM"),
    tz: Optional[str] = Query(None, description="IANA timezone of the viewer"),
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        posts = await svc.list_for_month(user_id, month, tz)
    except SchedulerError as exc:
        raise http_error(exc)
    return [CalendarEntry.from_post(p) for p in posts]


@router.get("/days", response_model=List[CalendarDay])
async def calendar_days(
    month: str = Query(..., description="YYYY-MM"),
    tz: Optional[str] = Query(None, description="IANA timezone of the viewer"),
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        days = await svc.days_for_month(user_id, month, tz)
    except SchedulerError as exc:
        raise http_error(exc)
    return [CalendarDay(day=day, posts=[CalendarEntry.from_post(p) for p in posts]) for day, posts in days.items()]
