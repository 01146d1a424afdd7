# post_scheduler/dependencies/services.py
from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from ..infrastructure.publisher_client import Publisher, RelayPublisher
from ..services.dispatch_service import DispatchService
from ..services.draft_service import DraftService
from ..services.schedule_service import ScheduleService
from .db import get_session_dep


def get_publisher() -> Publisher:
    return RelayPublisher()


def get_schedule_service(session: AsyncSession = Depends(get_session_dep)) -> ScheduleService:
    return ScheduleService(session)


def get_draft_service(
    session: AsyncSession = Depends(get_session_dep),
    publisher: Publisher = Depends(get_publisher),
) -> DraftService:
    return DraftService(session, ScheduleService(session), DispatchService(session, publisher))
