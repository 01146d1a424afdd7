# post_scheduler/routers/schedule_router.py
from typing import List
import uuid

import structlog
from fastapi import APIRouter, Depends, status

from ..dependencies.auth import get_current_user_id
from ..dependencies.services import get_schedule_service
from ..errors import SchedulerError
from ..schemas.schedule_schema import (
    ScheduleCreate,
    ScheduleRead,
    ScheduleResolve,
    PublishLogRead,
    ScheduleStatusRead,
    ScheduleUpdate,
)
from ..services.schedule_service import ScheduleService
from .http_errors import http_error

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.post("", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    payload: ScheduleCreate,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.create(
            user_id=user_id,
            caption=payload.caption,
            media=payload.media.model_dump() if payload.media else None,
            platforms=[t.model_dump(exclude_none=True) for t in payload.platforms],
            scheduled_at=payload.scheduled_at,
        )
    except SchedulerError as exc:
        logger.info("schedule_create_rejected", error=str(exc))
        raise http_error(exc)


@router.get("/unscheduled", response_model=List[ScheduleRead])
async def list_unscheduled(svc: ScheduleService = Depends(get_schedule_service), user_id: str = Depends(get_current_user_id)):
    return await svc.list_unscheduled(user_id)


@router.get("/{post_id}", response_model=ScheduleRead)
async def get_schedule(
    post_id: uuid.UUID,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.get_by_id(user_id, post_id)
    except SchedulerError as exc:
        raise http_error(exc)


@router.patch("/{post_id}", response_model=ScheduleRead)
async def update_schedule(
    post_id: uuid.UUID,
    payload: ScheduleUpdate,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.update(user_id, post_id, payload)
    except SchedulerError as exc:
        logger.info("schedule_update_rejected", post_id=str(post_id), error=str(exc))
        raise http_error(exc)


@router.patch("/{post_id}/resolve", response_model=ScheduleRead)
async def resolve_schedule(
    post_id: uuid.UUID,
    payload: ScheduleResolve,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.resolve(user_id, post_id, [t.model_dump(exclude_none=True) for t in payload.platforms])
    except SchedulerError as exc:
        logger.info("schedule_resolve_rejected", post_id=str(post_id), error=str(exc))
        raise http_error(exc)


@router.post("/{post_id}/duplicate", response_model=ScheduleRead)
async def duplicate_schedule(
    post_id: uuid.UUID,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.duplicate(user_id, post_id)
    except SchedulerError as exc:
        raise http_error(exc)


@router.delete("/{post_id}", response_model=dict)
async def delete_schedule(
    post_id: uuid.UUID,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        await svc.delete(user_id, post_id)
        return {"success": True}
    except SchedulerError as exc:
        raise http_error(exc)


@router.get("/{post_id}/status", response_model=ScheduleStatusRead)
async def schedule_status(
    post_id: uuid.UUID,
    svc: ScheduleService = Depends(get_schedule_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        post, logs = await svc.status(user_id, post_id)
    except SchedulerError as exc:
        raise http_error(exc)
    return ScheduleStatusRead(
        id=post.id,
        status=post.status,
        issues=post.issues,
        failures=post.failures,
        logs=[PublishLogRead.model_validate(log) for log in logs],
    )
