# post_scheduler/routers/draft_router.py
from typing import List
import uuid

import structlog
from fastapi import APIRouter, Depends, status

from ..dependencies.auth import get_current_user_id
from ..dependencies.services import get_draft_service
from ..errors import SchedulerError
from ..schemas.draft_schema import DraftCreate, DraftPostOutcome, DraftPostRequest, DraftPostResult, DraftRead, DraftUpdate
from ..services.draft_service import DraftService
from .http_errors import http_error

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/drafts", tags=["drafts"])


@router.post("", response_model=DraftRead, status_code=status.HTTP_201_CREATED)
async def create_draft(payload: DraftCreate, svc: DraftService = Depends(get_draft_service), user_id: str = Depends(get_current_user_id)):
    try:
        return await svc.create(user_id, payload.caption, payload.media_urls)
    except SchedulerError as exc:
        raise http_error(exc)


@router.get("", response_model=List[DraftRead])
async def list_drafts(svc: DraftService = Depends(get_draft_service), user_id: str = Depends(get_current_user_id)):
    return await svc.list(user_id)


@router.get("/{draft_id}", response_model=DraftRead)
async def get_draft(draft_id: uuid.UUID, svc: DraftService = Depends(get_draft_service), user_id: str = Depends(get_current_user_id)):
    try:
        return await svc.get(user_id, draft_id)
    except SchedulerError as exc:
        raise http_error(exc)


@router.patch("/{draft_id}", response_model=DraftRead)
async def update_draft(
    draft_id: uuid.UUID,
    payload: DraftUpdate,
    svc: DraftService = Depends(get_draft_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return await svc.update_caption(user_id, draft_id, payload.caption)
    except SchedulerError as exc:
        raise http_error(exc)


@router.delete("/{draft_id}", response_model=dict)
async def delete_draft(draft_id: uuid.UUID, svc: DraftService = Depends(get_draft_service), user_id: str = Depends(get_current_user_id)):
    try:
        await svc.delete(user_id, draft_id)
        return {"success": True}
    except SchedulerError as exc:
        raise http_error(exc)


@router.post("/{draft_id}/post", response_model=DraftPostResult)
async def post_draft(
    draft_id: uuid.UUID,
    payload: DraftPostRequest,
    svc: DraftService = Depends(get_draft_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        attempts = await svc.post(user_id, draft_id, [t.model_dump(exclude_none=True) for t in payload.platforms])
    except SchedulerError as exc:
        logger.info("draft_post_rejected", draft_id=str(draft_id), error=str(exc))
        raise http_error(exc)
    results = [
        DraftPostOutcome(provider=a.provider, post_id=a.post_id, status=a.status, issues=a.issues, error=a.error)
        for a in attempts
    ]
    succeeded = sum(1 for a in attempts if a.succeeded)
    return DraftPostResult(draft_id=draft_id, results=results, succeeded=succeeded, failed=len(attempts) - succeeded)
