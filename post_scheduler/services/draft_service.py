# post_scheduler/services/draft_service.py
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import DependencyError, NotFoundError, ValidationError
from ..infrastructure.draft_repo import DraftRepository
from ..models.draft import Draft
from ..models.scheduled_post import PostStatus
from ..utils import media_type_for_url
from .dispatch_service import DispatchService
from .resolver import normalize_targets
from .schedule_service import ScheduleService

logger = structlog.get_logger(__name__)


@dataclass
class PostAttempt:
    provider: str
    status: str
    post_id: Optional[uuid.UUID] = None
    issues: List[dict] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PostStatus.PUBLISHED.value


class DraftService:
    def __init__(self, session: AsyncSession, schedule_service: ScheduleService, dispatch_service: DispatchService):
        self.session = session
        self.repo = DraftRepository(session)
        self.schedule_service = schedule_service
        self.dispatch_service = dispatch_service

    async def create(self, user_id: str, caption: str, media_urls: Iterable[str] = ()) -> Draft:
        if not caption or not caption.strip():
            raise ValidationError("caption is required")
        draft = await self.repo.create(Draft(user_id=user_id, caption=caption, media_urls=[u for u in media_urls if u]))
        logger.info("draft_created", draft_id=str(draft.id), user_id=user_id)
        return draft

    async def list(self, user_id: str) -> List[Draft]:
        return await self.repo.list_by_user(user_id)

    async def get(self, user_id: str, draft_id: uuid.UUID) -> Draft:
        draft = await self.repo.get(user_id, draft_id)
        if not draft:
            raise NotFoundError("draft not found")
        return draft

    async def update_caption(self, user_id: str, draft_id: uuid.UUID, caption: str) -> Draft:
        if not caption or not caption.strip():
            raise ValidationError("caption is required")
        draft = await self.get(user_id, draft_id)
        return await self.repo.update_caption(draft, caption)

    async def delete(self, user_id: str, draft_id: uuid.UUID) -> None:
        await self.get(user_id, draft_id)
        await self.repo.delete(draft_id)
        logger.info("draft_deleted", draft_id=str(draft_id))

    async def post(self, user_id: str, draft_id: uuid.UUID, platforms: Iterable[Mapping]) -> List[PostAttempt]:
        """
        Publish the draft now, one attempt per platform, then delete it.
        The draft is consumed even when some attempts fail or stay pending;
        each attempt lives on as its own scheduled post.
        """
        draft = await self.get(user_id, draft_id)
        targets = normalize_targets(platforms)
        if not targets:
            raise ValidationError("select at least one platform")

        caption = draft.caption
        media = {"type": media_type_for_url(draft.media_urls[0]), "url": draft.media_urls[0]} if draft.media_urls else None
        attempts = [await self._attempt(user_id, draft_id, caption, media, target) for target in targets]

        await self.repo.delete(draft_id)
        logger.info(
            "draft_posted",
            draft_id=str(draft_id),
            succeeded=sum(1 for a in attempts if a.succeeded),
            failed=sum(1 for a in attempts if not a.succeeded),
        )
        return attempts

    async def _attempt(
        self, user_id: str, draft_id: uuid.UUID, caption: str, media: Optional[dict], target: dict
    ) -> PostAttempt:
        provider = target["provider"]
        try:
            post = await self.schedule_service.create(user_id, caption, media, [target])
        except DependencyError as exc:
            logger.error("draft_attempt_unavailable", draft_id=str(draft_id), provider=provider, error=str(exc))
            return PostAttempt(provider=provider, status=PostStatus.FAILED.value, error=str(exc))

        if post.post_status is PostStatus.SCHEDULED_PENDING:
            return PostAttempt(provider=provider, status=post.status, post_id=post.id, issues=post.issues)

        try:
            final = await self.dispatch_service.dispatch(post.id) or post
        except Exception as exc:
            # one broken attempt must not stop the others or keep the draft alive
            logger.exception("draft_attempt_failed", draft_id=str(draft_id), provider=provider, post_id=str(post.id))
            await self.session.rollback()
            return PostAttempt(provider=provider, status=PostStatus.FAILED.value, post_id=post.id, error=str(exc))
        error = "; ".join(f["error"] for f in final.failures) or None
        return PostAttempt(provider=provider, status=final.status, post_id=final.id, error=error)
