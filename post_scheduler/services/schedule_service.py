# post_scheduler/services/schedule_service.py
import uuid
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import SCHEDULER_TIMEZONE
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..infrastructure.platforms_repo import ConnectionRegistry
from ..infrastructure.schedule_repo import ScheduledPostRepository
from ..models.publish_log import PublishLog
from ..models.scheduled_post import ScheduledPost, PostStatus
from ..schemas.schedule_schema import ScheduleUpdate
from ..utils import to_storage_utc, utc_now
from .calendar import CalendarProjection
from .resolver import Classification, PlatformTargetResolver, normalize_targets

logger = structlog.get_logger(__name__)


class ScheduleService:
    """
    Sole writer of ScheduledPost status before dispatch.

    Every operation classifies targets before touching the store, so a
    registry failure leaves the persisted post exactly as it was. Writes go
    through a version check; a concurrent writer surfaces as ConflictError.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: Optional[ConnectionRegistry] = None,
        resolver: Optional[PlatformTargetResolver] = None,
        tz: str = SCHEDULER_TIMEZONE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self.repo = ScheduledPostRepository(session)
        self.registry = registry or ConnectionRegistry(session)
        self.resolver = resolver or PlatformTargetResolver()
        self.calendar = CalendarProjection(self.repo, tz)
        self.tz = tz
        self.clock = clock

    async def create(
        self,
        user_id: str,
        caption: str,
        media: Optional[Mapping] = None,
        platforms: Iterable[Mapping] = (),
        scheduled_at: Optional[datetime] = None,
    ) -> ScheduledPost:
        post = ScheduledPost(
            user_id=user_id,
            caption=self._clean_caption(caption),
            media=dict(media) if media else None,
            platforms=normalize_targets(platforms),
            scheduled_at=self._publish_time(scheduled_at),
        )
        # no targets yet is a supported save, not an error
        classification = await self._classify(user_id, post.platforms) if post.platforms else Classification()
        post.apply_classification(classification)

        post = await self.repo.create(post, self._status_log(post, "created"))
        logger.info(
            "scheduled_post_created",
            post_id=str(post.id),
            user_id=user_id,
            status=post.status,
            providers=post.providers,
            issues=post.issues,
        )
        return post

    async def update(self, user_id: str, post_id: uuid.UUID, changes: ScheduleUpdate) -> ScheduledPost:
        post = await self.get_by_id(user_id, post_id)
        if changes.version is not None and changes.version != post.version:
            raise ConflictError(f"post is at version {post.version}, update was based on {changes.version}")
        if not post.post_status.is_editable:
            raise InvalidStateError(post.status, "update")

        expected_version = post.version
        fields = changes.model_fields_set
        must_resolve = post.post_status is PostStatus.SCHEDULED_PENDING

        if "caption" in fields:
            post.caption = self._clean_caption(changes.caption)
        if "media" in fields:
            post.media = changes.media.model_dump() if changes.media else None
        if "scheduled_at" in fields:
            post.scheduled_at = self._publish_time(changes.scheduled_at)
        if "platforms" in fields:
            targets = normalize_targets(t.model_dump(exclude_none=True) for t in changes.platforms)
            if targets != post.platforms:
                post.platforms = targets
                must_resolve = True

        if must_resolve:
            post.apply_classification(await self._classify(user_id, post.platforms))
        else:
            post.touch()

        post = await self.repo.save(post, expected_version, self._status_log(post, "updated"))
        logger.info(
            "scheduled_post_updated",
            post_id=str(post.id),
            fields=sorted(fields - {"version"}),
            status=post.status,
            resolved=must_resolve,
            version=post.version,
        )
        return post

    async def resolve(self, user_id: str, post_id: uuid.UUID, platforms: Iterable[Mapping]) -> ScheduledPost:
        """Replace the targets and classify again; safe to call repeatedly."""
        post = await self.get_by_id(user_id, post_id)
        if not post.post_status.is_editable:
            raise InvalidStateError(post.status, "resolve")

        expected_version = post.version
        post.platforms = normalize_targets(platforms)
        post.apply_classification(await self._classify(user_id, post.platforms))

        post = await self.repo.save(post, expected_version, self._status_log(post, "resolved"))
        logger.info("scheduled_post_resolved", post_id=str(post.id), status=post.status, issues=post.issues)
        return post

    async def duplicate(self, user_id: str, post_id: uuid.UUID) -> ScheduledPost:
        source = await self.get_by_id(user_id, post_id)
        copy = source.copy_for_duplicate()
        copy = await self.repo.create(copy, self._status_log(copy, "duplicated", source_id=str(source.id)))
        logger.info("scheduled_post_duplicated", source_id=str(source.id), post_id=str(copy.id), source_status=source.status)
        return copy

    async def delete(self, user_id: str, post_id: uuid.UUID) -> None:
        post = await self.get_by_id(user_id, post_id)
        if post.post_status is PostStatus.PUBLISHING:
            raise InvalidStateError(post.status, "delete")
        await self.repo.delete(post)
        logger.info("scheduled_post_deleted", post_id=str(post_id), status=post.status)

    async def get_by_id(self, user_id: str, post_id: uuid.UUID) -> ScheduledPost:
        post = await self.repo.get(user_id, post_id)
        if not post:
            raise NotFoundError("scheduled post not found")
        return post

    async def status(self, user_id: str, post_id: uuid.UUID) -> Tuple[ScheduledPost, List[PublishLog]]:
        post = await self.get_by_id(user_id, post_id)
        return post, await self.repo.list_logs(post.id)

    async def list_for_month(self, user_id: str, year_month: str, tz: Optional[str] = None) -> List[ScheduledPost]:
        return await self.calendar.list_month(user_id, year_month, tz)

    async def days_for_month(self, user_id: str, year_month: str, tz: Optional[str] = None) -> Dict[date, List[ScheduledPost]]:
        return await self.calendar.for_month(user_id, year_month, tz)

    async def list_unscheduled(self, user_id: str) -> List[ScheduledPost]:
        return await self.repo.list_unscheduled(user_id)

    async def _classify(self, user_id: str, targets: List[dict]) -> Classification:
        snapshot = await self.registry.snapshot(user_id)
        return self.resolver.classify(targets, snapshot.providers)

    def _clean_caption(self, caption: Optional[str]) -> str:
        if caption is None or not caption.strip():
            raise ValidationError("caption is required")
        return caption

    def _publish_time(self, scheduled_at: Optional[datetime]) -> Optional[datetime]:
        value = to_storage_utc(scheduled_at, self.tz)
        if value is not None and value <= self.clock():
            raise ValidationError("scheduled time must be in the future")
        return value

    def _status_log(self, post: ScheduledPost, action: str, **raw) -> PublishLog:
        if post.post_status is PostStatus.SCHEDULED:
            message = f"Post {action}: scheduled for {', '.join(post.providers)}"
            level = "info"
        else:
            pending = [i["provider"] for i in post.issues]
            message = f"Post {action}: pending" + (f" on {', '.join(pending)}" if pending else ", no platforms selected")
            level = "warn" if pending else "info"
        raw.update(status=post.status, issues=post.issues)
        if post.scheduled_at:
            raw["scheduledAt"] = post.scheduled_at.isoformat()
        return PublishLog(post_id=post.id, level=level, message=message, raw=raw)
