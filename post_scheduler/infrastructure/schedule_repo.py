# post_scheduler/infrastructure/schedule_repo.py
from typing import Optional, List
from datetime import datetime
import uuid

import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import ConflictError, DependencyError
from ..models.publish_log import PublishLog
from ..models.scheduled_post import ScheduledPost, PostStatus
from ..utils import utc_now

logger = structlog.get_logger(__name__)

# columns a versioned save may write; id, user_id and created_at never change
_MUTABLE_FIELDS = (
    "caption",
    "media",
    "platforms",
    "scheduled_at",
    "status",
    "issues",
    "failures",
    "updated_at",
    "published_at",
)


class ScheduledPostRepository:
    """
    Store for ScheduledPost and its PublishLog rows.

    Posts handed out by ``get`` are detached from the session so callers can
    run state transitions on them without anything reaching the database
    until ``save`` performs the version-checked write.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, post: ScheduledPost, log: Optional[PublishLog] = None) -> ScheduledPost:
        self.session.add(post)
        if log is not None:
            log.post_id = post.id
            self.session.add(log)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("scheduled_post_create_failed", error=str(e))
            raise DependencyError("post store unavailable") from e
        await self.session.refresh(post)
        self.session.expunge(post)
        return post

    async def get(self, user_id: str, post_id: uuid.UUID) -> Optional[ScheduledPost]:
        q = select(ScheduledPost).where(ScheduledPost.id == post_id, ScheduledPost.user_id == user_id)
        return await self._first_detached(q)

    async def get_any(self, post_id: uuid.UUID) -> Optional[ScheduledPost]:
        q = select(ScheduledPost).where(ScheduledPost.id == post_id)
        return await self._first_detached(q)

    async def save(self, post: ScheduledPost, expected_version: int, log: Optional[PublishLog] = None) -> ScheduledPost:
        """
        Write ``post`` only if the stored row still carries ``expected_version``.
        Raises ConflictError when another writer got there first.
        """
        values = {name: getattr(post, name) for name in _MUTABLE_FIELDS}
        values["version"] = expected_version + 1
        stmt = (
            update(ScheduledPost)
            .where(ScheduledPost.id == post.id, ScheduledPost.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            res = await self.session.execute(stmt)
            if res.rowcount != 1:
                await self.session.rollback()
                logger.info("scheduled_post_version_conflict", post_id=str(post.id), expected_version=expected_version)
                raise ConflictError("post was modified concurrently; reload and retry")
            if log is not None:
                log.post_id = post.id
                self.session.add(log)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("scheduled_post_save_failed", post_id=str(post.id), error=str(e))
            raise DependencyError("post store unavailable") from e
        post.version = expected_version + 1
        return post

    async def claim_for_dispatch(self, post_id: uuid.UUID) -> Optional[ScheduledPost]:
        """
        Atomically move a post from scheduled to publishing.
        Returns None when the post is not (or no longer) scheduled.
        """
        stmt = (
            update(ScheduledPost)
            .where(ScheduledPost.id == post_id, ScheduledPost.status == PostStatus.SCHEDULED.value)
            .values(
                status=PostStatus.PUBLISHING.value,
                updated_at=utc_now(),
                version=ScheduledPost.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            res = await self.session.execute(stmt)
            if res.rowcount != 1:
                await self.session.rollback()
                return None
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("scheduled_post_claim_failed", post_id=str(post_id), error=str(e))
            raise DependencyError("post store unavailable") from e
        return await self.get_any(post_id)

    async def delete(self, post: ScheduledPost) -> None:
        """
        Remove ``post`` and its logs, provided it is still at the version it
        was read at and has not been claimed for publishing since.
        """
        # bumping the version first locks the row against a concurrent claim
        guard = (
            update(ScheduledPost)
            .where(
                ScheduledPost.id == post.id,
                ScheduledPost.version == post.version,
                ScheduledPost.status != PostStatus.PUBLISHING.value,
            )
            .values(version=post.version + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            res = await self.session.execute(guard)
            if res.rowcount != 1:
                await self.session.rollback()
                logger.info("scheduled_post_delete_conflict", post_id=str(post.id), expected_version=post.version)
                raise ConflictError("post was modified or claimed for publishing; reload and retry")
            # logs first, the foreign key does not cascade
            await self.session.execute(
                delete(PublishLog).where(PublishLog.post_id == post.id).execution_options(synchronize_session=False)
            )
            await self.session.execute(
                delete(ScheduledPost).where(ScheduledPost.id == post.id).execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("scheduled_post_delete_failed", post_id=str(post.id), error=str(e))
            raise DependencyError("post store unavailable") from e

    async def list_scheduled_between(self, user_id: str, start: datetime, end: datetime) -> List[ScheduledPost]:
        q = (
            select(ScheduledPost)
            .where(
                ScheduledPost.user_id == user_id,
                ScheduledPost.scheduled_at.is_not(None),
                ScheduledPost.scheduled_at >= start,
                ScheduledPost.scheduled_at < end,
            )
            .order_by(ScheduledPost.scheduled_at, ScheduledPost.created_at)
        )
        return await self._all_detached(q)

    async def list_unscheduled(self, user_id: str) -> List[ScheduledPost]:
        q = (
            select(ScheduledPost)
            .where(
                ScheduledPost.user_id == user_id,
                ScheduledPost.scheduled_at.is_(None),
                ScheduledPost.status.in_([PostStatus.SCHEDULED_PENDING.value, PostStatus.SCHEDULED.value]),
            )
            .order_by(ScheduledPost.created_at.desc())
        )
        return await self._all_detached(q)

    async def list_due_ids(self, now: datetime, limit: int) -> List[uuid.UUID]:
        q = (
            select(ScheduledPost.id)
            .where(
                ScheduledPost.status == PostStatus.SCHEDULED.value,
                ScheduledPost.scheduled_at.is_not(None),
                ScheduledPost.scheduled_at <= now,
            )
            .order_by(ScheduledPost.scheduled_at)
            .limit(limit)
        )
        res = await self._execute(q)
        return list(res.scalars().all())

    async def list_stalled(self, cutoff: datetime, limit: int) -> List[ScheduledPost]:
        """Posts claimed for publishing whose last write is older than ``cutoff``."""
        q = (
            select(ScheduledPost)
            .where(
                ScheduledPost.status == PostStatus.PUBLISHING.value,
                ScheduledPost.updated_at < cutoff,
            )
            .order_by(ScheduledPost.updated_at)
            .limit(limit)
        )
        return await self._all_detached(q)

    async def add_log(self, post_id: uuid.UUID, level: str, message: str, raw: Optional[dict] = None) -> PublishLog:
        log = PublishLog(post_id=post_id, level=level, message=message, raw=raw)
        self.session.add(log)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("publish_log_write_failed", post_id=str(post_id), error=str(e))
            raise DependencyError("post store unavailable") from e
        return log

    async def list_logs(self, post_id: uuid.UUID) -> List[PublishLog]:
        q = select(PublishLog).where(PublishLog.post_id == post_id).order_by(PublishLog.created_at)
        res = await self._execute(q)
        return list(res.scalars().all())

    async def _execute(self, q):
        try:
            return await self.session.execute(q)
        except SQLAlchemyError as e:
            logger.error("scheduled_post_read_failed", error=str(e))
            raise DependencyError("post store unavailable") from e

    async def _first_detached(self, q) -> Optional[ScheduledPost]:
        res = await self._execute(q)
        post = res.scalar_one_or_none()
        if post is not None:
            self.session.expunge(post)
        return post

    async def _all_detached(self, q) -> List[ScheduledPost]:
        res = await self._execute(q)
        posts = list(res.scalars().all())
        for post in posts:
            self.session.expunge(post)
        return posts
