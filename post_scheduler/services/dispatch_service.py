# post_scheduler/services/dispatch_service.py
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import (
    PUBLISH_MAX_ATTEMPTS,
    PUBLISH_RETRY_DELAY_SECONDS,
    STALE_PUBLISHING_SECONDS,
    WORKER_BATCH_SIZE,
)
from ..errors import ConflictError
from ..infrastructure.platforms_repo import ConnectionRegistry
from ..infrastructure.publisher_client import Publisher, PublishError, PublishRequest, PublishResult
from ..infrastructure.schedule_repo import ScheduledPostRepository
from ..models.scheduled_post import ScheduledPost
from ..security import decrypt_token
from ..utils import utc_now

logger = structlog.get_logger(__name__)


class DispatchService:
    """
    Moves scheduled posts through publishing to a terminal status.

    The claim is a single conditional UPDATE from scheduled to publishing, so
    two workers racing on the same post publish it once. Each target gets up
    to ``max_attempts`` tries with exponential backoff before it counts as
    failed. A post left in publishing by a dead worker is failed by the next
    ``dispatch_due`` once it is older than ``stale_after``.
    """

    def __init__(
        self,
        session: AsyncSession,
        publisher: Publisher,
        registry: Optional[ConnectionRegistry] = None,
        max_attempts: int = PUBLISH_MAX_ATTEMPTS,
        retry_delay: float = PUBLISH_RETRY_DELAY_SECONDS,
        stale_after: timedelta = timedelta(seconds=STALE_PUBLISHING_SECONDS),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.publisher = publisher
        self.repo = ScheduledPostRepository(session)
        self.registry = registry or ConnectionRegistry(session)
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.stale_after = stale_after
        self.sleep = sleep

    async def dispatch(self, post_id: uuid.UUID) -> Optional[ScheduledPost]:
        post = await self.repo.claim_for_dispatch(post_id)
        if post is None:
            logger.info("dispatch_skipped_not_scheduled", post_id=str(post_id))
            return None

        # provider -> failure dict, or None once published
        outcomes = {}
        try:
            await self.repo.add_log(
                post.id, "info", f"Starting publish to {', '.join(post.providers)}", {"version": post.version}
            )
            for target in post.platforms:
                outcomes[target["provider"]] = await self._dispatch_target(post, target)
        except Exception as exc:
            # a store failure mid-publish still has to end in a terminal status
            logger.exception("dispatch_interrupted", post_id=str(post.id))
            await self.session.rollback()
            for provider in post.providers:
                if provider not in outcomes:
                    outcomes[provider] = {"provider": provider, "error": f"dispatch interrupted: {exc}"}

        failures = [f for f in outcomes.values() if f]
        expected_version = post.version
        status = post.finish_publishing(failures)
        post = await self.repo.save(post, expected_version)
        logger.info(
            "dispatch_finished",
            post_id=str(post.id),
            status=status.value,
            failed_providers=[f["provider"] for f in failures],
        )
        return post

    async def dispatch_due(self, now: Optional[datetime] = None, limit: int = WORKER_BATCH_SIZE) -> List[ScheduledPost]:
        now = now or utc_now()
        finished = await self.recover_stalled(now, limit)
        for post_id in await self.repo.list_due_ids(now, limit):
            post = await self.dispatch(post_id)
            if post is not None:
                finished.append(post)
        return finished

    async def recover_stalled(self, now: Optional[datetime] = None, limit: int = WORKER_BATCH_SIZE) -> List[ScheduledPost]:
        """Fail posts stuck in publishing; none of their targets can be confirmed."""
        now = now or utc_now()
        recovered = []
        for post in await self.repo.list_stalled(now - self.stale_after, limit):
            error = "publishing interrupted before completion"
            stalled_since = post.updated_at
            expected_version = post.version
            post.finish_publishing([{"provider": p, "error": error} for p in post.providers])
            try:
                post = await self.repo.save(post, expected_version)
            except ConflictError:
                # the original dispatcher finished it after all
                continue
            await self.repo.add_log(post.id, "error", error, {"stalledSince": stalled_since.isoformat()})
            logger.warning("dispatch_stalled_post_failed", post_id=str(post.id))
            recovered.append(post)
        return recovered

    async def _dispatch_target(self, post: ScheduledPost, target: dict) -> Optional[dict]:
        provider = target["provider"]
        try:
            request = await self._build_request(post, target)
            result = await self._publish_with_retry(post, request)
        except PublishError as exc:
            await self.repo.add_log(post.id, "error", str(exc), {"provider": provider})
            logger.warning("publish_target_failed", post_id=str(post.id), provider=provider, error=str(exc))
            return {"provider": provider, "error": str(exc)}
        except Exception as exc:
            # an adapter bug must not leave the post stuck in publishing
            logger.exception("publish_target_crashed", post_id=str(post.id), provider=provider)
            await self.repo.add_log(post.id, "error", f"unexpected error: {exc}", {"provider": provider})
            return {"provider": provider, "error": f"unexpected error: {exc}"}

        await self.repo.add_log(
            post.id,
            "info",
            f"Published to {provider} successfully",
            {"provider": provider, "externalId": result.external_id, "externalUrl": result.external_url},
        )
        return None

    async def _publish_with_retry(self, post: ScheduledPost, request: PublishRequest) -> PublishResult:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.publisher.publish(request)
            except PublishError as exc:
                if attempt == self.max_attempts:
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                await self.repo.add_log(
                    post.id,
                    "warn",
                    f"{request.provider} attempt {attempt} failed, retrying in {delay:g}s: {exc}",
                    {"provider": request.provider, "attempt": attempt},
                )
                logger.info(
                    "publish_target_retry",
                    post_id=str(post.id),
                    provider=request.provider,
                    attempt=attempt,
                    delay=delay,
                )
                await self.sleep(delay)

    async def _build_request(self, post: ScheduledPost, target: dict) -> PublishRequest:
        provider = target["provider"]
        connection = await self.registry.get_by_user_and_provider(post.user_id, provider)
        if connection is None:
            # disconnected after the post was scheduled
            raise PublishError(f"No {provider} connection found")
        access_token = decrypt_token(connection.access_token_enc)
        if access_token is None:
            raise PublishError(f"stored {provider} token unreadable; reconnect the account")

        media = post.media or {}
        return PublishRequest(
            provider=provider,
            caption=post.caption,
            media_type=media.get("type"),
            media_url=media.get("url"),
            options=dict(target.get("options") or {}),
            account_id=connection.account_id,
            access_token=access_token,
        )
