"""Tests for DispatchService: claiming, publishing and terminal status."""

from datetime import datetime, timedelta

import pytest

from post_scheduler.errors import DependencyError, InvalidStateError, NotFoundError
from post_scheduler.infrastructure.platforms_repo import ConnectionRegistry
from post_scheduler.infrastructure.publisher_client import PublishError
from post_scheduler.infrastructure.schedule_repo import ScheduledPostRepository
from post_scheduler.services.dispatch_service import DispatchService
from post_scheduler.utils import utc_now

from conftest import USER_ID, FakePublisher


class CrashingPublisher:
    async def publish(self, request):
        raise KeyError("adapter bug")


@pytest.fixture
async def scheduled_post(schedule_service, connect, future):
    await connect("instagram", "facebook")
    return await schedule_service.create(
        USER_ID,
        "Sunset views",
        media={"type": "image", "url": "https://cdn.example/sunset.jpg"},
        platforms=[{"provider": "instagram"}, {"provider": "facebook"}],
        scheduled_at=future,
    )


# =============================================================================
# dispatch
# =============================================================================


class TestDispatch:
    async def test_all_targets_succeed(self, dispatch_service, publisher, scheduled_post):
        post = await dispatch_service.dispatch(scheduled_post.id)

        assert post.status == "published"
        assert post.failures == []
        assert post.published_at is not None
        assert [r.provider for r in publisher.requests] == ["instagram", "facebook"]

    async def test_request_carries_post_and_connection(self, dispatch_service, publisher, scheduled_post):
        await dispatch_service.dispatch(scheduled_post.id)

        request = publisher.requests[0]
        assert request.caption == "Sunset views"
        assert request.media_type == "image"
        assert request.media_url == "https://cdn.example/sunset.jpg"
        assert request.account_id == "acct-instagram"
        assert request.access_token == "token-instagram"

    async def test_options_reach_the_publisher(self, schedule_service, dispatch_service, publisher, connect):
        await connect("pinterest")
        post = await schedule_service.create(
            USER_ID, "Pin", platforms=[{"provider": "pinterest", "options": {"boardId": "board-9"}}]
        )

        await dispatch_service.dispatch(post.id)

        assert publisher.requests[0].options == {"boardId": "board-9"}

    async def test_partial_failure_fails_the_post(self, session, scheduled_post):
        svc = DispatchService(session, FakePublisher(fail={"facebook"}), retry_delay=0)

        post = await svc.dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert post.failures == [{"provider": "facebook", "error": "facebook publish error: rejected"}]
        assert post.published_at is None

    async def test_logs_record_each_target(self, session, schedule_service, scheduled_post):
        svc = DispatchService(session, FakePublisher(fail={"facebook"}), retry_delay=0)
        await svc.dispatch(scheduled_post.id)

        _, logs = await schedule_service.status(USER_ID, scheduled_post.id)
        messages = [(log.level, log.message) for log in logs]

        assert ("info", "Published to instagram successfully") in messages
        assert ("error", "facebook publish error: rejected") in messages

    async def test_unexpected_error_does_not_strand_the_post(self, session, scheduled_post):
        post = await DispatchService(session, CrashingPublisher(), retry_delay=0).dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert {f["provider"] for f in post.failures} == {"instagram", "facebook"}

    async def test_disconnected_provider_fails(self, session, dispatch_service, scheduled_post):
        await ConnectionRegistry(session).disconnect(USER_ID, "facebook")

        post = await dispatch_service.dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert post.failures == [{"provider": "facebook", "error": "No facebook connection found"}]

    async def test_second_claim_is_refused(self, dispatch_service, publisher, scheduled_post):
        await dispatch_service.dispatch(scheduled_post.id)

        assert await dispatch_service.dispatch(scheduled_post.id) is None
        assert len(publisher.requests) == 2

    async def test_pending_post_is_not_dispatched(self, schedule_service, dispatch_service, publisher):
        post = await schedule_service.create(USER_ID, "x", platforms=[{"provider": "tiktok"}])

        assert await dispatch_service.dispatch(post.id) is None
        assert publisher.requests == []
        assert (await schedule_service.get_by_id(USER_ID, post.id)).status == "scheduled_pending"

    async def test_published_post_cannot_return_to_scheduling(self, dispatch_service, schedule_service, scheduled_post):
        await dispatch_service.dispatch(scheduled_post.id)

        with pytest.raises(InvalidStateError):
            await schedule_service.resolve(USER_ID, scheduled_post.id, [{"provider": "instagram"}])


# =============================================================================
# dispatch_due
# =============================================================================


class TestDispatchDue:
    async def test_only_due_scheduled_posts_are_published(self, session, schedule_service, dispatch_service, connect):
        await connect("instagram")
        due = await schedule_service.create(
            USER_ID, "due", platforms=[{"provider": "instagram"}], scheduled_at=datetime(2031, 1, 1, 9)
        )
        later = await schedule_service.create(
            USER_ID, "later", platforms=[{"provider": "instagram"}], scheduled_at=datetime(2031, 6, 1, 9)
        )
        pending = await schedule_service.create(
            USER_ID, "pending", platforms=[{"provider": "tiktok"}], scheduled_at=datetime(2031, 1, 1, 9)
        )
        undated = await schedule_service.create(USER_ID, "undated", platforms=[{"provider": "instagram"}])

        finished = await dispatch_service.dispatch_due(now=datetime(2031, 2, 1))

        assert [p.id for p in finished] == [due.id]
        repo = ScheduledPostRepository(session)
        assert (await repo.get(USER_ID, later.id)).status == "scheduled"
        assert (await repo.get(USER_ID, pending.id)).status == "scheduled_pending"
        assert (await repo.get(USER_ID, undated.id)).status == "scheduled"

    async def test_limit_caps_the_batch(self, schedule_service, dispatch_service, connect):
        await connect("instagram")
        for day in (1, 2, 3):
            await schedule_service.create(
                USER_ID, f"day {day}", platforms=[{"provider": "instagram"}], scheduled_at=datetime(2031, 1, day, 9)
            )

        finished = await dispatch_service.dispatch_due(now=datetime(2031, 2, 1), limit=2)

        assert [p.caption for p in finished] == ["day 1", "day 2"]

    async def test_nothing_due(self, dispatch_service):
        assert await dispatch_service.dispatch_due(now=datetime(2031, 2, 1)) == []




# =============================================================================
# retries
# =============================================================================


class FlakyPublisher(FakePublisher):
    """Fails the first ``n`` calls for each listed provider, then succeeds."""

    def __init__(self, **failures_before_success):
        super().__init__()
        self.remaining = dict(failures_before_success)

    async def publish(self, request):
        if self.remaining.get(request.provider, 0) > 0:
            self.remaining[request.provider] -= 1
            self.requests.append(request)
            raise PublishError(f"{request.provider} publish error: relay timeout")
        return await super().publish(request)


@pytest.fixture
def delays():
    return []


@pytest.fixture
def record_sleep(delays):
    async def _sleep(seconds):
        delays.append(seconds)

    return _sleep


class TestRetry:
    async def test_transient_error_is_retried(self, session, schedule_service, scheduled_post, record_sleep, delays):
        publisher = FlakyPublisher(instagram=1)
        svc = DispatchService(session, publisher, retry_delay=5, sleep=record_sleep)

        post = await svc.dispatch(scheduled_post.id)

        assert post.status == "published"
        assert [r.provider for r in publisher.requests] == ["instagram", "instagram", "facebook"]
        assert delays == [5]
        _, logs = await schedule_service.status(USER_ID, post.id)
        retries = [log for log in logs if log.level == "warn"]
        assert len(retries) == 1
        assert retries[0].raw == {"provider": "instagram", "attempt": 1}

    async def test_gives_up_after_last_attempt_with_backoff(self, session, scheduled_post, record_sleep, delays):
        publisher = FakePublisher(fail={"facebook"})
        svc = DispatchService(session, publisher, max_attempts=3, retry_delay=5, sleep=record_sleep)

        post = await svc.dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert [r.provider for r in publisher.requests].count("facebook") == 3
        assert delays == [5, 10]
        assert post.failures == [{"provider": "facebook", "error": "facebook publish error: rejected"}]

    async def test_missing_connection_is_not_retried(self, session, dispatch_service, publisher, scheduled_post):
        await ConnectionRegistry(session).disconnect(USER_ID, "facebook")

        await dispatch_service.dispatch(scheduled_post.id)

        assert [r.provider for r in publisher.requests] == ["instagram"]


class TestStoredToken:
    async def test_unreadable_token_fails_without_calling_the_relay(self, session, dispatch_service, publisher, scheduled_post):
        await ConnectionRegistry(session).connect(USER_ID, "instagram", "not-a-fernet-token")

        post = await dispatch_service.dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert post.failures == [
            {"provider": "instagram", "error": "stored instagram token unreadable; reconnect the account"}
        ]
        assert [r.provider for r in publisher.requests] == ["facebook"]


# =============================================================================
# interrupted publishing
# =============================================================================


class TestInterruptedDispatch:
    async def test_store_failure_mid_publish_still_ends_failed(self, session, dispatch_service, scheduled_post, monkeypatch):
        real_add_log = dispatch_service.repo.add_log

        async def add_log(post_id, level, message, raw=None):
            if message.startswith("Published to"):
                raise DependencyError("post store unavailable")
            return await real_add_log(post_id, level, message, raw)

        monkeypatch.setattr(dispatch_service.repo, "add_log", add_log)

        post = await dispatch_service.dispatch(scheduled_post.id)

        assert post.status == "failed"
        assert {f["provider"] for f in post.failures} == {"instagram", "facebook"}
        assert all(f["error"].startswith("dispatch interrupted") for f in post.failures)
        stored = await ScheduledPostRepository(session).get(USER_ID, post.id)
        assert stored.status == "failed"

    async def test_stalled_post_is_failed_by_next_batch(self, session, dispatch_service, publisher, scheduled_post):
        repo = ScheduledPostRepository(session)
        await repo.claim_for_dispatch(scheduled_post.id)  # worker dies here

        finished = await dispatch_service.dispatch_due(now=utc_now() + timedelta(hours=1))

        assert [p.id for p in finished] == [scheduled_post.id]
        stored = await repo.get(USER_ID, scheduled_post.id)
        assert stored.status == "failed"
        assert {f["provider"] for f in stored.failures} == {"instagram", "facebook"}
        assert publisher.requests == []

    async def test_recent_claim_is_left_alone(self, session, dispatch_service, scheduled_post):
        repo = ScheduledPostRepository(session)
        await repo.claim_for_dispatch(scheduled_post.id)

        assert await dispatch_service.dispatch_due(now=utc_now()) == []
        assert (await repo.get(USER_ID, scheduled_post.id)).status == "publishing"

    async def test_stalled_post_can_be_deleted_once_failed(self, session, dispatch_service, schedule_service, scheduled_post):
        await ScheduledPostRepository(session).claim_for_dispatch(scheduled_post.id)
        await dispatch_service.recover_stalled(now=utc_now() + timedelta(hours=1))

        await schedule_service.delete(USER_ID, scheduled_post.id)

        with pytest.raises(NotFoundError):
            await schedule_service.get_by_id(USER_ID, scheduled_post.id)
