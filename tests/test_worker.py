"""Tests for the background dispatch loop."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel.ext.asyncio.session import AsyncSession

from post_scheduler import worker

from conftest import USER_ID


@pytest.fixture
def worker_sessions(engine, monkeypatch):
    @asynccontextmanager
    async def _get_session(bind=None):
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    async def _init_db(bind=None):
        return None

    monkeypatch.setattr(worker, "get_session", _get_session)
    monkeypatch.setattr(worker, "init_db", _init_db)


class TestRunOnce:
    async def test_publishes_due_posts(self, worker_sessions, schedule_service, connect, publisher, monkeypatch):
        await connect("instagram")
        post = await schedule_service.create(
            USER_ID, "due", platforms=[{"provider": "instagram"}], scheduled_at=datetime(2031, 1, 1, tzinfo=timezone.utc)
        )
        monkeypatch.setattr("post_scheduler.services.dispatch_service.utc_now", lambda: datetime(2031, 2, 1))

        count = await worker.run_once(publisher)

        assert count == 1
        assert [r.provider for r in publisher.requests] == ["instagram"]
        assert (await schedule_service.get_by_id(USER_ID, post.id)).status == "published"

    async def test_nothing_due(self, worker_sessions, publisher):
        assert await worker.run_once(publisher) == 0


class TestRunWorker:
    async def test_store_errors_do_not_stop_the_loop(self, monkeypatch, publisher):
        calls = []
        stop = asyncio.Event()

        async def flaky_run_once(pub, limit=50):
            calls.append(pub)
            if len(calls) == 1:
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            stop.set()
            return 0

        async def _init_db(bind=None):
            return None

        monkeypatch.setattr(worker, "run_once", flaky_run_once)
        monkeypatch.setattr(worker, "init_db", _init_db)

        await asyncio.wait_for(worker.run_worker(publisher, poll_seconds=0, stop=stop), timeout=5)

        assert len(calls) == 2

    def test_disabled_worker_does_not_start(self, monkeypatch):
        started = []
        monkeypatch.setattr(worker, "DISABLE_WORKER", True)
        monkeypatch.setattr(worker, "run_worker", lambda: started.append(True))

        worker.main()

        assert started == []
