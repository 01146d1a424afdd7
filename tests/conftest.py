"""Shared fixtures for the post scheduler test suite."""

from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession

from post_scheduler.infrastructure.database import init_db
from post_scheduler.infrastructure.platforms_repo import ConnectionRegistry
from post_scheduler.infrastructure.publisher_client import PublishError, PublishResult
from post_scheduler.security import encrypt_token
from post_scheduler.services.dispatch_service import DispatchService
from post_scheduler.services.draft_service import DraftService
from post_scheduler.services.schedule_service import ScheduleService

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
async def engine():
    """A fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class FakePublisher:
    """Publisher double that records requests and rejects chosen providers."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.requests = []

    async def publish(self, request):
        self.requests.append(request)
        if request.provider in self.fail:
            raise PublishError(f"{request.provider} publish error: rejected")
        return PublishResult(
            provider=request.provider,
            external_id=f"{request.provider}-123",
            external_url=f"https://{request.provider}.example/p/123",
        )


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def connect(session):
    """Connect providers for a user: ``await connect("instagram", "pinterest")``."""

    async def _connect(*providers, user_id=USER_ID):
        registry = ConnectionRegistry(session)
        for provider in providers:
            await registry.connect(
                user_id=user_id,
                provider=provider,
                access_token_enc=encrypt_token(f"token-{provider}"),
                account_id=f"acct-{provider}",
            )

    return _connect


@pytest.fixture
def clock():
    """Fixed 'now' so that future publish times stay in the future."""
    return lambda: datetime(2030, 1, 1, 12, 0, 0)


@pytest.fixture
def schedule_service(session, clock):
    return ScheduleService(session, clock=clock)


@pytest.fixture
def dispatch_service(session, publisher):
    return DispatchService(session, publisher, retry_delay=0)


@pytest.fixture
def draft_service(session, schedule_service, dispatch_service):
    return DraftService(session, schedule_service, dispatch_service)


@pytest.fixture
def future():
    """A publish time well after the fixed clock."""
    return datetime(2031, 3, 10, 15, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------
@pytest.fixture
async def client(engine, publisher):
    from post_scheduler.dependencies.auth import get_current_user_id
    from post_scheduler.dependencies.db import get_session_dep
    from post_scheduler.dependencies.services import get_publisher
    from post_scheduler.main import app

    async def _session_override():
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    app.dependency_overrides[get_session_dep] = _session_override
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    app.dependency_overrides[get_publisher] = lambda: publisher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
