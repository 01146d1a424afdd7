# post_scheduler/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import DATABASE_URL, DATABASE_ECHO

# table registration for create_all
from ..models import connected_platform, draft, publish_log, scheduled_post  # noqa: F401

logger = structlog.get_logger(__name__)

engine: AsyncEngine = create_async_engine(DATABASE_URL, echo=DATABASE_ECHO)


async def init_db(bind: AsyncEngine = engine) -> None:
    try:
        async with bind.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)
    except SQLAlchemyError as e:
        logger.exception("db_init_failed", error=str(e))
        raise
    logger.info("db_initialized")


@asynccontextmanager
async def get_session(bind: AsyncEngine = engine) -> AsyncIterator[AsyncSession]:
    async with AsyncSession(bind, expire_on_commit=False) as session:
        yield session
