# post_scheduler/worker.py
"""
Background dispatcher.

Polls for scheduled posts whose publish time has passed and hands each one to
DispatchService. Run with ``python -m post_scheduler.worker``; set
DISABLE_WORKER=1 to keep it from starting.
"""
import asyncio
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from .config import DISABLE_WORKER, WORKER_BATCH_SIZE, WORKER_POLL_SECONDS
from .errors import SchedulerError
from .infrastructure.database import get_session, init_db
from .infrastructure.publisher_client import Publisher, RelayPublisher
from .middleware.logging import configure_structlog
from .services.dispatch_service import DispatchService

logger = structlog.get_logger(__name__)


async def run_once(publisher: Publisher, limit: int = WORKER_BATCH_SIZE) -> int:
    async with get_session() as session:
        finished = await DispatchService(session, publisher).dispatch_due(limit=limit)
    for post in finished:
        logger.info("worker_post_finished", post_id=str(post.id), status=post.status)
    return len(finished)


async def run_worker(
    publisher: Optional[Publisher] = None,
    poll_seconds: int = WORKER_POLL_SECONDS,
    stop: Optional[asyncio.Event] = None,
) -> None:
    publisher = publisher or RelayPublisher()
    stop = stop or asyncio.Event()
    await init_db()
    logger.info("worker_started", poll_seconds=poll_seconds)
    while not stop.is_set():
        try:
            count = await run_once(publisher)
            if count:
                logger.info("worker_batch_done", dispatched=count)
        except (SchedulerError, SQLAlchemyError) as exc:
            # store hiccup: keep polling, the posts are still scheduled
            logger.error("worker_batch_failed", error=str(exc))
        try:
            await asyncio.wait_for(stop.wait(), timeout=poll_seconds)
        except asyncio.TimeoutError:
            pass
    logger.info("worker_stopped")


def main() -> None:
    configure_structlog()
    if DISABLE_WORKER:
        logger.info("worker_disabled", reason="DISABLE_WORKER=1")
        return
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
