import asyncio
from typing import Optional

from celery.utils.log import get_task_logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatlock.celery_app import celery_app
from seatlock.config import settings
from seatlock.db.session import make_engine
from seatlock.services.seat_lock import SeatLockManager

logger = get_task_logger(__name__)


async def run_sweep(session_factory: Optional[async_sessionmaker] = None, manager: Optional[SeatLockManager] = None) -> int:
    """Release expired seat holds once. Returns how many were released.

    Without a session factory a short-lived engine is created, since each celery
    run gets a fresh event loop and pooled connections cannot cross loops.
    """
    if manager is not None:
        return await manager.release_expired_locks()
    if session_factory is not None:
        return await SeatLockManager(session_factory).release_expired_locks()

    engine = make_engine(settings.DATABASE_URL)
    try:
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        return await SeatLockManager(factory).release_expired_locks()
    finally:
        await engine.dispose()


@celery_app.task(bind=True, autoretry_for=(Exception,), retry_backoff=True, retry_backoff_max=300, retry_jitter=True, max_retries=3)
def release_expired_locks_task(self):
    """Periodic sweep triggered by celery beat. Overlapping runs are harmless."""
    released = asyncio.run(run_sweep())
    logger.info("Seat lock sweep released %d expired holds", released)
    return released
