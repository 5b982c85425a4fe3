"""Trash sweeper background worker - purges tasks trashed past the retention window."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis
import structlog
from croniter import croniter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.tasks.repository import TaskRepository
from shared.clock import Clock, utcnow
from shared.config import Settings
from shared.errors import StorageError
from shared.redis import acquire_lock, create_redis, release_lock
from shared.storage import BlobStore

logger = structlog.get_logger()

LOCK_KEY = "trash_sweeper:lock"


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    return now - timedelta(days=retention_days)


def next_run_at(cron_expr: str, now: datetime, tz_name: str = "UTC") -> datetime:
    """Next fire time of ``cron_expr`` after ``now``, returned in UTC."""
    try:
        import zoneinfo

        tz = zoneinfo.ZoneInfo(tz_name)
        next_dt = croniter(cron_expr, now.astimezone(tz)).get_next(datetime)
        return next_dt.astimezone(timezone.utc)
    except Exception as e:
        logger.error("trash_sweep_cron_error", cron_expr=cron_expr, error=str(e))
        return now + timedelta(days=1)


async def purge_expired_tasks(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: BlobStore,
    now: datetime,
    retention_days: int = 30,
) -> int:
    """Permanently delete every task trashed at or before ``now - retention_days``.

    Each task is purged in its own transaction. An image that cannot be
    removed is logged and the record is purged anyway; an error on one task
    never stops the rest of the batch. Returns the number of purged tasks.
    """
    cutoff = retention_cutoff(now, retention_days)

    async with session_factory() as session:
        expired = await TaskRepository(session).list_expired_trash(cutoff)

    if not expired:
        return 0

    logger.info("expired_trash_found", count=len(expired), cutoff=cutoff.isoformat())

    purged = 0
    for task in expired:
        task_id = task.id
        try:
            async with session_factory() as session:
                # Re-fetch under lock; a restore since the scan drops the row out
                task = await TaskRepository(session).get_expired(task_id, cutoff, for_update=True)
                if task is None:
                    continue

                if task.image_path:
                    try:
                        blob_store.delete(task.image_path)
                    except StorageError as e:
                        logger.warning(
                            "trash_image_delete_failed",
                            task_id=str(task_id),
                            path=task.image_path,
                            error=str(e),
                        )

                await session.delete(task)
                await session.commit()
            purged += 1
            logger.info("task_purged", task_id=str(task_id), reason="retention")
        except Exception as e:
            logger.error("trash_purge_error", task_id=str(task_id), error=str(e))

    return purged


async def run_sweep_once(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: BlobStore,
    redis: aioredis.Redis,
    settings: Settings,
    clock: Clock = utcnow,
) -> int | None:
    """Run one sweep under a Redis lock.

    Returns the purged count, or None when another sweeper holds the lock.
    """
    token = await acquire_lock(redis, LOCK_KEY, settings.trash_sweep_lock_seconds)
    if token is None:
        logger.info("trash_sweep_skipped", reason="locked")
        return None

    try:
        purged = await purge_expired_tasks(
            session_factory, blob_store, clock(), settings.trash_retention_days
        )
        logger.info("trash_sweep_completed", purged=purged)
        return purged
    finally:
        await release_lock(redis, LOCK_KEY, token)


async def sweeper_loop(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: BlobStore,
    settings: Settings,
    redis_url: str,
) -> None:
    """Background loop that sleeps until the next cron slot, then sweeps."""
    redis = create_redis(redis_url)
    logger.info("trash_sweeper_started", cron=settings.trash_sweep_cron)

    try:
        while True:
            now = utcnow()
            run_at = next_run_at(settings.trash_sweep_cron, now, settings.trash_sweep_timezone)
            logger.info("trash_sweep_scheduled", next_run_at=run_at.isoformat())
            await asyncio.sleep(max(0.0, (run_at - now).total_seconds()))

            try:
                await run_sweep_once(session_factory, blob_store, redis, settings)
            except Exception as e:
                logger.error("trash_sweep_error", error=str(e))
    finally:
        await redis.aclose()
