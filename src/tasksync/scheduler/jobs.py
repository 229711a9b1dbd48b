"""
APScheduler jobs for background sync.

The interval job drains the pending backlog a batch at a time; one pass never
loops until the backlog is empty. If a pass is already running when the timer
fires (manual trigger, resume, or a slow previous tick) the tick is skipped,
not queued.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tasksync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(service) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: SyncService shared with the rest of the process.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _auto_sync,
        trigger="interval",
        seconds=settings.auto_sync_interval_seconds,
        id="auto_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"service": service},
    )

    return scheduler


async def _auto_sync(service) -> None:
    """
    Timer job: run one sync pass unless one is already in flight.

    Never raises: the scheduler must stay alive.
    """
    if service.in_progress:
        logger.info("Auto sync deferred: a pass is already running")
        return

    try:
        result = await service.sync()
        if result.success:
            logger.info(
                "Auto sync done: uploaded %d, downloaded %d",
                result.uploaded_count,
                result.downloaded_count,
            )
        else:
            logger.warning("Auto sync failed: %s", result.error or result.message)
    except Exception as exc:
        logger.error("Auto sync crashed: %s", exc)


async def on_resume(service) -> None:
    """Sync when the app returns to the foreground; same in-flight rule as the timer."""
    logger.info("App resumed; triggering sync")
    await _auto_sync(service)
