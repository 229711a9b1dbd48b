"""
Main entrypoint: starts the background sync scheduler in one process.

FastAPI runs separately under uvicorn.

Usage:
    python -m tasksync                   # starts the auto-sync scheduler
    python -m tasksync sync [--force]    # one sync pass, then exit
    python -m tasksync export [...]      # bulk export (see scripts/export.py)
    uvicorn tasksync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_once(force: bool) -> int:
    from tasksync.sync.factory import build_sync_service

    service = build_sync_service()
    await service.store.bootstrap()
    try:
        result = await service.sync(force=force)
    finally:
        await service.remote.aclose()

    if result.success:
        logger.info(result.message)
        return 0
    logger.error(result.error or result.message)
    return 1


async def _run_scheduler() -> None:
    from tasksync.config import get_settings
    from tasksync.scheduler.jobs import build_scheduler, on_resume
    from tasksync.sync.factory import build_sync_service

    settings = get_settings()
    service = build_sync_service()
    await service.store.bootstrap()

    if not service.remote.configured:
        logger.warning(
            "REMOTE_URL / REMOTE_API_KEY not set; passes will fail until configured."
        )

    scheduler = build_scheduler(service)
    scheduler.start()
    logger.info(
        "Scheduler started (auto sync every %d s)",
        settings.auto_sync_interval_seconds,
    )

    # Startup counts as a resume: catch up immediately rather than waiting a tick
    await on_resume(service)

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        await service.remote.aclose()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m tasksync sync|export` or just `python -m tasksync`
    command = sys.argv[1] if len(sys.argv) > 1 else None
    if command == "sync":
        sys.exit(asyncio.run(_run_once(force="--force" in sys.argv[2:])))
    elif command == "export":
        from tasksync.scripts.export import main
        main(sys.argv[2:])
    else:
        asyncio.run(_run_scheduler())
