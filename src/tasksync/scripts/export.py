"""
Export script: copy every local row to the remote store.

Usage:
    python -m tasksync.scripts.export [--clear-remote-first] [--no-skip-existing] [--batch-size 10]

Tables go parents first (projects, tasks, tags, task_tags) so foreign keys
resolve on the remote side. Rows keep their local ids. With skip-existing on
(the default) rows whose id already exists remotely are left alone, so the
export can be re-run after a partial failure.
"""
import argparse
import asyncio
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


def _log_progress(progress) -> None:
    if progress.processed == progress.total or progress.processed % 50 == 0:
        logger.info(
            "%s: %d/%d (exported %d, skipped %d, errors %d)",
            progress.table,
            progress.processed,
            progress.total,
            progress.exported,
            progress.skipped,
            progress.errors,
        )


async def _export(
    clear_remote_first: bool, skip_existing: bool, batch_size: Optional[int]
) -> bool:
    from tasksync.config import get_settings
    from tasksync.sync.factory import build_sync_service

    batch_size = batch_size or get_settings().export_batch_size
    service = build_sync_service()
    await service.store.bootstrap()

    if clear_remote_first:
        logger.warning("Clearing remote tables before export")

    try:
        report = await service.export_all(
            clear_remote_first=clear_remote_first,
            skip_existing=skip_existing,
            batch_size=batch_size,
            on_progress=_log_progress,
        )
    finally:
        await service.remote.aclose()

    for table, outcome in report.tables.items():
        logger.info(
            "%s: exported %d, skipped %d, errors %d%s",
            table,
            outcome.exported,
            outcome.skipped,
            outcome.errors,
            f" ({outcome.error})" if outcome.error else "",
        )

    if not report.success:
        logger.error("Export failed: %s", report.error)
        return False

    logger.info(
        "Export complete in %d ms. Exported: %d, Skipped (already exist): %d, Errors: %d",
        report.duration_ms,
        report.total_exported,
        report.total_skipped,
        report.total_errors,
    )
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export local data to the remote store")
    parser.add_argument(
        "--clear-remote-first",
        action="store_true",
        help="Delete every remote row before exporting",
    )
    parser.add_argument(
        "--no-skip-existing",
        dest="skip_existing",
        action="store_false",
        help="Insert rows even when the id already exists remotely",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Rows per batch (default: EXPORT_BATCH_SIZE, 10)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = build_parser().parse_args(argv)
    ok = asyncio.run(_export(args.clear_remote_first, args.skip_existing, args.batch_size))
    if not ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
