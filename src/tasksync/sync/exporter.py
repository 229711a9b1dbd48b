"""
BulkExporter: one-shot copy of every local row to the remote store.

Used for initial seeding and recovery, not for incremental sync: it neither
reads nor writes sync_metadata. Rows keep their local ids so both stores
share one key space afterwards.

Order matters for foreign keys: clearing walks the tracked tables in reverse
(dependents first), exporting walks them forward (parents first).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence

from tasksync.errors import ConfigurationError, ConnectivityError, SyncError
from tasksync.models.records import TRACKED_TABLES
from tasksync.utils.timing import elapsed_ms, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ExportProgress:
    table: str
    processed: int
    total: int
    exported: int
    skipped: int
    errors: int


@dataclass
class TableExportResult:
    exported: int = 0
    skipped: int = 0
    errors: int = 0
    error: Optional[str] = None


@dataclass
class ExportReport:
    success: bool
    total_exported: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    tables: Dict[str, TableExportResult] = field(default_factory=dict)
    duration_ms: int = 0
    error: Optional[str] = None


ProgressCallback = Callable[[ExportProgress], None]


class BulkExporter:
    def __init__(
        self,
        store,
        remote,
        tables: Sequence[str] = TRACKED_TABLES,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: LocalStore instance.
            remote: RemoteStoreClient instance.
            tables: Tracked tables, parents before dependents.
            clock: Returns "now"; used for the report duration.
        """
        self.store = store
        self.remote = remote
        self.tables = tuple(tables)
        self._clock = clock

    async def export_all(
        self,
        *,
        clear_remote_first: bool = False,
        skip_existing: bool = True,
        batch_size: int = 10,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportReport:
        """
        Copy every local row of every tracked table to the remote store.

        Args:
            clear_remote_first: Delete all remote rows before exporting.
            skip_existing: Skip rows whose id already exists remotely.
            batch_size: Local rows are walked in slices of this size.
            on_progress: Called after every record with running totals.

        Returns:
            ExportReport. success=False only when the export could not start
            (no connection); per-record and per-table errors are counted.
        """
        started = self._clock()
        report = ExportReport(success=True)

        try:
            await self.remote.ping()
        except Exception as exc:
            if not isinstance(exc, SyncError):
                exc = ConnectivityError(f"No connection to remote store: {exc}")
            logger.warning("Export aborted: %s", exc)
            report.success = False
            report.error = str(exc)
            report.duration_ms = elapsed_ms(started, self._clock())
            return report

        if clear_remote_first:
            await self._clear_remote()

        for table in self.tables:
            try:
                result = await self._export_table(
                    table,
                    skip_existing=skip_existing,
                    batch_size=max(1, batch_size),
                    on_progress=on_progress,
                )
            except (ConnectivityError, ConfigurationError) as exc:
                logger.error("Export of %s interrupted: %s", table, exc)
                result = TableExportResult(errors=1, error=str(exc))
                report.tables[table] = result
                report.total_errors += 1
                report.success = False
                report.error = str(exc)
                break
            except Exception as exc:
                logger.error("Error exporting table %s: %s", table, exc)
                result = TableExportResult(errors=1, error=str(exc))

            report.tables[table] = result
            report.total_exported += result.exported
            report.total_skipped += result.skipped
            report.total_errors += result.errors
            logger.info(
                "Exported %s: %d exported, %d skipped, %d errors",
                table, result.exported, result.skipped, result.errors,
            )

        report.duration_ms = elapsed_ms(started, self._clock())
        return report

    async def _clear_remote(self) -> None:
        for table in reversed(self.tables):
            try:
                await self.remote.delete_all(table)
                logger.info("Cleared remote table %s", table)
            except Exception as exc:
                logger.error("Error clearing remote table %s: %s", table, exc)

    async def _export_table(
        self,
        table: str,
        *,
        skip_existing: bool,
        batch_size: int,
        on_progress: Optional[ProgressCallback],
    ) -> TableExportResult:
        rows = await self.store.query_all(table)
        result = TableExportResult()
        total = len(rows)

        for start in range(0, total, batch_size):
            for row in rows[start:start + batch_size]:
                try:
                    if skip_existing and await self.remote.get(table, row["id"]) is not None:
                        result.skipped += 1
                    else:
                        await self.remote.insert(table, dict(row))
                        result.exported += 1
                except (ConnectivityError, ConfigurationError):
                    raise
                except Exception as exc:
                    result.errors += 1
                    logger.warning("Error exporting %s %s: %s", table, row.get("id"), exc)

                if on_progress is not None:
                    progress = ExportProgress(
                        table=table,
                        processed=result.exported + result.skipped + result.errors,
                        total=total,
                        exported=result.exported,
                        skipped=result.skipped,
                        errors=result.errors,
                    )
                    try:
                        on_progress(progress)
                    except Exception:
                        logger.exception("Export progress callback failed")

        return result
