"""
SyncService: drives one sync pass between the local and remote stores.

Flow for a pass:
  1. Take the in-process lock (reject if a pass is already running)
  2. Connectivity check: remote ping; failure ends the pass ("no connection")
  3. Upload: up to batch_size pending/error metadata rows, oldest first
  4. Download: every remote row of every tracked table, parents first
  5. Append one SyncLog row, broadcast the terminal status, release the lock

sync() never raises: every failure path resolves to a SyncResult with
success=False. Per-record failures inside a phase are counted and leave the
record in `error` for the next pass; they do not fail the pass.

Identity: a record is linked to its remote row by the remote_id stored in
its metadata. Unlinked rows fall back to the same integer id on both sides,
unless that local id is already linked to another remote row; then the
remote row is stored under a fresh local id.

Conflicts are last-write-wins by arrival, with no timestamp comparison.
Rows that still carry unpushed local changes (pending/error) are not
overwritten by the download phase.
"""
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from tasksync.errors import (
    ConfigurationError,
    ConnectivityError,
    PerRecordError,
    RemoteNotFoundError,
    SyncError,
)
from tasksync.models.records import REFERENCES, TRACKED_TABLES
from tasksync.models.sync import (
    LOG_ERROR,
    LOG_SUCCESS,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SYNCED,
    SyncLog,
    SyncMetadata,
)
from tasksync.sync.events import SyncEventBus, SyncState
from tasksync.sync.exporter import BulkExporter, ExportReport, ProgressCallback
from tasksync.sync.tracker import ChangeTracker
from tasksync.utils.timing import elapsed_ms, utcnow

logger = logging.getLogger(__name__)

SYNC_IN_PROGRESS = "Sync already in progress"
SYNC_FRESH = "Sync skipped: last sync is still fresh"

# Errors that end the whole pass instead of a single record
PASS_FATAL = (ConnectivityError, ConfigurationError)


@dataclass
class SyncResult:
    success: bool
    uploaded_count: int = 0
    downloaded_count: int = 0
    error_count: int = 0
    duration_ms: int = 0
    message: str = ""
    error: Optional[str] = None
    last_sync_time: Optional[datetime] = None
    skipped: bool = False


@dataclass
class SyncStatus:
    online: bool
    in_progress: bool
    last_sync_time: Optional[datetime]
    configured: bool
    state: str


@dataclass
class _PassCounts:
    uploaded: int = 0
    upload_errors: int = 0
    downloaded: int = 0
    download_errors: int = 0

    @property
    def errors(self) -> int:
        return self.upload_errors + self.download_errors


class SyncService:
    """Orchestrates local ↔ remote reconciliation. One instance per process."""

    def __init__(
        self,
        store,
        remote,
        *,
        tracker: Optional[ChangeTracker] = None,
        bus: Optional[SyncEventBus] = None,
        exporter: Optional[BulkExporter] = None,
        batch_size: int = 50,
        min_sync_interval_seconds: int = 0,
        history_limit: int = 10,
        tables: Sequence[str] = TRACKED_TABLES,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: LocalStore instance.
            remote: RemoteStoreClient instance (or a fake in tests).
            tracker: ChangeTracker; built over `store` when omitted.
            bus: Event bus for phase transitions; a private one when omitted.
            exporter: BulkExporter; built over the two stores when omitted.
            batch_size: Max pending rows uploaded per pass.
            min_sync_interval_seconds: Non-forced passes within this many
                seconds of the last successful pass are skipped (0 = never).
            history_limit: Default number of log rows returned by get_history.
            tables: Tracked tables, parents before dependents.
            clock: Returns "now"; used for timestamps and durations.
        """
        self.store = store
        self.remote = remote
        self._clock = clock
        self.tracker = tracker or ChangeTracker(store, clock=clock)
        self.bus = bus or SyncEventBus()
        self.exporter = exporter or BulkExporter(store, remote, tables=tables, clock=clock)
        self.batch_size = batch_size
        self.min_sync_interval_seconds = min_sync_interval_seconds
        self.history_limit = history_limit
        self.tables = tuple(tables)

        self.state = SyncState.IDLE
        self.online = True
        self.last_sync_time: Optional[datetime] = None
        self._in_progress = False

    # ── Public surface ────────────────────────────────────────────────────────

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def subscribe(self, listener) -> Callable[[], None]:
        return self.bus.subscribe(listener)

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            online=self.online,
            in_progress=self._in_progress,
            last_sync_time=self.last_sync_time,
            configured=bool(getattr(self.remote, "configured", True)),
            state=self.state.value,
        )

    async def check_connection(self) -> bool:
        """Ping the remote store. Updates `online`; never raises."""
        try:
            await self._ensure_connection()
            return True
        except SyncError as exc:
            logger.warning("Connection check failed: %s", exc)
            return False

    async def get_history(self, limit: Optional[int] = None) -> List[SyncLog]:
        """Most recent passes first; [] when the log cannot be read."""
        try:
            return await self.tracker.history(limit or self.history_limit)
        except Exception as exc:
            logger.warning("Could not read sync history: %s", exc)
            return []

    async def reset(self) -> None:
        """Clear all sync metadata and history."""
        await self.tracker.reset()
        self.last_sync_time = None

    async def export_all(
        self,
        *,
        clear_remote_first: bool = False,
        skip_existing: bool = True,
        batch_size: int = 10,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExportReport:
        """Bulk export under the sync lock (an export never overlaps a pass)."""
        if self._in_progress:
            return ExportReport(success=False, error=SYNC_IN_PROGRESS)
        self._in_progress = True
        try:
            return await self.exporter.export_all(
                clear_remote_first=clear_remote_first,
                skip_existing=skip_existing,
                batch_size=batch_size,
                on_progress=on_progress,
            )
        finally:
            self._in_progress = False

    async def sync(self, force: bool = False) -> SyncResult:
        """
        Run one sync pass.

        Args:
            force: Bypass the freshness check. Never pre-empts a running pass.

        Returns:
            SyncResult; success=False with a message on any failure.
        """
        # Check-and-set happens before the first await, so two callers on the
        # same loop can never both get past it.
        if self._in_progress:
            logger.info("Sync requested while a pass is running; rejected")
            return SyncResult(success=False, message=SYNC_IN_PROGRESS, error=SYNC_IN_PROGRESS)
        if not force and self._is_fresh():
            logger.debug("Sync skipped; last pass at %s", self.last_sync_time)
            return SyncResult(
                success=True,
                message=SYNC_FRESH,
                last_sync_time=self.last_sync_time,
                skipped=True,
            )

        self._in_progress = True
        self.state = SyncState.SYNCING
        started = self._clock()
        counts = _PassCounts()
        try:
            self.bus.publish(SyncState.SYNCING.value, {"message": "Starting sync..."})
            await self._ensure_connection()

            self.bus.publish(SyncState.SYNCING.value, {"message": "Uploading changes..."})
            uploaded_keys: Set[Tuple[str, int]] = set()
            await self._upload(counts, uploaded_keys)

            self.bus.publish(SyncState.SYNCING.value, {"message": "Downloading changes..."})
            await self._download(counts, uploaded_keys)

            finished = self._clock()
            self.last_sync_time = finished
            message = (
                f"Sync completed. Uploaded: {counts.uploaded}, "
                f"Downloaded: {counts.downloaded}"
            )
            if counts.errors:
                message += f", Errors: {counts.errors}"
            logger.info("%s (%d ms)", message, elapsed_ms(started, finished))

            await self.tracker.log_pass(
                status=LOG_SUCCESS,
                message=message,
                records_synced=counts.uploaded + counts.downloaded,
                started_at=started,
                completed_at=finished,
            )
            result = SyncResult(
                success=True,
                uploaded_count=counts.uploaded,
                downloaded_count=counts.downloaded,
                error_count=counts.errors,
                duration_ms=elapsed_ms(started, finished),
                message=message,
                last_sync_time=finished,
            )
            self.state = SyncState.SUCCESS
            self.bus.publish(SyncState.SUCCESS.value, {
                "message": message,
                "uploaded_count": counts.uploaded,
                "downloaded_count": counts.downloaded,
                "error_count": counts.errors,
                "last_sync_time": finished,
            })

        except Exception as exc:
            finished = self._clock()
            if isinstance(exc, SyncError):
                logger.warning("Sync failed: %s", exc)
            else:
                logger.exception("Sync failed")
            message = f"Sync failed: {exc}"

            await self.tracker.log_pass(
                status=LOG_ERROR,
                message=message,
                records_synced=counts.uploaded + counts.downloaded,
                error_details=traceback.format_exc(),
                started_at=started,
                completed_at=finished,
            )
            result = SyncResult(
                success=False,
                uploaded_count=counts.uploaded,
                downloaded_count=counts.downloaded,
                error_count=counts.errors,
                duration_ms=elapsed_ms(started, finished),
                message=message,
                error=str(exc),
                last_sync_time=self.last_sync_time,
            )
            self.state = SyncState.ERROR
            self.bus.publish(SyncState.ERROR.value, {"message": message, "error": str(exc)})

        finally:
            self._in_progress = False
            self.state = SyncState.IDLE

        return result

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _is_fresh(self) -> bool:
        if self.min_sync_interval_seconds <= 0 or self.last_sync_time is None:
            return False
        age = (self._clock() - self.last_sync_time).total_seconds()
        return age < self.min_sync_interval_seconds

    async def _ensure_connection(self) -> None:
        """Raise ConfigurationError / ConnectivityError unless the remote answers."""
        try:
            await self.remote.ping()
        except SyncError:
            self.online = False
            raise
        except Exception as exc:
            self.online = False
            raise ConnectivityError(f"No connection to remote store: {exc}") from exc
        self.online = True

    async def _upload(self, counts: _PassCounts, uploaded_keys: Set[Tuple[str, int]]) -> None:
        changes = await self.tracker.list_pending(self.batch_size)
        if not changes:
            logger.debug("No pending changes to upload")
            return

        logger.info("Uploading %d pending change(s)", len(changes))
        for change in changes:
            try:
                await self._upload_one(change)
            except PASS_FATAL:
                raise
            except Exception as exc:
                counts.upload_errors += 1
                logger.warning(
                    "Error uploading %s:%s: %s", change.table_name, change.record_id, exc
                )
                try:
                    await self.tracker.update_status(
                        change.table_name, change.record_id, STATUS_ERROR
                    )
                except SyncError as bk_exc:
                    logger.warning("Could not record upload error: %s", bk_exc)
                continue
            counts.uploaded += 1
            uploaded_keys.add((change.table_name, change.record_id))

    async def _upload_one(self, change: SyncMetadata) -> None:
        """Push one pending record: tombstone delete, update, or insert."""
        table, record_id = change.table_name, change.record_id
        local = await self.store.query_one(table, record_id)

        if local is None:
            # Deleted locally after being marked pending
            if change.remote_id is not None:
                await self.remote.delete(table, change.remote_id)
                logger.info("Deleted %s %s remotely (remote id %s)", table, record_id, change.remote_id)
            await self.tracker.update_status(table, record_id, STATUS_SYNCED)
            return

        payload = {k: v for k, v in local.items() if k != "id"}
        payload = await self._to_remote_refs(table, payload)

        if change.remote_id is not None:
            try:
                row = await self.remote.update(table, change.remote_id, payload)
            except RemoteNotFoundError:
                logger.info(
                    "%s %s vanished remotely (remote id %s); re-creating",
                    table, record_id, change.remote_id,
                )
                row = await self.remote.insert(table, payload)
        else:
            row = await self.remote.insert(table, payload)

        remote_id = row.get("id", change.remote_id) if row else change.remote_id
        await self.tracker.update_status(table, record_id, STATUS_SYNCED, remote_id=remote_id)

    async def _download(self, counts: _PassCounts, uploaded_keys: Set[Tuple[str, int]]) -> None:
        for table in self.tables:
            try:
                rows = await self.remote.select(table)
                columns = await self.tracker.columns_of(table) if rows else []
            except PASS_FATAL:
                raise
            except Exception as exc:
                counts.download_errors += 1
                logger.warning("Error downloading %s: %s", table, exc)
                continue

            if not rows:
                continue
            logger.debug("Processing %d remote %s row(s)", len(rows), table)

            for row in rows:
                try:
                    if await self._download_one(table, row, columns, uploaded_keys):
                        counts.downloaded += 1
                except PASS_FATAL:
                    raise
                except Exception as exc:
                    counts.download_errors += 1
                    logger.warning(
                        "Error processing %s record %s: %s", table, row.get("id"), exc
                    )

    async def _download_one(
        self,
        table: str,
        row: Dict[str, Any],
        columns: List[str],
        uploaded_keys: Set[Tuple[str, int]],
    ) -> bool:
        """Merge one remote row into the local store. Returns True if local data changed."""
        remote_id = row.get("id")
        if remote_id is None:
            raise PerRecordError(f"{table} row without id: {row!r}")

        fields = {k: v for k, v in row.items() if k in columns}

        local_id = await self.tracker.local_id_for(table, remote_id)
        if local_id is None:
            local_id = remote_id
            meta = await self.tracker.get(table, local_id)
            if meta is not None and meta.remote_id not in (None, remote_id):
                # Same id created on another device: the local id is taken
                return await self._insert_unlinked(table, fields, remote_id)
        else:
            meta = await self.tracker.get(table, local_id)

        if (table, local_id) in uploaded_keys:
            return False
        if meta is not None and meta.sync_status in (STATUS_PENDING, STATUS_ERROR):
            logger.debug("Keeping unpushed local changes for %s %s", table, local_id)
            return False

        fields = await self._to_local_refs(table, fields)

        existing = await self.store.query_one(table, local_id)
        if existing is not None:
            changes = {
                k: v for k, v in fields.items()
                if k != "id" and existing.get(k) != v
            }
            if changes:
                await self.store.update(table, local_id, changes)
            changed = bool(changes)
        else:
            fields["id"] = local_id
            await self.store.insert(table, fields)
            changed = True

        await self.tracker.update_status(table, local_id, STATUS_SYNCED, remote_id=remote_id)
        return changed

    async def _insert_unlinked(
        self, table: str, fields: Dict[str, Any], remote_id: int
    ) -> bool:
        """Insert a remote row under a fresh local id and link it to its remote id."""
        fields = {k: v for k, v in fields.items() if k != "id"}
        fields = await self._to_local_refs(table, fields)
        local_id = await self.store.insert(table, fields)
        logger.info(
            "%s remote id %s collides with a local id; stored as local %s",
            table, remote_id, local_id,
        )
        await self.tracker.update_status(table, local_id, STATUS_SYNCED, remote_id=remote_id)
        return True

    async def _to_remote_refs(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Rewrite foreign keys from local ids to linked remote ids."""
        for column, ref_table in REFERENCES.get(table, {}).items():
            value = fields.get(column)
            if value is None:
                continue
            remote_id = await self.tracker.remote_id_for(ref_table, value)
            if remote_id is not None:
                fields[column] = remote_id
        return fields

    async def _to_local_refs(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Rewrite foreign keys from remote ids to linked local ids."""
        for column, ref_table in REFERENCES.get(table, {}).items():
            value = fields.get(column)
            if value is None:
                continue
            local_id = await self.tracker.local_id_for(ref_table, value)
            if local_id is not None:
                fields[column] = local_id
        return fields
