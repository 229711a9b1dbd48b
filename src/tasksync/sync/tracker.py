"""
ChangeTracker: per-record sync bookkeeping on top of the local store.

Every mutation of a tracked table upserts a `pending` SyncMetadata row. The
orchestrator reads pending rows, then moves them to `synced` (storing the
remote id) or `error`. Metadata failures never block the caller's mutation:
mark_pending logs and swallows them, which leaves the record untracked until
the next successful mark.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import delete
from sqlmodel import Session, select

from tasksync.models.sync import (
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SYNCED,
    SyncLog,
    SyncMetadata,
)
from tasksync.errors import BookkeepingError
from tasksync.utils.timing import utcnow

logger = logging.getLogger(__name__)

VALID_STATUSES = {STATUS_PENDING, STATUS_SYNCED, STATUS_ERROR}


class ChangeTracker:
    """Reads and writes sync_metadata and sync_log."""

    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        """
        Args:
            store: LocalStore instance.
            clock: Returns "now" for timestamps (tests inject a fixed clock).
        """
        self.store = store
        self._clock = clock

    # ── Metadata writes ───────────────────────────────────────────────────────

    async def mark_pending(
        self, table: str, record_id: int, remote_id: Optional[int] = None
    ) -> bool:
        """
        Upsert a pending metadata row for (table, record_id).

        Keeps the prior remote_id unless a new one is passed, so a record that
        already exists remotely is updated, not re-created.

        Returns:
            True if the row was written, False if bookkeeping failed.
        """
        now = self._clock()

        def _mark(s: Session) -> None:
            row = _find(s, table, record_id)
            if row is None:
                row = SyncMetadata(
                    table_name=table,
                    record_id=record_id,
                    created_at=now,
                )
            row.sync_status = STATUS_PENDING
            if remote_id is not None:
                row.remote_id = remote_id
            row.last_modified = now
            row.updated_at = now
            s.add(row)
            s.commit()

        try:
            await self.store.session_call(_mark)
            return True
        except Exception as exc:
            logger.warning(
                "Could not mark %s %s pending; continuing without sync tracking: %s",
                table, record_id, exc,
            )
            return False

    async def update_status(
        self,
        table: str,
        record_id: int,
        status: str,
        remote_id: Optional[int] = None,
    ) -> None:
        """
        Transition a metadata row. On `synced`, a given remote_id is stored as
        the durable cross-store link. Creates the row when it is missing.

        Raises:
            BookkeepingError: if the metadata table cannot be written.
        """
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid sync status: {status}")
        now = self._clock()

        def _update(s: Session) -> None:
            row = _find(s, table, record_id)
            if row is None:
                row = SyncMetadata(
                    table_name=table,
                    record_id=record_id,
                    created_at=now,
                    last_modified=now,
                )
            row.sync_status = status
            if remote_id is not None and status == STATUS_SYNCED:
                row.remote_id = remote_id
            row.updated_at = now
            s.add(row)
            s.commit()

        try:
            await self.store.session_call(_update)
        except Exception as exc:
            raise BookkeepingError(
                f"Could not set {table} {record_id} to {status}: {exc}"
            ) from exc

    # ── Metadata reads ────────────────────────────────────────────────────────

    async def list_pending(self, limit: int) -> List[SyncMetadata]:
        """Pending and errored rows, oldest change first, at most `limit`.

        Returns [] when the metadata table is unavailable.
        """

        def _list(s: Session) -> List[SyncMetadata]:
            return list(
                s.exec(
                    select(SyncMetadata)
                    .where(SyncMetadata.sync_status.in_([STATUS_PENDING, STATUS_ERROR]))
                    .order_by(SyncMetadata.last_modified, SyncMetadata.id)
                    .limit(limit)
                ).all()
            )

        try:
            return await self.store.session_call(_list)
        except Exception as exc:
            logger.warning("Could not read pending changes: %s", exc)
            return []

    async def get(self, table: str, record_id: int) -> Optional[SyncMetadata]:
        return await self.store.session_call(lambda s: _find(s, table, record_id))

    async def local_id_for(self, table: str, remote_id: int) -> Optional[int]:
        """Local record id linked to a remote id, or None if unlinked."""

        def _lookup(s: Session) -> Optional[int]:
            row = s.exec(
                select(SyncMetadata).where(
                    SyncMetadata.table_name == table,
                    SyncMetadata.remote_id == remote_id,
                )
            ).first()
            return row.record_id if row else None

        return await self.store.session_call(_lookup)

    async def remote_id_for(self, table: str, record_id: int) -> Optional[int]:
        row = await self.get(table, record_id)
        return row.remote_id if row else None

    async def columns_of(self, table: str) -> List[str]:
        """Local column names; remote fields outside this set are dropped."""
        return await self.store.columns(table)

    # ── Sync log ──────────────────────────────────────────────────────────────

    async def log_pass(
        self,
        *,
        status: str,
        message: str,
        records_synced: int = 0,
        error_details: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        sync_type: str = "full_sync",
    ) -> Optional[SyncLog]:
        """Append one history row. Returns None if the log table is unavailable."""
        entry = SyncLog(
            sync_type=sync_type,
            status=status,
            message=message,
            records_synced=records_synced,
            error_details=error_details,
            started_at=started_at or self._clock(),
            completed_at=completed_at or self._clock(),
        )

        def _add(s: Session) -> SyncLog:
            s.add(entry)
            s.commit()
            s.refresh(entry)
            return entry

        try:
            return await self.store.session_call(_add)
        except Exception as exc:
            logger.warning("Could not write sync log: %s", exc)
            return None

    async def history(self, limit: int = 10) -> List[SyncLog]:
        """Most recent passes first."""

        def _history(s: Session) -> List[SyncLog]:
            return list(
                s.exec(
                    select(SyncLog)
                    .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
                    .limit(limit)
                ).all()
            )

        return await self.store.session_call(_history)

    async def reset(self) -> None:
        """Forget all sync state: every metadata row and the whole log."""

        def _reset(s: Session) -> None:
            s.exec(delete(SyncMetadata))
            s.exec(delete(SyncLog))
            s.commit()

        await self.store.session_call(_reset)
        logger.info("Sync metadata and history cleared")


def _find(s: Session, table: str, record_id: int) -> Optional[SyncMetadata]:
    return s.exec(
        select(SyncMetadata).where(
            SyncMetadata.table_name == table,
            SyncMetadata.record_id == record_id,
        )
    ).first()
