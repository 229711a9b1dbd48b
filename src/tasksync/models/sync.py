"""Sync bookkeeping models: per-record metadata and the pass audit log."""
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from tasksync.utils.timing import utcnow

STATUS_PENDING = "pending"
STATUS_SYNCED = "synced"
STATUS_ERROR = "error"

LOG_SUCCESS = "success"
LOG_ERROR = "error"


class SyncMetadata(SQLModel, table=True):
    """
    One row per tracked (table_name, record_id).

    remote_id is None until the record has been created remotely; after that
    a re-marked `pending` row means "needs remote update", not "create".
    """

    __tablename__ = "sync_metadata"
    __table_args__ = (UniqueConstraint("table_name", "record_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    table_name: str = Field(index=True)
    record_id: int
    sync_status: str = Field(default=STATUS_PENDING, index=True)  # pending | synced | error
    remote_id: Optional[int] = None
    last_modified: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SyncLog(SQLModel, table=True):
    """Records each sync pass for history display. Never updated."""

    __tablename__ = "sync_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    sync_type: str = "full_sync"
    status: str  # "success", "error"
    message: Optional[str] = None
    records_synced: int = 0
    error_details: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
