"""Wiring: build the sync engine from settings. Call once per process."""
from typing import Optional

from tasksync.config import Settings, get_settings
from tasksync.store.local import LocalStore
from tasksync.store.remote import RemoteStoreClient
from tasksync.sync.service import SyncService


def build_sync_service(
    settings: Optional[Settings] = None,
    engine=None,
    remote=None,
) -> SyncService:
    """
    Assemble LocalStore, RemoteStoreClient and SyncService.

    Args:
        settings: Defaults to get_settings().
        engine: SQLAlchemy engine; defaults to the module-level get_engine().
        remote: Remote client override (tests pass a fake).

    Returns:
        A ready SyncService. The caller owns it and passes it to every consumer.
    """
    settings = settings or get_settings()
    if engine is None:
        from tasksync.db.engine import get_engine
        engine = get_engine()

    store = LocalStore(
        engine,
        retry_attempts=settings.local_retry_attempts,
        retry_delay_seconds=settings.local_retry_delay_seconds,
    )
    if remote is None:
        remote = RemoteStoreClient(
            settings.remote_url,
            settings.remote_api_key,
            timeout=settings.remote_timeout_seconds,
        )
    return SyncService(
        store,
        remote,
        batch_size=settings.sync_batch_size,
        min_sync_interval_seconds=settings.min_sync_interval_seconds,
        history_limit=settings.history_limit,
    )
