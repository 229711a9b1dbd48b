"""Tests for build_sync_service wiring."""
from sqlmodel import create_engine

from tasksync.config import Settings
from tasksync.store.remote import RemoteStoreClient
from tasksync.sync.factory import build_sync_service


def _settings(**overrides) -> Settings:
    values = {
        "remote_url": "https://example.supabase.co",
        "remote_api_key": "anon-key",
        "sync_batch_size": 7,
        "min_sync_interval_seconds": 30,
        "local_retry_attempts": 5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestBuildSyncService:
    def test_wires_settings_into_service(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'factory.db'}")
        service = build_sync_service(settings=_settings(), engine=engine)

        assert isinstance(service.remote, RemoteStoreClient)
        assert service.remote.configured
        assert service.batch_size == 7
        assert service.min_sync_interval_seconds == 30
        assert service.store.engine is engine
        assert service.tracker.store is service.store
        assert service.exporter.remote is service.remote

    def test_unconfigured_remote_reported_in_status(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'factory.db'}")
        service = build_sync_service(settings=_settings(remote_url=""), engine=engine)
        assert service.get_status().configured is False

    def test_remote_override(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'factory.db'}")
        fake = object()
        service = build_sync_service(settings=_settings(), engine=engine, remote=fake)
        assert service.remote is fake
