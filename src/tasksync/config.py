from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tasksync.db"

    # Remote store (PostgREST / Supabase REST endpoint)
    remote_url: str = ""
    remote_api_key: str = ""
    remote_timeout_seconds: float = 10.0

    sync_batch_size: int = 50
    export_batch_size: int = 10
    auto_sync_interval_seconds: int = 300
    min_sync_interval_seconds: int = 0  # 0 disables the freshness check
    history_limit: int = 10

    # Local store retry: linear backoff, delay * attempt
    local_retry_attempts: int = 3
    local_retry_delay_seconds: float = 0.1

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
