from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    api_base_url: str = "http://127.0.0.1:8000"
    queue_database_url: str = "sqlite:///timeclock_queue.db"
    request_timeout_seconds: float = 15.0
    geolocation_timeout_seconds: float = 10.0
    punch_cooldown_seconds: int = 300

    model_config = SettingsConfigDict(
        env_prefix="TIMECLOCK_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_client_settings() -> ClientSettings:
    return ClientSettings()
