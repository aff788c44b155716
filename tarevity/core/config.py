from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from fastapi import Depends
from typing_extensions import Annotated


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./tarevity.db"
    redis_dsn: str = "redis://localhost:6379/0"
    l1_maxsize: int = 2048
    l1_ttl_seconds: int = 60  # default L1 TTL
    l2_ttl_seconds: int = 300  # default Redis TTL
    cache_namespace: str = "tarevity:"
    redis_pool_size: int = 5

    # notifications
    cron_secret: str | None = None
    timezone: str = "UTC"
    upcoming_window_days: int = 4
    refresh_throttle_seconds: int = 60
    midnight_refresh_enabled: bool = False

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


SettingsDep = Annotated[Settings, Depends(get_settings)]
