"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Apex Protocol Engine"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://apex@localhost:5432/apex"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "apex-engine"
    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    daily_schedule_hour: int = 0
    daily_schedule_minute: int = 5
    streak_sweep_hour: int = 0
    streak_sweep_minute: int = 30
    freeze_reset_day: int = 0
    freeze_reset_hour: int = 0
    freeze_reset_minute: int = 0
    jobs_run_on_startup: bool = False
    schedule_batch_size: int = 400
    progress_target: int = 30
    notifications_enabled: bool = False
    notifications_provider: str = "noop"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
