from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "seatlock"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./seatlock.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    ALEMBIC_LOCATION: str = "alembic"
    SENTRY_DSN: str = ""
    # Seat hold settings
    SEAT_LOCK_DEFAULT_TTL_SECONDS: int = 900
    SEAT_LOCK_MAX_TTL_SECONDS: int = 3600
    # optimistic retries when a conflicting hold disappears mid-acquire
    SEAT_LOCK_ACQUIRE_RETRIES: int = 3
    # how often celery beat triggers the expiry sweep
    SEAT_LOCK_SWEEP_INTERVAL_SECONDS: int = 60

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
