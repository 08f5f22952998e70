from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (or a .env file).
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Inventory Tracker"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./inventory.db"

    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL: int = 300  # 5 minutes

    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # Allowed CORS origin for the web UI
    FRONTEND_URL: str = "http://localhost:3000"

    # Worker threads used for per-row inserts during CSV import
    IMPORT_MAX_WORKERS: int = 4

    HISTORY_USER_INFO: str = "System/Admin"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
