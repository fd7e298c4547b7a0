"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "TMS_Factory_Operations"
    ENV: str = "development"
    DEBUG: bool = True
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database (document store backing tables)
    DATABASE_URL: str = "sqlite:///./tms.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    # Only meant for local development; production schemas come from alembic.
    AUTO_CREATE_SCHEMA: bool = False

    # Celery (push fan-out)
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # JWT issued by the identity provider
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Plant calendar: date stamps in S-/P- identifiers use this zone
    PLANT_TIMEZONE: str = "Asia/Seoul"

    # Live collections
    COLLECTION_FEED_LIMIT: int = 500
    NOTIFICATION_FEED_LIMIT: int = 100
    NOTIFICATION_WINDOW_HOURS: int = 24
    NOTICE_LOG_SIZE: int = 50
    # Writes from other processes reach the live collections on this cadence; 0 disables.
    CHANGE_POLL_SECONDS: float = 2.0

    # Store transactions (optimistic, retried on conflict)
    STORE_TRANSACTION_MAX_ATTEMPTS: int = 5
    STORE_TRANSACTION_BACKOFF_SECONDS: float = 0.05

    # Managers correct statuses by hand, so free transitions are the default.
    STRICT_STATUS_TRANSITIONS: bool = False

    # Push delivery (FCM HTTP v1)
    FCM_PROJECT_ID: str | None = None
    FCM_ACCESS_TOKEN: str | None = None
    PUSH_TOKEN_MAX_AGE_DAYS: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
