from datetime import time
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./defer.db"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    # IANA zone used for calendar math (payday, snapping, day counts).
    TIMEZONE: str = "UTC"

    # Side-effect ring buffers
    OUTBOX_MAX_OPERATIONS: int = 500
    ANALYTICS_MAX_EVENTS: int = 400
    SIDE_EFFECT_QUEUE_SIZE: int = 1000

    # Notification planning
    NOTIFICATION_MAX_PLANNED: int = 60
    DEFAULT_REMINDER_TIME: time = time(20, 0)

    # Periodic lifecycle sweep
    BACKGROUND_REFRESH_ENABLED: bool = False
    BACKGROUND_REFRESH_INTERVAL_SECONDS: int = 6 * 60 * 60

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def database_url(self) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy wants postgresql://
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.TIMEZONE)


settings = Settings()
