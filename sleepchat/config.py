from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "SleepChat"
    app_env: str = "development"
    host: str = "127.0.0.1"
    port: int = 8765

    # Platform API
    api_base_url: str = "https://api.vrchat.cloud/api/1"
    api_key: str = Field("", validation_alias="VRC_API_KEY")
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        validation_alias="VRC_USER_AGENT",
    )

    # Session (issued by the login flow, which lives outside this service)
    auth_cookie: str = ""
    two_factor_auth_cookie: str = ""

    # Storage
    data_dir: str = "./data"
    store_backend: str = "file"  # "file" or "redis"
    redis_url: str = "redis://localhost:6379/0"

    # Sleep mode polling
    poll_interval_ms: int = 15000
    min_poll_interval_ms: int = 10000
    location_retry_limit: int = 240  # 0 = retry forever
    settings_cache_ttl_seconds: float = 30.0

    # Message slot fetching
    message_batch_size: int = 3
    batch_delay_ms: int = 200

    # Retry / backoff
    max_retries: int = 3
    retry_base_delay_ms: int = 1000

    # Dedup limits
    max_handled_invite_ids: int = 1000
    max_handled_sender_ids: int = 500
    cleanup_interval_ms: int = 300000  # 5 minutes

    # Sentry (optional)
    sentry_dsn: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def log_level(self) -> str:
        return "INFO" if self.is_production else "DEBUG"


settings = Settings()

# ---------------------------------------------------------------------------
# Application constants (not env-configurable, change in code)
# ---------------------------------------------------------------------------

# HTTP timeouts (seconds)
HTTP_TIMEOUT = 15.0

# Notifications listed per poll
NOTIFICATION_PAGE_SIZE = 50

# Friends pagination
FRIENDS_PAGE_SIZE = 100

# Message slots
SLOT_COUNT = 12
SLOT_MESSAGE_MAX_LENGTH = 64

# Status description limit enforced by the platform
STATUS_DESCRIPTION_MAX_LENGTH = 32

# Recent events kept for the control surface
EVENT_HISTORY_SIZE = 200
