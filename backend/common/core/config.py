from typing import Optional, List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, UsageStoreBackend, NotificationProvider


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # App Settings
    app_name: str = "quota-engine"
    debug: bool = False
    log_level: str = "INFO"

    # Usage store selection
    usage_store_backend: UsageStoreBackend = UsageStoreBackend.SQL

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "quota"
    database_url_override: Optional[str] = None  # Full async URL, e.g. sqlite+aiosqlite:///...
    db_use_nullpool: bool = (
        False  # True for workers (sequential), False for API (concurrent)
    )
    db_pool_size: int = 10
    db_pool_overflow: int = 5
    db_command_timeout_seconds: float = 5.0

    @property
    def database_url(self) -> str:
        """Construct async database URL from components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_socket_timeout_seconds: float = 2.0
    redis_usage_retention_days: int = 35  # Per-day keys expire after this window

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Short-window rate limiting (limits storage URI, e.g. async+redis://host:6379/0)
    rate_limit_storage_uri_override: Optional[str] = None

    @property
    def rate_limit_storage_uri(self) -> str:
        """Shared Redis when usage lives in Redis, process memory otherwise."""
        if self.rate_limit_storage_uri_override:
            return self.rate_limit_storage_uri_override
        if self.usage_store_backend == UsageStoreBackend.REDIS:
            return f"async+{self.redis_connection_url}"
        return "async+memory://"

    # Quota warnings
    quota_warning_thresholds: List[int] = [80, 100]

    @field_validator("quota_warning_thresholds")
    @classmethod
    def _validate_thresholds(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("at least one quota warning threshold is required")
        if any(t <= 0 or t > 100 for t in value):
            raise ValueError("quota warning thresholds must be within 1..100")
        return sorted(set(value))

    # Notification delivery
    notification_provider: NotificationProvider = NotificationProvider.LOG
    notification_endpoint: Optional[str] = None  # e.g. https://app.example.com/api/email/send
    notification_api_token: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # OpenTelemetry
    otel_service_name: str = "quota-engine"
    otel_service_version: str = "0.1.0"
    otel_traces_endpoint: str = "https://api.axiom.co/v1/traces"

    # Axiom (trace export is enabled only when a token is configured)
    axiom_token: Optional[str] = None
    axiom_dataset: Optional[str] = None


settings = Settings()
