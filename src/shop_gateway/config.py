"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shop_gateway.auth.scopes import BASE_SCOPES


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class SessionBackend(StrEnum):
    DATABASE = "database"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The platform API secret is required: the gateway refuses to start
    without it instead of falling back to an unsigned mode. All secrets
    use SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    app_base_url: SecretStr = SecretStr("http://localhost:8000")

    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST"]
    cors_allowed_headers: list[str] = [
        "Content-Type",
        "Authorization",
        "X-Shopify-Shop-Domain",
    ]

    # --- Platform ---
    platform_api_key: str
    platform_api_secret: SecretStr
    platform_api_version: str = "2024-10"
    platform_scopes: list[str] = list(BASE_SCOPES)
    token_exchange_timeout_seconds: float = 10.0
    token_exchange_retry_backoff_seconds: float = 0.5

    # --- Sessions ---
    session_backend: SessionBackend = SessionBackend.DATABASE
    session_ttl_seconds: int = 86400
    session_cookie_name: str = "shop_gateway_session"
    state_cookie_name: str = "shop_gateway_state"

    # --- Rate limiting ---
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 100

    # --- Webhooks ---
    webhook_ledger_ttl_seconds: int = 3600

    # --- PostgreSQL ---
    postgres_user: str = "shop_gateway"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "shop_gateway"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Redis / worker ---
    redis_url: str = "redis://localhost:6379/0"
    worker_max_jobs: int = 10
    worker_job_timeout: int = 120
    worker_max_tries: int = 3

    @field_validator("platform_api_secret")
    @classmethod
    def _secret_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("platform_api_secret must not be empty")
        return value

    @field_validator("rate_limit_window_seconds", "rate_limit_max_requests")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("rate limit parameters must be positive")
        return value

    # --- Convenience properties ---
    @property
    def base_url(self) -> str:
        return self.app_base_url.get_secret_value().rstrip("/")

    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from shop_gateway.config import get_settings
        settings = get_settings()

    Raises:
        pydantic.ValidationError: if the platform credentials are missing.
    """
    return Settings()  # type: ignore[call-arg]


settings = get_settings()
