from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: SecretStr

    # Stripe
    STRIPE_API_KEY: SecretStr | None = None
    STRIPE_WEBHOOK_SECRET: SecretStr | None = None
    STRIPE_API_VERSION: str = "2023-10-16"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Cin7 Core
    CIN7_BASE_URL: str = "https://inventory.dearsystems.com/ExternalApi/v2"
    CIN7_ACCOUNT_ID: str | None = None
    CIN7_API_KEY: SecretStr | None = None
    CIN7_PAYMENT_ACCOUNT: str | None = None  # Cin7 ledger account code for received payments
    CIN7_TIMEOUT_SECONDS: float = 30.0

    # Admin
    ADMIN_TOKEN: SecretStr | None = None

    # Sale discovery worker
    WORKER_ENABLED: bool = True
    WORKER_POLL_INTERVAL_SECONDS: float = 60.0
    WORKER_BATCH_SIZE: int = 10
    WORKER_LOOKBACK_DAYS: int = 7
    WORKER_ELIGIBLE_STATUSES: str = "AUTHORISED,INVOICED"

    # Idempotency
    IDEMPOTENCY_KEY_TTL_HOURS: int = 24

    # Alerting
    ALERT_ENABLED: bool = False
    ALERT_SLACK_WEBHOOK_URL: SecretStr | None = None
    ALERT_SLACK_CHANNEL: str = "#alerts"

    # Rate Limiting
    RATE_LIMIT_WEBHOOK: str = "100/minute"  # Stripe webhook POST endpoint limit

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def eligible_statuses(self) -> frozenset[str]:
        return frozenset(
            status.strip().upper()
            for status in self.WORKER_ELIGIBLE_STATUSES.split(",")
            if status.strip()
        )

    @property
    def cin7_configured(self) -> bool:
        return bool(self.CIN7_API_KEY and self.CIN7_API_KEY.get_secret_value())

    # Server
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000

    # - Development -
    DEV_UVICORN_RELOAD: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
