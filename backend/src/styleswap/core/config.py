"""Application configuration using Pydantic BaseSettings."""

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file="../.env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./styleswap.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # Gemini / Veo (first-party generation provider)
    # GEMINI_API_KEY is the fallback when the credential pool has no active key
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    gemini_image_model: str = Field(default="gemini-2.5-flash-image", alias="GEMINI_IMAGE_MODEL")
    veo_model: str = Field(default="veo-3.1-generate-preview", alias="VEO_MODEL")
    veo_fast_model: str = Field(default="veo-3.1-fast-generate-preview", alias="VEO_FAST_MODEL")

    # Kling (third-party video vendor)
    kling_access_key: str = Field(default="", alias="KLING_ACCESS_KEY")
    kling_secret_key: str = Field(default="", alias="KLING_SECRET_KEY")
    kling_base_url: str = Field(default="https://api.klingai.com", alias="KLING_BASE_URL")

    # Razorpay (payment processor)
    razorpay_key_id: str = Field(default="", alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str = Field(default="", alias="RAZORPAY_KEY_SECRET")
    default_currency: str = Field(default="INR", alias="DEFAULT_CURRENCY")

    # Pricing (major currency units)
    video_base_price: int = Field(default=20, alias="VIDEO_BASE_PRICE")
    photo_price: float = Field(default=8, alias="PHOTO_PRICE")
    credit_bundle_price: float = Field(default=49, alias="CREDIT_BUNDLE_PRICE")
    credit_bundle_amount: int = Field(default=10, alias="CREDIT_BUNDLE_AMOUNT")

    # Polling
    poll_interval_seconds: float = Field(default=10, alias="POLL_INTERVAL_SECONDS")
    vendor_max_poll_attempts: int = Field(default=180, alias="VENDOR_MAX_POLL_ATTEMPTS")
    first_party_max_poll_attempts: int = Field(default=180, alias="FIRST_PARTY_MAX_POLL_ATTEMPTS")
    artifact_grace_attempts: int = Field(default=12, alias="ARTIFACT_GRACE_ATTEMPTS")
    submit_timeout_seconds: float = Field(default=60, alias="SUBMIT_TIMEOUT_SECONDS")
    download_timeout_seconds: float = Field(default=120, alias="DOWNLOAD_TIMEOUT_SECONDS")

    # Downloaded renders served by GET /api/videos/{job_id}/content
    artifact_dir: str = Field(default="./artifacts", alias="ARTIFACT_DIR")

    # Stale hold reconciliation
    hold_timeout_seconds: int = Field(default=2400, alias="HOLD_TIMEOUT_SECONDS")
    reconcile_interval_seconds: int = Field(default=60, alias="RECONCILE_INTERVAL_SECONDS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with clear error messages if configuration is incomplete.
        Validation is skipped in test/development environments.
        """
        if self.app_env in ("test", "testing", "development"):
            return self

        missing = []

        if not self.razorpay_key_id or not self.razorpay_key_secret:
            missing.append(
                "RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET: Create API keys at "
                "https://dashboard.razorpay.com/app/keys"
            )

        # At least one video engine must be usable
        if not self.gemini_api_key and not (self.kling_access_key and self.kling_secret_key):
            missing.append(
                "GEMINI_API_KEY or KLING_ACCESS_KEY/KLING_SECRET_KEY: "
                "Configure at least one video generation provider"
            )

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    if settings.app_env == "production":
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
