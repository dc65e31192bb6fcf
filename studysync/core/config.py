from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Database
    DATABASE_URL: str

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    SLACK_WEBHOOK_URL: str | None = None

    # Public URL of this service (OAuth redirect target)
    APP_URL: str = "http://localhost:8000"

    # Google OAuth (Classroom + Gmail)
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_AUTH_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_REVOKE_URL: str = "https://oauth2.googleapis.com/revoke"
    TOKEN_REFRESH_MARGIN_SECONDS: int = 5 * 60  # refresh when expiring within 5 minutes

    # Provider APIs
    CLASSROOM_API_BASE: str = "https://classroom.googleapis.com/v1"
    GMAIL_API_BASE: str = "https://gmail.googleapis.com/gmail/v1"
    GMAIL_NOTIFICATION_SENDERS: list[str] = [
        "notifications@instructure.com",
        "canvas@instructure.com",
    ]
    GMAIL_MAX_MESSAGES: int = 20
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Calendar feed keeps events starting within this many days in the past
    FEED_LOOKBACK_DAYS: int = 7

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def effective_log_level(self) -> str:
        """Return appropriate log level based on environment."""
        if self.is_production:
            # In production, minimum INFO level (ignore DEBUG)
            return self.LOG_LEVEL if self.LOG_LEVEL.upper() != "DEBUG" else "INFO"
        return self.LOG_LEVEL

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development

    @property
    def google_configured(self) -> bool:
        """Google OAuth client credentials are present."""
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

    @property
    def google_redirect_uri(self) -> str:
        return f"{self.APP_URL.rstrip('/')}/integrations/google/callback"


settings = Settings()
