"""Configuration settings loaded from environment variables."""

from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Business rules
    business_timezone: str = "Asia/Manila"
    slot_granularity_minutes: int = 15
    buffer_minutes: int = 30
    min_session_minutes: int = 45
    lead_time_hours: int = 2
    scheduling_window_days: int = 90
    booking_id_prefix: str = "MMRS"

    # External calendar (Google Calendar v3)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_calendar_id: str = "primary"
    google_calendar_api_base: str = "https://www.googleapis.com/calendar/v3"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    calendar_send_updates: str = "all"

    # Booking ledger (Notion database API)
    notion_api_key: str = ""
    notion_bookings_database_id: str = ""
    notion_availability_database_id: str = ""
    notion_api_base: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    notion_webhook_secret: str = ""

    # Mail (Resend)
    resend_api_key: str = ""
    email_from_address: str = "bookings@example.com"

    # Shared store for rate limits and passcodes
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Rate Limiting
    otp_send_max_requests: int = 3
    otp_verify_max_requests: int = 10
    search_max_requests: int = 10
    rate_limit_window_seconds: int = 60

    # One-time passcodes
    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5
    otp_grant_ttl_seconds: int = 1800

    # Push subscription
    public_base_url: str = "http://localhost:8000"
    calendar_channel_token: str = ""
    subscription_ttl_days: int = 7
    subscription_renewal_margin_hours: int = 24

    # Background Jobs
    scheduler_tick_seconds: int = 60
    otp_sweep_interval_seconds: int = 300
    reconcile_sweep_interval_seconds: int = 0
    reconcile_past_days: int = 30
    reconcile_future_days: int = 90

    # Admin
    admin_api_key: str = ""

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Application
    app_name: str = "booking-sync"
    business_name: str = "Studio"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def tz(self) -> ZoneInfo:
        """Business timezone as a tzinfo."""
        return ZoneInfo(self.business_timezone)

    @property
    def calendar_configured(self) -> bool:
        """Check whether calendar OAuth credentials are present."""
        return bool(
            self.google_client_id and self.google_client_secret and self.google_refresh_token
        )

    @property
    def ledger_configured(self) -> bool:
        """Check whether ledger credentials are present."""
        return bool(self.notion_api_key and self.notion_bookings_database_id)

    @property
    def webhook_address(self) -> str:
        """Callback URL registered with the calendar push channel."""
        return f"{self.public_base_url.rstrip('/')}/webhooks/calendar"


def load_settings() -> Settings:
    """Load and validate settings from environment."""
    return Settings()
