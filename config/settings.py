"""
Configuration settings for the Command Center backend.
All sensitive values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Command Center"
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    webhook_base_url: str = Field(default="", env="WEBHOOK_BASE_URL")

    # Database (PostgreSQL)
    database_url: str = Field(default="", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    db_pool_size: int = Field(default=5, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=1800, env="DB_POOL_RECYCLE")

    # Business timezone ("today" for the scheduler lockout)
    timezone: str = Field(default="Australia/Perth", env="TIMEZONE")

    # ServiceM8
    servicem8_api_key: str = Field(default="", env="SERVICEM8_API_KEY")
    servicem8_client_id: str = Field(default="", env="SERVICEM8_CLIENT_ID")
    servicem8_client_secret: str = Field(default="", env="SERVICEM8_CLIENT_SECRET")
    servicem8_api_base_url: str = Field(default="https://api.servicem8.com/api_1.0", env="SERVICEM8_API_BASE_URL")
    servicem8_platform_url: str = Field(default="https://api.servicem8.com/platform_service", env="SERVICEM8_PLATFORM_URL")
    servicem8_authorize_url: str = Field(default="https://go.servicem8.com/oauth/authorize", env="SERVICEM8_AUTHORIZE_URL")
    servicem8_token_url: str = Field(default="https://go.servicem8.com/oauth/access_token", env="SERVICEM8_TOKEN_URL")
    servicem8_scopes: str = Field(
        default="read_jobs read_schedule manage_schedule read_messages read_job_notes "
                "read_staff read_clients publish_sms publish_email",
        env="SERVICEM8_SCOPES",
    )
    # quote_sent_stamp values are wall-clock times in the account's timezone
    servicem8_source_utc_offset_hours: int = Field(default=8, env="SERVICEM8_SOURCE_UTC_OFFSET_HOURS")
    servicem8_job_page_size: int = Field(default=1000, env="SERVICEM8_JOB_PAGE_SIZE")
    servicem8_lookup_page_size: int = Field(default=5000, env="SERVICEM8_LOOKUP_PAGE_SIZE")
    http_timeout_seconds: float = Field(default=30.0, env="HTTP_TIMEOUT_SECONDS")

    # Automatic sync
    auto_sync_enabled: bool = Field(default=True, env="AUTO_SYNC_ENABLED")
    auto_sync_interval_minutes: int = Field(default=15, env="AUTO_SYNC_INTERVAL_MINUTES")
    auto_sync_initial_delay_seconds: int = Field(default=10, env="AUTO_SYNC_INITIAL_DELAY_SECONDS")

    # Pipeline / scheduling rules
    confirm_window_days: int = Field(default=14, env="CONFIRM_WINDOW_DAYS")
    fresh_quote_days: int = Field(default=3, env="FRESH_QUOTE_DAYS")

    # Settings store write-back delay
    settings_save_delay_seconds: float = Field(default=1.0, env="SETTINGS_SAVE_DELAY_SECONDS")

    # Security
    encryption_key: Optional[str] = Field(default=None, env="ENCRYPTION_KEY")
    messaging_rate_limit: str = Field(default="20/minute", env="MESSAGING_RATE_LIMIT")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
