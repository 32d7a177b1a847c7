"""
Configuration management using Pydantic settings.
Loads environment variables from .env file and provides type-safe access.
"""
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Revenue data store (unified_transactions, churn_summary, ...)
    supabase_url: str = ""
    supabase_key: str = ""
    analytics_schema: str = "public_analytics"

    # Social / proxy project (exchange rates, edge functions, social analytics)
    social_supabase_url: str = ""
    social_supabase_key: str = ""
    social_schema: str = "social_analytics"

    # Application Configuration
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"  # json or text
    debug: bool = True

    # Revenue Configuration
    default_display_currency: str = "USD"
    display_currency_file: str = Field(
        default=".revenue-currency.json",
        description="JSON file holding the persisted display currency preference",
    )
    display_timezone: str = "Asia/Ho_Chi_Minh"
    transactions_page_limit: int = 500
    report_transaction_limit: int = 200
    request_timeout_seconds: float = 30.0

    # Observability Configuration
    enable_metrics: bool = True

    # CORS Configuration
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Return CORS origins as list."""
        return self.cors_origins

    @property
    def edge_functions_url(self) -> str:
        """Base URL of the Supabase edge functions on the social project."""
        return f"{self.social_supabase_url.rstrip('/')}/functions/v1"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
