"""Configuration settings for the application."""

from typing import Literal
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database configuration
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "stockcount"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Full URL override, read from DATABASE_URL (e.g. "sqlite+aiosqlite:///./stockcount.db")
    database_url_override: str = Field(
        "", validation_alias=AliasChoices("database_url", "database_url_override")
    )

    # Application settings
    debug: bool = False

    # Reconciliation policy
    uncounted_policy: Literal["exclude", "zero"] = "exclude"
    items_page_size: int = Field(20, ge=1, le=500)
    # Stop live stock at 0 when a count removes more than is left; False rejects the completion
    clamp_negative_stock: bool = True

    # HTTP surface
    cors_origins: str = "http://localhost:4200,http://127.0.0.1:4200"
    rate_limit: str = "120/minute"

    @property
    def database_url(self) -> str:
        """Construct the database URL for async PostgreSQL connection."""
        if self.database_url_override:
            return self.database_url_override
        base_url = (
            f"postgresql+asyncpg://{quote(self.postgres_user, safe='')}:{quote(self.postgres_password, safe='')}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        # Add SSL for Azure PostgreSQL
        if "azure" in self.postgres_host.lower() or "postgres.database" in self.postgres_host.lower():
            return f"{base_url}?ssl=require"
        return base_url

    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins parsed from the comma-separated setting."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
