"""
Centralized settings management using pydantic-settings.

All environment variables and configuration values are defined here.
Use get_settings() to access the singleton settings instance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Required environment variables:
        - SUPABASE_URL: Supabase project URL
        - SUPABASE_SERVICE_KEY: Supabase service role key

    Optional environment variables:
        - HOST: Server host (default: 0.0.0.0)
        - PORT: Server port (default: 8080)
        - ALGOLIA_APP_ID / ALGOLIA_SEARCH_KEY / ALGOLIA_WRITE_KEY: hosted search
        - ENVIRONMENT: Environment name (development, staging, production)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    # ==========================================================================
    # Server Configuration
    # ==========================================================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    workers: int = Field(default=4, description="Number of uvicorn workers")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=[
            "https://app.financbase.com",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # ==========================================================================
    # Supabase Configuration
    # ==========================================================================
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_service_key: str = Field(..., description="Supabase service role key")

    # ==========================================================================
    # Postgres Full-Text Search
    # ==========================================================================
    search_text_config: str = Field(
        default="english",
        description="Postgres text search configuration used for to_tsquery"
    )
    search_default_limit: int = Field(default=20, description="Default page size")
    search_max_limit: int = Field(default=100, description="Maximum page size")
    search_analytics_enabled: bool = Field(
        default=True,
        description="Persist query logs, clicks and performance rows to Supabase"
    )

    # ==========================================================================
    # Hybrid Search Routing + Cache
    # ==========================================================================
    hybrid_simple_query_max_length: int = Field(
        default=50,
        description="Queries up to this length go to Algolia alone"
    )
    hybrid_long_query_min_length: int = Field(
        default=100,
        description="Queries longer than this always use the hybrid strategy"
    )
    search_cache_ttl_seconds: int = Field(
        default=300,
        description="Hybrid search result cache TTL in seconds (5 minutes)"
    )
    search_cache_max_entries: int = Field(
        default=1000,
        description="Maximum cached hybrid search responses"
    )

    # ==========================================================================
    # Algolia Search Configuration
    # ==========================================================================
    algolia_app_id: str = Field(default="", description="Algolia application ID")
    algolia_search_key: str = Field(default="", description="Algolia search API key")
    algolia_write_key: str = Field(default="", description="Algolia write API key")
    algolia_index_prefix: str = Field(
        default="financbase",
        description="Prefix for Algolia index names ({prefix}_{index})"
    )
    algolia_max_hits_per_page: int = Field(
        default=1000,
        description="Algolia hard limit for hitsPerPage"
    )

    # ==========================================================================
    # Algolia Sync / Retry Queue
    # ==========================================================================
    algolia_sync_max_retries: int = Field(
        default=3,
        description="Retries for a failed sync operation before dead-lettering"
    )
    algolia_sync_retry_delay_seconds: float = Field(
        default=5.0,
        description="Delay before the retry queue is processed"
    )
    algolia_sync_batch_size: int = Field(
        default=100,
        description="Records per Algolia batch write"
    )
    algolia_sync_dead_letter_size: int = Field(
        default=500,
        description="Maximum dead-lettered sync items kept in memory"
    )

    @property
    def algolia_configured(self) -> bool:
        return bool(self.algolia_app_id and (self.algolia_search_key or self.algolia_write_key))


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure only one instance is created.
    Settings are loaded from environment variables and .env file.

    Returns:
        Settings: The application settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    # Try to find .env file in project root
    env_file = Path(__file__).parent.parent.parent / ".env"
    if env_file.exists():
        os.environ.setdefault("ENV_FILE", str(env_file))

    return Settings(_env_file=env_file if env_file.exists() else None)


def get_settings_for_testing(**overrides) -> Settings:
    """
    Create a settings instance for testing with optional overrides.

    This bypasses the cache to allow different settings in tests.

    Args:
        **overrides: Setting values to override

    Returns:
        Settings: A new settings instance with overrides applied
    """
    test_defaults = {
        "supabase_url": "https://test.supabase.co",
        "supabase_service_key": "test-key",
        "environment": "testing",
        "debug": True,
    }
    test_defaults.update(overrides)

    return Settings(**test_defaults)
