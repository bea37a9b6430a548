"""
API Configuration
Settings and configuration for FastAPI application.
"""

import json
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """
    API configuration settings.

    Loaded from environment variables (see aliases) and an optional .env file.
    """

    # API Info
    app_name: str = "recallbox Search API"
    version: str = "0.1.0"
    description: str = "Hybrid semantic, fuzzy and exact search over stored items"

    # Server settings
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    reload: bool = Field(default=False, alias="API_RELOAD")
    workers: int = Field(default=4, alias="API_WORKERS")

    # CORS settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"], alias="API_CORS_ORIGINS"
    )
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Database settings
    database_url: str = Field(default="sqlite:///./recallbox.db", alias="DATABASE_URL")

    # Redis settings
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=1, alias="REDIS_DB")

    # Search sessions
    session_backend: str = Field(default="memory", alias="SESSION_BACKEND")

    # Logging
    log_level: str = Field(default="INFO", alias="API_LOG_LEVEL")

    # Security
    api_key_header: str = "X-API-Key"
    require_api_key: bool = Field(default=False, alias="API_REQUIRE_KEY")
    api_keys: List[str] = Field(default=[], alias="API_KEYS")

    # Performance targets
    target_p95_latency_ms: int = Field(default=500, alias="API_TARGET_P95_LATENCY_MS")

    # Index
    load_index_on_startup: bool = Field(default=True, alias="API_LOAD_INDEX_ON_STARTUP")

    # Feature flags
    enable_feedback: bool = Field(default=True, alias="API_ENABLE_FEEDBACK")
    enable_query_enhancement: bool = Field(default=True, alias="API_ENABLE_QUERY_ENHANCEMENT")

    @field_validator("cors_origins", "api_keys", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> List[str]:
        """Parse lists from a JSON string or a comma-separated string."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [value.strip() for value in v.split(",") if value.strip()]
        return v

    @field_validator("session_backend")
    @classmethod
    def validate_session_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError("SESSION_BACKEND must be 'memory' or 'redis'")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix="",
        validate_default=True,
        populate_by_name=True,
    )


# Global settings instance
_settings: Optional[APISettings] = None


def get_settings() -> APISettings:
    """Get global API settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = APISettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
