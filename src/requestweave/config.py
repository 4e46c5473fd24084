# requestweave/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """
    Manages user-configurable settings for the requestweave client,
    primarily loaded from environment variables or a .env file.

    Values here seed the runtime ``CacheConfig`` and ``RetryConfig`` of each
    client; those can be changed later through ``set_cache_config`` and
    ``set_retry_config`` without touching the settings object.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "secrets.env"),
        env_file_encoding="utf-8",
        env_prefix="REQUESTWEAVE_",
        extra="ignore",
        case_sensitive=False,
    )

    # --- Transport Settings ---
    base_url: str = Field(
        default="http://localhost:8000", description="Origin of the backend API"
    )
    request_timeout: float = Field(
        default=30.0, description="Default per-attempt request timeout in seconds"
    )
    user_agent: str = Field(
        default="requestweave/0.1.0",
        description="User-Agent header for requests",
    )
    default_headers: dict[str, str] = Field(
        default_factory=lambda: {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        },
        description="Headers sent with every request",
    )

    # --- Caching Settings ---
    cache_enabled: bool = Field(
        default=True, description="Enable/disable caching of GET responses"
    )
    cache_ttl_seconds: float = Field(
        default=300.0, description="TTL for newly stored cache entries in seconds"
    )
    cache_max_size: int = Field(
        default=256, description="Maximum number of entries kept in the cache"
    )
    cache_exclude_paths: list[str] = Field(
        default_factory=list,
        description="Path prefixes whose GET responses are never cached",
    )

    # --- Retry Settings ---
    max_retries: int = Field(
        default=3, description="Maximum number of retries after a 5xx response"
    )
    retry_initial_delay: float = Field(
        default=1.0, description="Delay before the first retry in seconds"
    )
    retry_max_delay: float = Field(
        default=10.0, description="Upper bound for any single retry delay in seconds"
    )
    retry_network_errors: bool = Field(
        default=False,
        description="Also retry failures where no response was received",
    )

    # --- Deduplication Settings ---
    dedup_stale_after_seconds: float = Field(
        default=60.0,
        description="Age after which a pending coalesced call is swept as leaked",
    )


@lru_cache
def get_settings() -> ClientSettings:
    """
    Provides access to the client settings.

    Settings are loaded from environment variables or .env/secrets.env files.
    The instance is cached for performance.

    Returns:
        ClientSettings: The settings instance.
    """
    return ClientSettings()
