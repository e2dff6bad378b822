"""
Gateway Configuration

All settings come from environment variables and fall back to the
defaults the service is tuned for.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the gateway process."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Upstream catalog
    mangadex_api_url: str = "https://api.mangadex.org"
    mangadex_uploads_url: str = "https://uploads.mangadex.org"
    catalog_timeout: float = 10.0

    # Image pipeline
    image_max_active: int = 5
    image_max_queued: int = 50
    image_fetch_timeout: float = 30.0
    image_max_redirects: int = 3
    image_max_size_mb: int = 50

    # Search cache
    search_cache_ttl_seconds: float = 30.0
    search_cache_max_entries: int = 100

    # Whole-request deadline
    request_timeout_seconds: float = 60.0

    @property
    def image_max_bytes(self) -> int:
        return self.image_max_size_mb * 1024 * 1024


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        host=os.getenv("GATEWAY_HOST", Settings.host),
        port=_env_int("GATEWAY_PORT", Settings.port),
        log_level=os.getenv("GATEWAY_LOG_LEVEL", Settings.log_level).upper(),
        mangadex_api_url=os.getenv("MANGADEX_API_URL", Settings.mangadex_api_url).rstrip("/"),
        mangadex_uploads_url=os.getenv("MANGADEX_UPLOADS_URL", Settings.mangadex_uploads_url).rstrip("/"),
        catalog_timeout=_env_float("CATALOG_TIMEOUT", Settings.catalog_timeout),
        image_max_active=_env_int("IMAGE_MAX_ACTIVE", Settings.image_max_active),
        image_max_queued=_env_int("IMAGE_MAX_QUEUED", Settings.image_max_queued),
        image_fetch_timeout=_env_float("IMAGE_FETCH_TIMEOUT", Settings.image_fetch_timeout),
        image_max_redirects=_env_int("IMAGE_MAX_REDIRECTS", Settings.image_max_redirects),
        image_max_size_mb=_env_int("IMAGE_MAX_SIZE_MB", Settings.image_max_size_mb),
        search_cache_ttl_seconds=_env_float("SEARCH_CACHE_TTL_SECONDS", Settings.search_cache_ttl_seconds),
        search_cache_max_entries=_env_int("SEARCH_CACHE_MAX_ENTRIES", Settings.search_cache_max_entries),
        request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", Settings.request_timeout_seconds),
    )
