"""Investigation service configuration settings."""

import os
from dataclasses import dataclass, field
from datetime import timedelta


@dataclass(frozen=True)
class CacheConfig:
    """Durable cache tier configuration."""

    ttl: timedelta = field(default_factory=lambda: timedelta(hours=1))
    max_entries: int = 10  # Most recently written entries kept in the namespace
    top_n: int = 30  # Contributors persisted with each entry
    namespace: str = "anomaly_investigation_"


@dataclass(frozen=True)
class FacetConfig:
    """Thresholds for facet and selection analysis."""

    min_rate: float = 0.5  # Requests per minute in the compared window
    min_change: float = 5.0  # Percentage points
    max_results: int = 5  # Contributors kept per dimension
    query_limit: int = 50  # Rows returned per aggregation
    top_n: int = 20  # Argument for callable dimension columns


@dataclass(frozen=True)
class ExecutorConfig:
    """Remote aggregation executor configuration."""

    enabled: bool = True
    base_url: str = "http://localhost:8123"
    database: str = "helix_logs_production"
    table: str = "cdn_requests_v2"
    timeout_ms: int = 30000


@dataclass(frozen=True)
class Settings:
    """Global settings for the investigation service."""

    # Cache versioning - MUST be incremented when cache format or algorithm changes
    cache_version: int = 3

    # Service identification
    service_name: str = "traffic-investigation-service"
    service_version: str = "0.1.0"

    # Number of contributors highlighted at once
    highlight_top_n: int = 3

    cache: CacheConfig = field(default_factory=CacheConfig)
    facet: FacetConfig = field(default_factory=FacetConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)

    # Storage settings
    storage_path: str = "./data/investigations"
    enable_file_storage: bool = True

    # API settings
    api_prefix: str = "/api/v1"
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            cache_version=int(os.getenv("CACHE_VERSION", "3")),
            cache=CacheConfig(
                ttl=timedelta(seconds=int(os.getenv("CACHE_TTL_SECONDS", "3600"))),
                max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "10")),
            ),
            executor=ExecutorConfig(
                enabled=os.getenv("EXECUTOR_ENABLED", "true").lower() == "true",
                base_url=os.getenv("CLICKHOUSE_URL", "http://localhost:8123"),
                database=os.getenv("CLICKHOUSE_DATABASE", "helix_logs_production"),
                table=os.getenv("CLICKHOUSE_TABLE", "cdn_requests_v2"),
                timeout_ms=int(os.getenv("CLICKHOUSE_TIMEOUT_MS", "30000")),
            ),
            storage_path=os.getenv("STORAGE_PATH", "./data/investigations"),
            enable_file_storage=os.getenv("ENABLE_FILE_STORAGE", "true").lower() == "true",
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Settings) -> None:
    """Configure the global settings (primarily for testing)."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for testing)."""
    global _settings
    _settings = None
