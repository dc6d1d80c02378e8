"""Application settings and configuration.

This module defines all configuration options for the metagraph sync service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Metagraph Sync", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./metagraph_sync.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis configuration for event fan-out and the poller lease
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    events_enabled: bool = Field(default=False, alias="EVENTS_ENABLED")

    # Metagraph endpoints
    metagraph_ml0_url: str = Field(default="http://localhost:9100", alias="METAGRAPH_ML0_URL")
    metagraph_dl1_url: str = Field(default="http://localhost:9400", alias="METAGRAPH_DL1_URL")
    gl0_url: str | None = Field(default=None, alias="GL0_URL")
    metagraph_id: str | None = Field(default=None, alias="METAGRAPH_ID")
    ml0_peer_urls: list[str] = Field(default_factory=list, alias="ML0_PEER_URLS")
    metagraph_http_timeout_seconds: float = Field(
        default=10.0,
        alias="METAGRAPH_HTTP_TIMEOUT_SECONDS",
    )
    peer_http_timeout_seconds: float = Field(
        default=5.0,
        alias="PEER_HTTP_TIMEOUT_SECONDS",
    )

    # Submission side
    sequence_cache_max_size: int = Field(default=1000, ge=1, alias="SEQUENCE_CACHE_MAX_SIZE")

    # GL0 confirmation poller
    confirmation_poller_enabled: bool = Field(default=True, alias="CONFIRMATION_POLLER_ENABLED")
    gl0_poll_interval_seconds: float = Field(default=15.0, alias="GL0_POLL_INTERVAL_SECONDS")
    confirmation_strict_hash_match: bool = Field(
        default=False,
        alias="CONFIRMATION_STRICT_HASH_MATCH",
    )

    # ML0 fallback poller
    snapshot_poller_enabled: bool = Field(default=True, alias="SNAPSHOT_POLLER_ENABLED")
    ml0_poll_interval_seconds: float = Field(default=60.0, alias="ML0_POLL_INTERVAL_SECONDS")

    # Background indexing
    indexing_max_attempts: int = Field(default=3, ge=1, alias="INDEXING_MAX_ATTEMPTS")
    indexing_retry_delay_seconds: float = Field(
        default=5.0,
        alias="INDEXING_RETRY_DELAY_SECONDS",
    )

    # ML0 webhook subscription
    webhook_auto_subscribe: bool = Field(default=False, alias="WEBHOOK_AUTO_SUBSCRIBE")
    indexer_callback_url: str | None = Field(default=None, alias="INDEXER_CALLBACK_URL")

    # Single active poller per deployment
    poller_lease_enabled: bool = Field(default=False, alias="POLLER_LEASE_ENABLED")
    poller_lease_key: str = Field(default="metagraph-sync:poller-lease", alias="POLLER_LEASE_KEY")
    poller_lease_ttl_seconds: float = Field(default=45.0, alias="POLLER_LEASE_TTL_SECONDS")

    # CORS configuration
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
