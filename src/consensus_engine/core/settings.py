"""Application settings and configuration.

This module defines all configuration options for the Consensus Engine.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Consensus Engine", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Bearer tokens are issued by the external auth service; we only verify them.
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    # Database configuration
    database_url: str = Field(default="sqlite:///./consensus.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # AI persona identity
    ai_persona_id: str = Field(default="ai-persona", alias="AI_PERSONA_ID")
    ai_persona_name: str = Field(default="AI", alias="AI_PERSONA_NAME")
    ai_persona_avatar_url: str | None = Field(default=None, alias="AI_PERSONA_AVATAR_URL")

    # Token subjects allowed to run maintenance endpoints such as reconcile.
    operator_user_ids: list[str] = Field(default_factory=list, alias="OPERATOR_USER_IDS")

    # Aggregate maintenance
    aggregate_max_retries: int = Field(default=5, ge=1, alias="AGGREGATE_MAX_RETRIES")

    # Compatibility engine
    common_ground_default_limit: int = Field(default=10, alias="COMMON_GROUND_DEFAULT_LIMIT")
    divergence_default_limit: int = Field(default=10, alias="DIVERGENCE_DEFAULT_LIMIT")
    compatibility_ignore_unsure_mismatch: bool = Field(
        default=False,
        alias="COMPATIBILITY_IGNORE_UNSURE_MISMATCH",
    )

    # Vote streaks use the voter's local day; this is the fallback zone.
    streak_default_timezone: str = Field(default="UTC", alias="STREAK_DEFAULT_TIMEZONE")

    # Notification outbox delivery
    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")
    notification_worker_enabled: bool = Field(default=True, alias="NOTIFICATION_WORKER_ENABLED")
    notification_webhook_url: str | None = Field(default=None, alias="NOTIFICATION_WEBHOOK_URL")
    notification_http_timeout_seconds: float = Field(
        default=5.0,
        alias="NOTIFICATION_HTTP_TIMEOUT_SECONDS",
    )
    notification_poll_interval_seconds: float = Field(
        default=2.0,
        alias="NOTIFICATION_POLL_INTERVAL_SECONDS",
    )
    notification_batch_size: int = Field(default=50, alias="NOTIFICATION_BATCH_SIZE")
    notification_max_attempts: int = Field(default=5, alias="NOTIFICATION_MAX_ATTEMPTS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

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
