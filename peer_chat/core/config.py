"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from peer_chat.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    RealtimeConfig,
    RedisConfig,
    SchedulerConfig,
    ServerConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.chat.specialist_slots).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="peer-support-chat",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )
    default_rate_limit: str = Field(
        default="300/minute",
        description="Default per-client rate limit",
    )
    rate_limit_enabled: bool = Field(
        default=True,
        description="Apply the default rate limit",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key for token signing",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Access token expiration in minutes",
    )
    jwt_refresh_token_expire_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Refresh token expiration in days",
    )
    max_login_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Failed logins before the account is locked",
    )
    login_lockout_seconds: int = Field(
        default=300,
        ge=10,
        description="Lockout window after too many failed logins",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )
    db_pool_size: int = Field(
        default=10,
        ge=1,
        description="Connection pool size",
    )
    db_max_overflow: int = Field(
        default=20,
        ge=0,
        description="Connections allowed above the pool size",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Chat
    stale_waiting_minutes: int = Field(
        default=10,
        ge=1,
        description="Minutes after which a waiting session is flagged stale",
    )
    inactivity_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Minutes of silence before an active session is ended",
    )
    specialist_slots: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Concurrent session slots per specialist",
    )
    max_message_length: int = Field(
        default=4000,
        ge=1,
        description="Maximum chat message length",
    )

    # Realtime
    realtime_channel_prefix: str = Field(
        default="realtime",
        description="Redis pub/sub channel prefix for change events",
    )
    realtime_subscribe_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for a subscription before TIMED_OUT",
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True,
        description="Run periodic background jobs",
    )
    status_interval_seconds: int = Field(
        default=120,
        ge=5,
        description="Specialist status recomputation interval",
    )
    idle_sweep_interval_seconds: int = Field(
        default=60,
        ge=5,
        description="Idle active session sweep interval",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
            cors_origins=self.cors_origins,
            default_rate_limit=self.default_rate_limit,
            rate_limit_enabled=self.rate_limit_enabled,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT authentication configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            access_token_expire_minutes=self.jwt_access_token_expire_minutes,
            refresh_token_expire_days=self.jwt_refresh_token_expire_days,
            max_login_attempts=self.max_login_attempts,
            login_lockout_seconds=self.login_lockout_seconds,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(
            url=self.database_url,
            pool_size=self.db_pool_size,
            max_overflow=self.db_max_overflow,
        )

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url)

    @cached_property
    def chat(self) -> ChatConfig:
        """Chat session lifecycle configuration."""
        return ChatConfig(
            stale_waiting_minutes=self.stale_waiting_minutes,
            inactivity_timeout_minutes=self.inactivity_timeout_minutes,
            specialist_slots=self.specialist_slots,
            max_message_length=self.max_message_length,
        )

    @cached_property
    def realtime(self) -> RealtimeConfig:
        """Realtime change feed configuration."""
        return RealtimeConfig(
            channel_prefix=self.realtime_channel_prefix,
            subscribe_timeout_seconds=self.realtime_subscribe_timeout_seconds,
        )

    @cached_property
    def scheduler(self) -> SchedulerConfig:
        """Background scheduler configuration."""
        return SchedulerConfig(
            enabled=self.scheduler_enabled,
            status_interval_seconds=self.status_interval_seconds,
            idle_sweep_interval_seconds=self.idle_sweep_interval_seconds,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
