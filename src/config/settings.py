"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="enrollgate", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of workers")
    api_reload: bool = Field(default=True, description="Enable auto-reload")

    # Authentication (tokens are issued by the identity provider)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT signing key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=15, description="Access token expiration (minutes)"
    )
    master_api_key: str | None = Field(
        default=None,
        description="API key for integration callers (payment provider webhook)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="enrollgate", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_datacenter: str = Field(
        default="datacenter1", description="Datacenter replicated to in production"
    )
    cassandra_replication_factor: int = Field(
        default=3, ge=1, description="Replicas per row in production"
    )

    # Storage operations
    storage_timeout_seconds: float = Field(
        default=10.0, description="Per-attempt timeout for a storage round-trip"
    )
    storage_retry_attempts: int = Field(
        default=3, ge=1, description="Attempts before a transient failure surfaces"
    )
    storage_retry_base_delay_seconds: float = Field(
        default=0.2, description="First backoff delay, doubled on each retry"
    )

    # Access codes
    access_code_length: int = Field(
        default=8, ge=4, le=32, description="Characters per generated access code"
    )
    access_code_max_generation_attempts: int = Field(
        default=10, description="Attempts to find an unused access code"
    )
    access_code_default_expiry_days: int | None = Field(
        default=None, description="Default code lifetime (None = no expiry)"
    )

    # Audit log
    audit_page_size_default: int = Field(default=50, description="Default page size")
    audit_page_size_max: int = Field(default=200, description="Maximum page size")
    audit_export_max_entries: int = Field(
        default=10_000, description="Upper bound on entries in one CSV export"
    )

    # Real-time change feed
    realtime_channel: str = Field(
        default="enrollgate:changes", description="Redis channel relaying changes"
    )
    realtime_queue_size: int = Field(
        default=256, description="Buffered events per subscription before it errors"
    )
    realtime_ping_interval_seconds: int = Field(
        default=30, description="WebSocket keep-alive ping interval"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
