"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Solana Whale Tracker pipeline, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class SolanaSettings(BaseSettings):
    """Solana JSON-RPC settings."""

    model_config = SettingsConfigDict(env_prefix="SOLANA_", extra="ignore")

    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        alias="SOLANA_RPC_URL",
        description="Primary Solana RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="SOLANA_FALLBACK_RPC_URL",
        description="Fallback Solana RPC endpoint",
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        alias="SOLANA_REQUEST_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Per-request HTTP timeout for RPC calls",
    )
    max_requests_per_second: float = Field(
        default=10.0,
        alias="SOLANA_MAX_REQUESTS_PER_SECOND",
        gt=0.0,
        le=1000.0,
        description="Client-side rate limit for RPC calls",
    )
    max_retries: int = Field(
        default=2,
        alias="SOLANA_MAX_RETRIES",
        ge=1,
        le=10,
        description="Attempts per endpoint before failing over",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class PremiumSettings(BaseSettings):
    """Premium gate configuration."""

    model_config = SettingsConfigDict(env_prefix="PREMIUM_", extra="ignore")

    token_mint: str = Field(
        alias="PREMIUM_TOKEN_MINT",
        description="Mint address of the token whose balance unlocks premium alerts",
    )
    balance_threshold: Decimal = Field(
        default=Decimal("500000"),
        alias="PREMIUM_BALANCE_THRESHOLD",
        description="Minimum token balance (UI units) required for premium access",
    )
    token_decimals: int = Field(
        default=6,
        alias="PREMIUM_TOKEN_DECIMALS",
        ge=0,
        le=18,
        description="Decimals assumed when the wallet holds no token account",
    )
    cache_ttl_seconds: int = Field(
        default=300,
        alias="PREMIUM_CACHE_TTL_SECONDS",
        ge=1,
        le=86_400,
        description="TTL of cached balance entries",
    )
    oracle_timeout_seconds: float = Field(
        default=15.0,
        alias="PREMIUM_ORACLE_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Upper bound on a single balance lookup across all providers",
    )
    revalidation_interval_seconds: int = Field(
        default=3600,
        alias="PREMIUM_REVALIDATION_INTERVAL_SECONDS",
        ge=60,
        description="Interval between premium balance revalidation sweeps",
    )
    revalidation_batch_size: int = Field(
        default=10,
        alias="PREMIUM_REVALIDATION_BATCH_SIZE",
        ge=1,
        le=500,
        description="Wallets checked concurrently per revalidation batch",
    )

    @field_validator("token_mint")
    @classmethod
    def validate_token_mint(cls, v: str) -> str:
        if not is_valid_solana_address(v):
            raise ValueError("PREMIUM_TOKEN_MINT must be a base58 Solana address")
        return v

    @field_validator("balance_threshold")
    @classmethod
    def validate_balance_threshold(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("PREMIUM_BALANCE_THRESHOLD must be > 0")
        return v


class IngestionSettings(BaseSettings):
    """Signature ingestion loop configuration."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_", extra="ignore")

    interval_seconds: float = Field(
        default=10.0,
        alias="INGESTION_INTERVAL_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Interval between signature polling ticks",
    )
    signatures_per_address: int = Field(
        default=10,
        alias="INGESTION_SIGNATURES_PER_ADDRESS",
        ge=1,
        le=1000,
        description="Max signatures requested per tracked address per tick",
    )
    max_pages_per_address: int = Field(
        default=10,
        alias="INGESTION_MAX_PAGES_PER_ADDRESS",
        ge=1,
        le=100,
        description="Max signature pages walked back to a checkpoint per address per tick",
    )
    whale_feed_enabled: bool = Field(
        default=True,
        alias="INGESTION_WHALE_FEED_ENABLED",
        description="Poll tracked whale wallets",
    )
    kol_feed_enabled: bool = Field(
        default=True,
        alias="INGESTION_KOL_FEED_ENABLED",
        description="Poll tracked KOL wallets",
    )


class DedupSettings(BaseSettings):
    """Signature dedup cache configuration."""

    model_config = SettingsConfigDict(env_prefix="DEDUP_", extra="ignore")

    retention_seconds: int = Field(
        default=600,
        alias="DEDUP_RETENTION_SECONDS",
        ge=1,
        le=7 * 86_400,
        description="How long a processed signature is remembered",
    )
    max_entries: int = Field(
        default=100_000,
        alias="DEDUP_MAX_ENTRIES",
        ge=1,
        description="Upper bound on in-memory dedup entries",
    )
    persist: bool = Field(
        default=True,
        alias="DEDUP_PERSIST",
        description="Mirror dedup entries to Redis so they survive restarts",
    )


class QueueSettings(BaseSettings):
    """Backpressure queue configuration."""

    model_config = SettingsConfigDict(env_prefix="QUEUE_", extra="ignore")

    high_water_mark: int = Field(
        default=5000,
        alias="QUEUE_HIGH_WATER_MARK",
        ge=1,
        description="Depth at which the queue enters backpressure",
    )
    low_water_mark: int = Field(
        default=4000,
        alias="QUEUE_LOW_WATER_MARK",
        ge=0,
        description="Depth at or below which backpressure is released",
    )
    stats_log_interval_seconds: int = Field(
        default=60,
        alias="QUEUE_STATS_LOG_INTERVAL_SECONDS",
        ge=1,
        description="Interval between queue statistics log lines",
    )

    @model_validator(mode="after")
    def validate_water_marks(self) -> QueueSettings:
        if self.low_water_mark >= self.high_water_mark:
            raise ValueError("QUEUE_LOW_WATER_MARK must be below QUEUE_HIGH_WATER_MARK")
        return self


class ClusterSettings(BaseSettings):
    """Whale cluster detector configuration."""

    model_config = SettingsConfigDict(env_prefix="CLUSTER_", extra="ignore")

    window_minutes: int = Field(
        default=15,
        alias="CLUSTER_WINDOW_MINUTES",
        ge=1,
        le=24 * 60,
        description="Size of the cluster aggregation window",
    )
    prune_interval_seconds: int = Field(
        default=60,
        alias="CLUSTER_PRUNE_INTERVAL_SECONDS",
        ge=1,
        description="Interval between expired-window sweeps",
    )


class AlertSettings(BaseSettings):
    """Alert subscription matching configuration."""

    model_config = SettingsConfigDict(env_prefix="ALERT_", extra="ignore")

    subscription_sync_interval_seconds: int = Field(
        default=120,
        alias="ALERT_SUBSCRIPTION_SYNC_INTERVAL_SECONDS",
        ge=5,
        description="Interval between subscription snapshot refreshes",
    )
    premium_alert_types: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("WHALE_CLUSTER", "KOL_ACTIVITY", "KOL_PROFILE"),
        alias="ALERT_PREMIUM_ALERT_TYPES",
        description="Alert types that require premium access at dispatch time",
    )

    @field_validator("premium_alert_types", mode="before")
    @classmethod
    def _parse_alert_types(cls, v: object) -> object:
        if isinstance(v, str):
            return tuple(part.strip().upper() for part in v.split(",") if part.strip())
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from solana_whale_tracker.config import get_settings

        settings = get_settings()
        print(settings.solana.rpc_url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    solana: SolanaSettings = Field(
        default_factory=lambda: SolanaSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    premium: PremiumSettings = Field(
        default_factory=lambda: PremiumSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ingestion: IngestionSettings = Field(
        default_factory=lambda: IngestionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    dedup: DedupSettings = Field(
        default_factory=lambda: DedupSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    queue: QueueSettings = Field(
        default_factory=lambda: QueueSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    cluster: ClusterSettings = Field(
        default_factory=lambda: ClusterSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    alerts: AlertSettings = Field(
        default_factory=lambda: AlertSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Log matched alerts instead of delivering them",
    )
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        alias="SHUTDOWN_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="How long to wait for background loops before cancelling them",
    )

    @model_validator(mode="after")
    def validate_oracle_budget(self) -> Settings:
        # The oracle timeout is split across providers; each share must fit one request
        providers = 2 if self.solana.fallback_rpc_url else 1
        required = self.solana.request_timeout_seconds * providers
        if self.premium.oracle_timeout_seconds < required:
            raise ValueError(
                f"PREMIUM_ORACLE_TIMEOUT_SECONDS ({self.premium.oracle_timeout_seconds}) must be at "
                f"least SOLANA_REQUEST_TIMEOUT_SECONDS x {providers} provider(s) ({required})"
            )
        return self

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "solana": {
                "rpc_url": self._redact_url(self.solana.rpc_url),
                "fallback_rpc_url": (
                    self._redact_url(self.solana.fallback_rpc_url)
                    if self.solana.fallback_rpc_url
                    else "(not set)"
                ),
                "request_timeout_seconds": str(self.solana.request_timeout_seconds),
            },
            "premium": {
                "token_mint": self.premium.token_mint,
                "balance_threshold": str(self.premium.balance_threshold),
                "cache_ttl_seconds": str(self.premium.cache_ttl_seconds),
            },
            "ingestion": {
                "interval_seconds": str(self.ingestion.interval_seconds),
                "signatures_per_address": str(self.ingestion.signatures_per_address),
                "whale_feed_enabled": str(self.ingestion.whale_feed_enabled),
                "kol_feed_enabled": str(self.ingestion.kol_feed_enabled),
            },
            "queue": {
                "high_water_mark": str(self.queue.high_water_mark),
                "low_water_mark": str(self.queue.low_water_mark),
            },
            "cluster": {
                "window_minutes": str(self.cluster.window_minutes),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self, *, command: Literal["run"]) -> None:
        """Validate command-specific requirements."""
        if command == "run":
            if not (self.ingestion.whale_feed_enabled or self.ingestion.kol_feed_enabled):
                raise ValueError("At least one ingestion feed must be enabled to run the pipeline")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password or API key from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        if "api-key=" in url:
            return url.split("api-key=")[0] + "api-key=***"
        return url


def is_valid_solana_address(address: str) -> bool:
    """Check that a string looks like a base58 Solana public key."""
    if not 32 <= len(address) <= 44:
        return False
    return all(ch in _BASE58_ALPHABET for ch in address)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
