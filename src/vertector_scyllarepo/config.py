"""
Configuration management for the ScyllaDB repository.

This module provides:
- Pydantic-based configuration validation
- Authentication and connection pool configuration
- Naming convention configuration
- Loading configuration from environment variables / .env files
"""

import os
import logging
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from dotenv import load_dotenv

from vertector_scyllarepo.exceptions import ConfigurationError
from vertector_scyllarepo.naming import NamingStrategy, get_convention

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    """Authentication configuration for ScyllaDB."""

    enabled: bool = Field(
        default=False,
        description="Enable authentication"
    )

    username: Optional[str] = Field(
        default=None,
        description="Database username"
    )

    password: Optional[str] = Field(
        default=None,
        description="Database password"
    )

    @model_validator(mode='after')
    def validate_auth_config(self):
        """Validate authentication configuration."""
        if self.enabled:
            if not self.username:
                raise ValueError("Authentication requires username")
            if not self.password:
                raise ValueError("Authentication requires password")
        return self


class PoolConfig(BaseModel):
    """Connection pool configuration."""

    executor_threads: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Number of driver executor threads"
    )

    connect_timeout: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Connection timeout in seconds"
    )

    request_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Per-request timeout in seconds"
    )

    @model_validator(mode='after')
    def validate_pool_config(self):
        """Validate pool configuration consistency."""
        if self.connect_timeout > self.request_timeout:
            raise ValueError("connect_timeout cannot exceed request_timeout")
        return self


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = Field(
        default=True,
        description="Enable metrics collection"
    )

    percentiles: list[float] = Field(
        default=[0.5, 0.95, 0.99],
        description="Latency percentiles to track (p50, p95, p99)"
    )

    @field_validator('percentiles')
    @classmethod
    def validate_percentiles(cls, v):
        """Validate percentile values."""
        for p in v:
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"Percentile must be between 0.0 and 1.0, got {p}")
        return sorted(v)


class NamingConfig(BaseModel):
    """
    Field and column naming conventions.

    Convention names are checked against the built-in conventions when the
    config is loaded.
    """

    field_convention: str = Field(
        default="snake_case",
        description="Convention record field names are written in"
    )

    column_convention: str = Field(
        default="snake_case",
        description="Convention table column names are written in"
    )

    @field_validator('field_convention', 'column_convention')
    @classmethod
    def validate_convention(cls, v):
        """Validate that the convention is a built-in one."""
        try:
            get_convention(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e
        return v.lower()

    def strategy(self) -> NamingStrategy:
        return NamingStrategy.from_names(self.field_convention, self.column_convention)


class ScyllaDBRepositoryConfig(BaseModel):
    """
    Complete configuration for repositories backed by ScyllaDB.

    Example usage:
        config = ScyllaDBRepositoryConfig(
            contact_points=["scylla1.example.com", "scylla2.example.com"],
            keyspace="people",
            naming=NamingConfig(field_convention="snake_case", column_convention="snake_case"),
            setup_script="schema/people.cql",
        )

        async with ScyllaDBExecutor.from_config(config) as executor:
            ...
    """

    contact_points: list[str] = Field(
        description="ScyllaDB contact points (hostnames or IPs)"
    )

    keyspace: str = Field(
        description="ScyllaDB keyspace name"
    )

    port: int = Field(
        default=9042,
        ge=1,
        le=65535,
        description="ScyllaDB port"
    )

    auth: AuthConfig = Field(
        default_factory=AuthConfig,
        description="Authentication configuration"
    )

    pool: PoolConfig = Field(
        default_factory=PoolConfig,
        description="Connection pool configuration"
    )

    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics configuration"
    )

    naming: NamingConfig = Field(
        default_factory=NamingConfig,
        description="Naming convention configuration"
    )

    setup_script: Optional[str] = Field(
        default=None,
        description="Path to a CQL script run once before first use"
    )

    enable_tracing: bool = Field(
        default=False,
        description="Enable OpenTelemetry spans around repository operations"
    )

    model_config = ConfigDict(
        validate_assignment=True
    )

    @field_validator('contact_points')
    @classmethod
    def validate_contact_points(cls, v):
        """Validate contact points."""
        if not v:
            raise ValueError("At least one contact point required")
        return v

    @field_validator('keyspace')
    @classmethod
    def validate_keyspace(cls, v):
        """Validate keyspace name."""
        if not v or not v.replace('_', '').isalnum():
            raise ValueError(
                "Keyspace must be alphanumeric with optional underscores"
            )
        return v

    @field_validator('setup_script')
    @classmethod
    def validate_setup_script(cls, v):
        """Validate that the setup script exists."""
        if v is not None and not os.path.exists(v):
            raise ValueError(f"Setup script not found: {v}")
        return v


def load_config_from_env(dotenv_path: Optional[str] = None) -> ScyllaDBRepositoryConfig:
    """
    Load configuration from environment variables.

    A ``.env`` file is loaded first (without overriding variables that are
    already set).

    Environment variables:
        SCYLLADB_CONTACT_POINTS: Comma-separated list of contact points
        SCYLLADB_KEYSPACE: Keyspace name
        SCYLLADB_PORT: Port (default: 9042)
        SCYLLADB_AUTH_ENABLED: Enable authentication (true/false)
        SCYLLADB_USERNAME: Database username
        SCYLLADB_PASSWORD: Database password
        SCYLLADB_REQUEST_TIMEOUT: Per-request timeout in seconds
        SCYLLADB_METRICS_ENABLED: Record statement metrics (true/false)
        SCYLLADB_FIELD_CONVENTION: Record field naming convention
        SCYLLADB_COLUMN_CONVENTION: Column naming convention
        SCYLLADB_SETUP_SCRIPT: Path to the CQL setup script
        SCYLLADB_TRACING_ENABLED: Enable tracing (true/false)

    Returns:
        Validated configuration
    """
    load_dotenv(dotenv_path)

    contact_points_str = os.getenv("SCYLLADB_CONTACT_POINTS", "127.0.0.1")
    contact_points = [cp.strip() for cp in contact_points_str.split(",") if cp.strip()]

    config = ScyllaDBRepositoryConfig(
        contact_points=contact_points,
        keyspace=os.getenv("SCYLLADB_KEYSPACE", "repository"),
        port=int(os.getenv("SCYLLADB_PORT", "9042")),
        auth=AuthConfig(
            enabled=os.getenv("SCYLLADB_AUTH_ENABLED", "false").lower() == "true",
            username=os.getenv("SCYLLADB_USERNAME"),
            password=os.getenv("SCYLLADB_PASSWORD"),
        ),
        pool=PoolConfig(
            request_timeout=float(os.getenv("SCYLLADB_REQUEST_TIMEOUT", "10.0")),
        ),
        metrics=MetricsConfig(
            enabled=os.getenv("SCYLLADB_METRICS_ENABLED", "true").lower() == "true",
        ),
        naming=NamingConfig(
            field_convention=os.getenv("SCYLLADB_FIELD_CONVENTION", "snake_case"),
            column_convention=os.getenv("SCYLLADB_COLUMN_CONVENTION", "snake_case"),
        ),
        setup_script=os.getenv("SCYLLADB_SETUP_SCRIPT"),
        enable_tracing=os.getenv("SCYLLADB_TRACING_ENABLED", "false").lower() == "true",
    )

    logger.info(
        f"Loaded configuration: keyspace={config.keyspace}, "
        f"contact_points={config.contact_points}"
    )
    return config
