"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, computed_field


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default="logs/app.log", description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./identity_sync.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    password_env_var: str | None = Field(
        default=None,
        description="Environment variable name containing database password",
    )
    password_file: str | None = Field(
        default=None,
        description="Path to file containing database password",
    )

    @computed_field
    @property
    def password(self) -> str | None:
        """Resolve the database password from a secrets file or environment variable.

        Returns None when neither source is configured; the URL is then used as-is.
        """
        if self.password_file:
            try:
                with open(self.password_file) as f:
                    return f.read().strip()
            except OSError as e:
                raise ValueError("Failed to read database password from file.") from e
        if self.password_env_var:
            password = os.getenv(self.password_env_var)
            if not password:
                raise ValueError(
                    f"Environment variable {self.password_env_var} not set"
                )
            return password
        return None

    @computed_field
    @property
    def connection_string(self) -> str:
        """Database URL with the resolved password applied when the URL has none."""
        from sqlalchemy.engine import make_url

        base_url = make_url(self.url)
        if base_url.password or base_url.get_backend_name() == "sqlite":
            return self.url

        resolved_password = self.password
        if not resolved_password:
            return self.url
        return base_url.set(password=resolved_password).render_as_string(
            hide_password=False
        )


class ProviderConfig(BaseModel):
    """External identity provider connection settings."""

    enabled: bool = Field(default=True, description="Enable the provider connection")
    kind: Literal["http", "memory"] = Field(
        default="http",
        description="Client implementation: remote HTTP API or in-process store",
    )
    base_url: str | None = Field(
        default=None, description="Base URL of the provider's identity admin API"
    )
    api_key: str | None = Field(
        default=None, description="Bearer credential for the provider admin API"
    )
    timeout_seconds: float = Field(
        default=10.0, description="Upper bound for a single provider call"
    )
    page_size: int = Field(
        default=1000, description="Identities requested per provider list page"
    )

    @computed_field
    @property
    def configured(self) -> bool:
        """Whether enough settings are present to talk to the provider."""
        if not self.enabled:
            return False
        if self.kind == "memory":
            return True
        return bool(self.base_url and self.api_key)


class SyncConfig(BaseModel):
    """Push/pull and batch orchestration settings."""

    push_batch_size: int = Field(default=10, ge=1, description="Concurrent pushes per chunk")
    pull_batch_size: int = Field(default=15, ge=1, description="Concurrent pulls per chunk")
    push_chunk_delay_ms: int = Field(
        default=100, ge=0, description="Pause between push chunks"
    )
    pull_chunk_delay_ms: int = Field(
        default=50, ge=0, description="Pause between pull chunks"
    )
    page_size: int = Field(
        default=200, ge=1, description="Local records loaded per page in bulk runs"
    )
    default_roles: list[str] = Field(
        default_factory=lambda: ["customer"],
        description="Roles given to records created from provider identities",
    )
    email_conflict_policy: Literal["overwrite", "preserve_verified"] = Field(
        default="overwrite",
        description=(
            "What a push does when the provider holds a different email: "
            "'overwrite' always sends the local email, 'preserve_verified' keeps "
            "a verified provider email untouched"
        ),
    )


class ReconciliationConfig(BaseModel):
    """Background reconciliation daemon settings."""

    enabled: bool = Field(default=True, description="Create the reconciliation daemon")
    autostart: bool = Field(
        default=True, description="Start the daemon on application startup"
    )
    interval_ms: int = Field(
        default=60000, ge=1, description="Delay between reconciliation passes"
    )


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )


class ConfigData(BaseModel):
    """Root configuration model."""

    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
