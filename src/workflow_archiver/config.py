"""Configuration management using YAML and Pydantic."""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from workflow_archiver.exceptions import ConfigurationError

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _substitute_env_vars(value: str) -> str:
    """Expand ${VAR} and ${VAR:-default} references in a string.

    Raises:
        ValueError: If a referenced variable is unset and has no default
    """

    def replacer(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        env_value = os.getenv(name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        raise ValueError(f"Environment variable {name} not set and no default provided")

    return _ENV_PATTERN.sub(replacer, value)


def _substitute_env_in_dict(data: Any) -> Any:
    """Recursively expand environment references in a parsed YAML document."""
    if isinstance(data, dict):
        return {key: _substitute_env_in_dict(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_substitute_env_in_dict(item) for item in data]
    if isinstance(data, str):
        return _substitute_env_vars(data)
    return data


class DatabaseConfig(BaseModel):
    """Workflow database connection settings."""

    dsn: Optional[str] = Field(
        default=None,
        description="Full connection URI (overrides host/port/name/user/password)",
    )
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port", gt=0, lt=65536)
    name: str = Field(default="workflow", description="Database name")
    user: Optional[str] = Field(default=None, description="Database login")
    password_env: Optional[str] = Field(
        default=None,
        description="Environment variable name containing database password (preferred)",
    )
    password: Optional[str] = Field(
        default=None,
        description="Database password (development only - use password_env in production)",
    )
    connection_pool_size: int = Field(
        default=1,
        description="Connection pool size; the archiver checks out one connection at a time",
        gt=0,
        le=10,
    )
    command_timeout: float = Field(
        default=60.0,
        description="Per-statement timeout in seconds",
        gt=0,
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "DatabaseConfig":
        """Require either a DSN or a user with exactly one password source."""
        if self.dsn:
            return self
        if not self.user:
            raise ValueError("Either 'dsn' or 'user' must be provided")
        if self.password_env and self.password:
            raise ValueError(
                "Cannot specify both 'password_env' and 'password'. "
                "Use 'password_env' for production (recommended) or 'password' for development only."
            )
        if not self.password_env and not self.password:
            raise ValueError("Either 'password_env' or 'password' must be provided")
        return self

    def get_password(self) -> str:
        """Get password from environment variable or config file.

        Raises:
            ValueError: If password cannot be retrieved
        """
        if self.password_env:
            password = os.getenv(self.password_env)
            if not password:
                raise ValueError(f"Environment variable {self.password_env} not set")
            return password
        if self.password:
            import warnings

            warnings.warn(
                f"Using password from config file for database '{self.name}'. "
                f"This is not recommended for production. Use 'password_env' instead.",
                UserWarning,
                stacklevel=2,
            )
            return self.password
        raise ValueError("No password source configured")


class VersionServiceConfig(BaseModel):
    """Object version lookup service settings."""

    uri: str = Field(description="Base URI of the object service")
    timeout_seconds: float = Field(default=30.0, description="Request timeout", gt=0)
    not_found_pattern: str = Field(
        default=r"Unable to find .* in fedora",
        description="Regex matched against an error body that means the object has no version yet",
    )

    @field_validator("uri")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("not_found_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid not_found_pattern: {e}") from e
        return v


class TablesConfig(BaseModel):
    """Active and archive table names."""

    model_config = {"populate_by_name": True}

    workflow: str = Field(default="workflow", description="Active workflow table")
    workflow_archive: str = Field(
        default="workflow_archive", description="Workflow archive table"
    )
    schema_name: str = Field(default="public", description="Schema name", alias="schema")


class IndexConfig(BaseModel):
    """A secondary index on the archive table suspended during a run."""

    name: str = Field(description="Index name")
    column: str = Field(description="Indexed column")


def _default_indexes() -> list[IndexConfig]:
    return [
        IndexConfig(name="ds_wf_ar_bitmap_idx", column="datastream"),
        IndexConfig(name="repo_wf_ar_bitmap_idx", column="repository"),
    ]


class ArchiveConfig(BaseModel):
    """Archival run behaviour."""

    retry_delay: float = Field(
        default=5.0,
        description="Seconds to sleep between attempts on the same unit",
        ge=0,
    )
    max_attempts: int = Field(
        default=3, description="Attempts per unit before it is abandoned", ge=1
    )
    error_budget: int = Field(
        default=3, description="Abandoned units after which the run halts", ge=1
    )
    batch_limit: int = Field(
        default=600, description="Maximum units processed per run", gt=0
    )
    suspend_indexes: bool = Field(
        default=True,
        description="Drop archive-table indexes for the duration of the run",
    )
    indexes: list[IndexConfig] = Field(default_factory=_default_indexes)


class MonitoringConfig(BaseModel):
    """Monitoring and metrics configuration."""

    metrics_enabled: bool = Field(default=False, description="Collect Prometheus metrics")
    metrics_textfile: Optional[Path] = Field(
        default=None,
        description="Write metrics to this file for the node exporter textfile collector",
    )


class ArchiverConfig(BaseModel):
    """Root configuration model."""

    version: str = Field(default="1.0", description="Configuration version")
    database: DatabaseConfig = Field(description="Workflow database")
    version_service: VersionServiceConfig = Field(description="Object version service")
    tables: TablesConfig = Field(default_factory=TablesConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v != "1.0":
            raise ValueError(f"Unsupported configuration version: {v}")
        return v


def load_config(config_path: Path) -> ArchiverConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated configuration object

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    try:
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

    if not raw_config:
        raise ConfigurationError("Configuration file is empty")

    try:
        config_data = _substitute_env_in_dict(raw_config)
        return ArchiverConfig.model_validate(config_data)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError subclass
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            context={"path": str(config_path)},
        ) from e
