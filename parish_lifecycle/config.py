"""
Configuration module for the Parish Lifecycle toolkit.

Provides centralized configuration for the record lifecycle, trash and audit
trail features.
"""

import logging
import sys
from enum import Enum
from typing import Any, Dict, Optional, Union, get_args, get_origin

import pytz
from pydantic import BaseModel, Field, field_validator


class StorageBackend(str, Enum):
    """Supported storage backends for the trash registry and audit trail."""

    SQL = "sql"
    MEMORY = "memory"


class LifecycleConfig(BaseModel):
    """Central configuration for record lifecycle operations.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (PARISH_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = LifecycleConfig(
        ...     database_url="postgresql://parish@db/parish",
        ...     step_timeout_seconds=15,
        ... )

        Loading from environment:

        >>> import os
        >>> os.environ['PARISH_STEP_TIMEOUT_SECONDS'] = '15'
        >>> config = LifecycleConfig.from_env()

    Note:
        ``storage_public_url_base`` must match the prefix the object store
        hands out for public objects, otherwise purge cannot find the files
        a trashed record owns.
    """

    # General settings
    application_name: str = Field(
        "Parish Console", description="Name of the application"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )
    log_level: str = Field("INFO", description="Log level used by the CLI")
    timezone: str = Field(
        "UTC", description="Timezone the CLI shows timestamps in (stored as UTC)"
    )

    # Storage settings
    storage_backend: StorageBackend = Field(
        StorageBackend.SQL, description="Backend for trash and audit storage"
    )
    database_url: str = Field(
        "sqlite:///parish.db", description="Relational store connection string"
    )

    # Object storage settings
    storage_public_url_base: str = Field(
        "http://localhost:54321/storage/v1/object/public",
        description="Prefix of public object URLs (without bucket)",
    )
    storage_api_url: Optional[str] = Field(
        None, description="Base URL of the object storage REST API"
    )
    storage_api_key: Optional[str] = Field(
        None, description="Service key for the object storage REST API"
    )
    storage_root: str = Field(
        "./storage", description="Root directory for local object storage"
    )
    default_attachment_bucket: str = Field(
        "booking-documents", description="Bucket for attachments stored as paths"
    )
    scan_untyped_attachments: bool = Field(
        True,
        description="Scan all string fields for public URLs on tables "
        "without declared attachment fields",
    )

    # Lifecycle settings
    cascade_delete_enabled: bool = Field(
        True, description="Cascade soft deletes to sacrament documents"
    )
    step_timeout_seconds: float = Field(
        30.0, description="Timeout for a single lifecycle step", gt=0, le=600
    )
    deletion_reason_min_length: int = Field(
        0, description="Minimum length for deletion reasons (0 disables)", ge=0
    )
    audit_list_limit: int = Field(
        100, description="Default number of audit entries listed", gt=0, le=10000
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is one the logging module knows."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Ensure the timezone name is known to pytz."""
        try:
            pytz.timezone(v)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("storage_public_url_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "PARISH_") -> "LifecycleConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]

            field_type = field_info.annotation

            # Handle Optional types
            if get_origin(field_type) is Union:
                args = get_args(field_type)
                field_type = next((arg for arg in args if arg is not type(None)), str)

            try:
                if field_type == bool:
                    config_dict[field_name] = value.lower() in (
                        "true",
                        "1",
                        "yes",
                        "on",
                    )
                elif field_type == int:
                    config_dict[field_name] = int(value)
                elif field_type == float:
                    config_dict[field_name] = float(value)
                elif isinstance(field_type, type) and issubclass(field_type, Enum):
                    config_dict[field_name] = field_type(value)
                else:
                    config_dict[field_name] = value
            except (ValueError, TypeError):
                # Let pydantic report the bad raw value
                config_dict[field_name] = value

        return cls.model_validate(config_dict)


# Global configuration instance
_config: Optional[LifecycleConfig] = None


def get_config() -> LifecycleConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = LifecycleConfig.from_env()

    return _config


def set_config(config: LifecycleConfig) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> LifecycleConfig:
    """
    Configure the lifecycle subsystem with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = LifecycleConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = LifecycleConfig(**config_dict)

    return _config


def configure_logging(
    level: Optional[str] = None, handler: Optional[logging.Handler] = None
) -> None:
    """
    Set the package log level and attach a handler once.

    Args:
        level: Log level name; the configured ``log_level`` when omitted
        handler: Handler to attach; a plain stderr handler when omitted
    """
    root = logging.getLogger("parish_lifecycle")
    root.setLevel(getattr(logging, (level or get_config().log_level).upper()))
    if root.handlers:
        return
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root.addHandler(handler)
