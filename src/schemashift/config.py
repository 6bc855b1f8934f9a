"""
Configuration system for schemashift using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError


class MutationConfig(BaseModel):
    """Defaults for table mutation requests."""

    online_algorithm_hint: bool = Field(
        False, description="Append ALGORITHM=INPLACE, LOCK=NONE to column changes"
    )
    preview_only: bool = Field(
        False, description="Plan statements without executing them"
    )
    guarded_index_kinds: List[Literal["primary", "unique", "index"]] = Field(
        default_factory=lambda: ["primary", "unique"],
        description="Index classes whose columns skip the collation pre-step",
    )
    intermediate_type: str = Field(
        "BLOB", description="Type used to park columns during a collation change"
    )

    @field_validator("intermediate_type")
    @classmethod
    def validate_intermediate_type(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Intermediate type is required")
        return v.strip().upper()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class SchemaShiftConfig(BaseSettings):
    """Main schemashift configuration."""

    service_name: str = Field("schemashift", description="Service name")
    debug: bool = Field(False, description="Enable debug mode")

    database: Optional[ConnectionConfig] = Field(
        None, description="Store connection"
    )
    mutation: MutationConfig = Field(
        default_factory=MutationConfig, description="Mutation defaults"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SCHEMASHIFT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SchemaShiftConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def require_database(self) -> ConnectionConfig:
        """Get the connection configuration or fail if none is set."""
        if self.database is None:
            raise ConfigurationError("No database connection configured")
        return self.database

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True, mode="json"),
                f,
                default_flow_style=False,
                indent=2,
            )


def configure_logging(config: LoggingConfig) -> None:
    """Install a root handler according to the logging configuration."""
    if config.file:
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            config.file,
            maxBytes=config.max_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(config.format))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(config.level)
