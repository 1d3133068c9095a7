"""Unified configuration management: environment variables, validation, environment switching."""
import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mediastream.core.exceptions import ConfigurationException

ENV_PREFIX = "MEDIASTREAM_"


class Environment(Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Log level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class StorageConfig:
    """Media storage layout."""
    storage_path: Path
    media_extension: str = ".mp4"
    media_content_type: str = "video/mp4"


@dataclass
class PipelineConfig:
    """Upload and streaming I/O tuning."""
    upload_chunk_size: int = 2 * 1024 * 1024
    stream_chunk_size: int = 2 * 1024 * 1024
    upload_read_timeout: float = 30.0


@dataclass
class ReclamationConfig:
    """Idle session reclamation policy."""
    sweep_interval: float = 15 * 60
    session_idle_timeout: float = 60 * 60
    sweep_lock_timeout: float = 1.0


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    log_dir: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 10
    enable_file: bool = False


class Settings(BaseSettings):
    """Application settings backed by pydantic-settings."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = Field(default="Media Stream API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Deployment environment")

    # Server
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")

    # Storage
    storage_path: Path = Field(default=Path("./videos"), description="Directory holding media files")
    media_extension: str = Field(default=".mp4", description="Extension appended to file identifiers")
    media_content_type: str = Field(default="video/mp4", description="Content-Type served for media")

    # Upload / streaming I/O
    upload_chunk_size: int = Field(default=2 * 1024 * 1024, ge=1024, le=256 * 1024 * 1024)
    stream_chunk_size: int = Field(default=2 * 1024 * 1024, ge=1024, le=256 * 1024 * 1024)
    upload_read_timeout: float = Field(default=30.0, gt=0, le=3600)

    # Reclamation
    sweep_interval: float = Field(default=15 * 60, gt=0, le=24 * 3600)
    session_idle_timeout: float = Field(default=60 * 60, gt=0, le=7 * 24 * 3600)
    sweep_lock_timeout: float = Field(default=1.0, gt=0, le=60)

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    )
    log_dir: str = Field(default="logs")
    log_enable_file: bool = Field(default=False)
    log_max_file_size: int = Field(default=10 * 1024 * 1024, ge=1024 * 1024, le=1024 * 1024 * 1024)
    log_backup_count: int = Field(default=10, ge=1, le=50)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Accept environment names in any case."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        """Accept log level names in any case."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @field_validator("media_extension")
    @classmethod
    def validate_media_extension(cls, v: str) -> str:
        """Extensions must look like '.mp4'."""
        if not v.startswith(".") or len(v) < 2 or "/" in v or "\\" in v:
            raise ValueError(f"Invalid media extension: {v}")
        return v.lower()

    @model_validator(mode="before")
    @classmethod
    def validate_dependencies(cls, values):
        """Production requires file logging and no debug mode."""
        if not isinstance(values, dict):
            return values
        environment = values.get("environment", Environment.DEVELOPMENT)
        if isinstance(environment, str):
            environment = Environment(environment.lower())

        if environment == Environment.PRODUCTION:
            values["debug"] = False
            if not values.get("log_enable_file", False):
                raise ValueError("Production environment requires file logging enabled")

        return values

    def get_storage_config(self) -> StorageConfig:
        """Storage layout view of the settings."""
        return StorageConfig(
            storage_path=self.storage_path,
            media_extension=self.media_extension,
            media_content_type=self.media_content_type
        )

    def get_pipeline_config(self) -> PipelineConfig:
        """Upload/stream tuning view of the settings."""
        return PipelineConfig(
            upload_chunk_size=self.upload_chunk_size,
            stream_chunk_size=self.stream_chunk_size,
            upload_read_timeout=self.upload_read_timeout
        )

    def get_reclamation_config(self) -> ReclamationConfig:
        """Reclamation policy view of the settings."""
        return ReclamationConfig(
            sweep_interval=self.sweep_interval,
            session_idle_timeout=self.session_idle_timeout,
            sweep_lock_timeout=self.sweep_lock_timeout
        )

    def get_logging_config(self) -> LoggingConfig:
        """Logging view of the settings."""
        return LoggingConfig(
            level=self.log_level,
            format=self.log_format,
            log_dir=self.log_dir,
            max_file_size=self.log_max_file_size,
            backup_count=self.log_backup_count,
            enable_file=self.log_enable_file
        )


class ConfigManager:
    """Configuration manager (singleton)."""

    _instance: Optional['ConfigManager'] = None
    _settings: Optional[Settings] = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_file: Optional[str] = None):
        if hasattr(self, '_initialized'):
            return

        self._initialized = True
        self.config_file = config_file or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

        self._load_settings()

    def _load_settings(self):
        """Load settings, optionally seeding the environment from a YAML file."""
        try:
            if self.config_file and Path(self.config_file).exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config_data = yaml.safe_load(f) or {}

                for key, value in config_data.items():
                    env_key = f"{ENV_PREFIX}{key.upper()}"
                    if isinstance(value, (dict, list)):
                        os.environ[env_key] = json.dumps(value)
                    else:
                        os.environ[env_key] = str(value)

            self._settings = Settings()
            self._validate_settings()

        except ConfigurationException:
            raise
        except Exception as e:
            raise ConfigurationException(f"Failed to load settings: {str(e)}")

    def _validate_settings(self):
        if not self._settings:
            raise ConfigurationException("Settings not loaded")

        if not str(self._settings.storage_path):
            raise ConfigurationException("Required configuration missing: storage_path", config_key="storage_path")

        if self._settings.environment == Environment.PRODUCTION and self._settings.debug:
            raise ConfigurationException("Debug mode should be disabled in production", config_key="debug")

    @property
    def settings(self) -> Settings:
        if not self._settings:
            raise ConfigurationException("Settings not initialized")
        return self._settings

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self.settings, key, default)

    def reload(self):
        """Re-read settings; services already built keep the values they were built with."""
        self._load_settings()

    def export_config(self, format: Literal['yaml', 'json', 'env'] = 'yaml') -> str:
        """Export the current configuration."""
        config_dict = self.settings.model_dump(mode="json")

        if format == 'json':
            return json.dumps(config_dict, indent=2, ensure_ascii=False)
        elif format == 'env':
            lines = []
            for key, value in config_dict.items():
                env_key = f"{ENV_PREFIX}{key.upper()}"
                if isinstance(value, (dict, list)):
                    lines.append(f"{env_key}='{json.dumps(value)}'")
                else:
                    lines.append(f"{env_key}={value}")
            return "\n".join(lines)
        else:
            return yaml.dump(config_dict, default_flow_style=False, allow_unicode=True)


# Global configuration manager instance
config_manager = ConfigManager()
