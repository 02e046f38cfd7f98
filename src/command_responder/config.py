"""
Configuration management for the command responder.

Two layers live here:

* ``Settings`` - process settings (listen address, config file path, logging)
  loaded from environment variables and overridden by CLI flags.
* ``ResponderConfig`` - the responder defaults loaded from the YAML config
  file. Alerts override most of these through annotations.

``SafeConfig`` owns the current ``ResponderConfig`` and swaps it wholesale on
reload, so a reader always sees either the old or the new config in full.
"""

import getpass
import threading
from datetime import timedelta
from typing import Any, List, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_serializer, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .utils import file_exists, format_duration, parse_duration

logger = structlog.get_logger(__name__)

DEFAULT_SSH_CONNECTION_TIMEOUT = timedelta(seconds=5)
DEFAULT_SSH_COMMAND_TIMEOUT = timedelta(seconds=10)
DEFAULT_LOCAL_COMMAND_TIMEOUT = timedelta(seconds=10)

_TIMEOUT_DEFAULTS = {
    "ssh_connection_timeout": DEFAULT_SSH_CONNECTION_TIMEOUT,
    "ssh_command_timeout": DEFAULT_SSH_COMMAND_TIMEOUT,
    "local_command_timeout": DEFAULT_LOCAL_COMMAND_TIMEOUT,
}


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RESPONDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=10000, description="Server port")

    # Responder Configuration
    config_file: str = Field(
        default="alertmanager-command-responder.yaml",
        description="Path to the responder YAML config file",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log renderer: json or console")

    @property
    def listen_address(self) -> str:
        """Get the full listen address."""
        return f"{self.host}:{self.port}"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.log_level.upper() == "DEBUG"


class ResponderConfig(BaseModel):
    """Responder defaults loaded from the YAML config file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ssh_user: str = Field(default="", validate_default=True, description="Default SSH user")
    ssh_key: str = Field(default="", description="Default SSH private key path")
    ssh_password: Optional[SecretStr] = Field(default=None, description="SSH password")
    ssh_certificate: str = Field(default="", description="Default SSH certificate path")
    ssh_known_hosts: str = Field(default="", description="SSH known hosts file, empty disables host key checks")
    ssh_host_key_algorithms: List[str] = Field(default_factory=list, description="Accepted host key algorithms")
    ssh_connection_timeout: timedelta = Field(default=DEFAULT_SSH_CONNECTION_TIMEOUT)
    ssh_command_timeout: timedelta = Field(default=DEFAULT_SSH_COMMAND_TIMEOUT)
    local_command_timeout: timedelta = Field(default=DEFAULT_LOCAL_COMMAND_TIMEOUT)

    @field_validator("ssh_user", mode="before")
    @classmethod
    def _default_user(cls, value: Any) -> Any:
        if not value:
            try:
                return getpass.getuser()
            except (OSError, KeyError) as e:
                raise ValueError(f"error getting current user: {e}") from e
        return value

    @field_validator("ssh_key", "ssh_certificate", "ssh_known_hosts", mode="before")
    @classmethod
    def _empty_path(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("ssh_host_key_algorithms", mode="before")
    @classmethod
    def _empty_algorithms(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("ssh_connection_timeout", "ssh_command_timeout", "local_command_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any, info) -> timedelta:
        default = _TIMEOUT_DEFAULTS[info.field_name]
        if value is None or value == "":
            return default
        timeout = parse_duration(value)
        if timeout == timedelta(0):
            return default
        return timeout

    @model_validator(mode="after")
    def _check_files(self) -> "ResponderConfig":
        if self.ssh_key and not file_exists(self.ssh_key):
            raise ValueError(f"SSH key does not exist: {self.ssh_key}")
        if self.ssh_certificate and not file_exists(self.ssh_certificate):
            raise ValueError(f"SSH certificate does not exist: {self.ssh_certificate}")
        if self.ssh_known_hosts and not file_exists(self.ssh_known_hosts):
            raise ValueError(f"SSH known hosts does not exist: {self.ssh_known_hosts}")
        return self

    @field_serializer("ssh_connection_timeout", "ssh_command_timeout", "local_command_timeout")
    def _serialize_timeout(self, value: timedelta) -> str:
        return format_duration(value)

    @property
    def ssh_password_value(self) -> str:
        """The SSH password in clear text, empty when unset."""
        return self.ssh_password.get_secret_value() if self.ssh_password else ""


def load_config(path: str) -> ResponderConfig:
    """
    Read and validate the responder config file.

    An empty file yields all defaults. Unknown fields, unparsable durations
    and key, certificate or known hosts paths that do not exist are errors.

    Raises:
        ConfigError: if the file cannot be read, parsed or validated
    """
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigError(f"Unable to read config file {path}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Unable to parse config file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    try:
        return ResponderConfig(**data)
    except ValidationError as e:
        messages = "; ".join(_describe(error) for error in e.errors())
        raise ConfigError(f"Invalid config file {path}: {messages}") from e


def _describe(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "")
    if error.get("type") == "extra_forbidden":
        return f"field {location} not found in config"
    if location:
        return f"{location}: {message}"
    return message


class SafeConfig:
    """Holds the current ``ResponderConfig`` and reloads it from disk."""

    def __init__(self, path: str, config: Optional[ResponderConfig] = None):
        self.path = path
        self._lock = threading.Lock()
        self._config = config

    @property
    def current(self) -> ResponderConfig:
        """The config in effect right now."""
        with self._lock:
            config = self._config
        if config is None:
            raise ConfigError("Configuration has not been loaded")
        return config

    def replace(self, config: ResponderConfig) -> None:
        """Swap in a fully built config."""
        with self._lock:
            self._config = config

    def read_config(self) -> ResponderConfig:
        """
        Load the config file and make it current.

        The new config is built before the lock is taken; on failure the
        previous config stays in effect and the error is raised.
        """
        logger.info("Reading config", path=self.path)
        try:
            config = load_config(self.path)
        except ConfigError as e:
            logger.error("Error loading config file", path=self.path, error=str(e))
            raise

        self.replace(config)
        logger.debug("Parsed config", path=self.path, config=config.model_dump(mode="json"))
        return config


# Global settings instance
settings = Settings()
