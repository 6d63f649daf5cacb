"""
Shapewire - Configuration Management

This module provides configuration for the protocol, event-stream and
endpoint layers, loaded from YAML files or environment variables.
"""

import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from pathlib import Path
from enum import Enum
import logging

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Environment types for configuration."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ProtocolConfig:
    """Wire protocol settings shared by marshallers and unmarshallers."""

    json_version: str = "1.1"
    # Unknown response fields are dropped silently unless this is set.
    log_unknown_fields: bool = False
    xml_namespace: Optional[str] = None
    empty_json_body: bytes = b"{}"


@dataclass
class RegionsConfig:
    """Endpoint resolution settings."""

    default_dns_suffix: str = "amazonaws.com"
    endpoint_scheme: str = "https"
    partitions_file: Optional[str] = None


@dataclass
class EventStreamConfig:
    """Event stream settings."""

    log_unknown_events: bool = True
    default_content_type: str = "application/json"


@dataclass
class Config:
    """Main configuration class."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    service_name: str = "shapewire"
    version: str = "1.0.0"

    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    regions: RegionsConfig = field(default_factory=RegionsConfig)
    event_stream: EventStreamConfig = field(default_factory=EventStreamConfig)

    @classmethod
    def load_from_file(cls, config_path: Union[str, Path]) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {config_path}"
            )

        return cls._from_dict(config_data)

    @classmethod
    def load_from_env(cls, prefix: str = "SHAPEWIRE_") -> "Config":
        """Load configuration from environment variables."""
        config = cls()

        config.environment = Environment(
            os.getenv(f"{prefix}ENVIRONMENT", config.environment.value)
        )
        config.debug = os.getenv(f"{prefix}DEBUG", str(config.debug)).lower() == "true"
        config.log_level = LogLevel(
            os.getenv(f"{prefix}LOG_LEVEL", config.log_level.value).upper()
        )

        config.protocol.json_version = os.getenv(
            f"{prefix}JSON_VERSION", config.protocol.json_version
        )
        config.protocol.log_unknown_fields = (
            os.getenv(
                f"{prefix}LOG_UNKNOWN_FIELDS", str(config.protocol.log_unknown_fields)
            ).lower()
            == "true"
        )

        config.regions.default_dns_suffix = os.getenv(
            f"{prefix}DNS_SUFFIX", config.regions.default_dns_suffix
        )
        config.regions.endpoint_scheme = os.getenv(
            f"{prefix}ENDPOINT_SCHEME", config.regions.endpoint_scheme
        )
        if os.getenv(f"{prefix}PARTITIONS_FILE"):
            config.regions.partitions_file = os.getenv(f"{prefix}PARTITIONS_FILE")

        return config

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        config = cls()

        try:
            if "environment" in data:
                config.environment = Environment(data["environment"])
            if "debug" in data:
                config.debug = bool(data["debug"])
            if "log_level" in data:
                config.log_level = LogLevel(str(data["log_level"]).upper())
            if "service_name" in data:
                config.service_name = data["service_name"]

            if "protocol" in data:
                protocol_data = dict(data["protocol"])
                if isinstance(protocol_data.get("empty_json_body"), str):
                    protocol_data["empty_json_body"] = protocol_data["empty_json_body"].encode("utf-8")
                config.protocol = ProtocolConfig(**protocol_data)
            if "regions" in data:
                config.regions = RegionsConfig(**data["regions"])
            if "event_stream" in data:
                config.event_stream = EventStreamConfig(**data["event_stream"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.environment.value,
            "debug": self.debug,
            "log_level": self.log_level.value,
            "service_name": self.service_name,
            "version": self.version,
            "protocol": {
                "json_version": self.protocol.json_version,
                "log_unknown_fields": self.protocol.log_unknown_fields,
                "xml_namespace": self.protocol.xml_namespace,
                "empty_json_body": self.protocol.empty_json_body.decode("utf-8"),
            },
            "regions": {
                "default_dns_suffix": self.regions.default_dns_suffix,
                "endpoint_scheme": self.regions.endpoint_scheme,
                "partitions_file": self.regions.partitions_file,
            },
            "event_stream": {
                "log_unknown_events": self.event_stream.log_unknown_events,
                "default_content_type": self.event_stream.default_content_type,
            },
        }

    def validate(self) -> None:
        """Validate configuration settings."""
        errors = []

        if self.protocol.json_version not in ("1.0", "1.1"):
            errors.append(
                f"Unsupported JSON protocol version: {self.protocol.json_version}"
            )
        if not self.regions.default_dns_suffix:
            errors.append("Default DNS suffix must not be empty")
        if self.regions.endpoint_scheme not in ("http", "https"):
            errors.append(
                f"Endpoint scheme must be http or https, got {self.regions.endpoint_scheme}"
            )
        if not self.event_stream.default_content_type:
            errors.append("Event stream content type must not be empty")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load_from_env()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    config.validate()
    _config = config


def load_config(config_path: Union[str, Path]) -> Config:
    """Load and set configuration from file."""
    config = Config.load_from_file(config_path)
    set_config(config)
    return config
