"""
Shapewire - Core Module

Configuration, exception taxonomy and structured logging shared by the
protocol and endpoint layers.
"""

from .config import Config, ProtocolConfig, RegionsConfig, EventStreamConfig, get_config
from .exceptions import (
    ShapewireException,
    ConfigurationError,
    MarshallingError,
    UnmarshallingError,
    EventStreamError,
    UnknownEventTypeError,
    ServiceError,
)

__all__ = [
    "Config",
    "ProtocolConfig",
    "RegionsConfig",
    "EventStreamConfig",
    "get_config",
    "ShapewireException",
    "ConfigurationError",
    "MarshallingError",
    "UnmarshallingError",
    "EventStreamError",
    "UnknownEventTypeError",
    "ServiceError",
]
