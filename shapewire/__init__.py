"""
Shapewire

Shape-driven marshalling of typed requests and responses for AWS-style
wire protocols (aws-json, REST-JSON, REST-XML and Query), event-stream
dispatch, and region endpoint resolution.
"""

from shapewire.core import (
    Config,
    ShapewireException,
    ConfigurationError,
    MarshallingError,
    UnmarshallingError,
    EventStreamError,
    UnknownEventTypeError,
    ServiceError,
    get_config,
)
from shapewire.protocols import (
    ShapeKind,
    Location,
    Member,
    Shape,
    OperationBinding,
    HttpRequest,
    HttpResponse,
    ProtocolFactory,
    ServiceModel,
    EventStreamMessage,
    EventStreamEnvelope,
    marshall,
    unmarshall,
)
from shapewire.regions import EndpointResolver, Partitions, ServiceMetadata

__version__ = "1.0.0"

__all__ = [
    "Config",
    "get_config",
    "ShapewireException",
    "ConfigurationError",
    "MarshallingError",
    "UnmarshallingError",
    "EventStreamError",
    "UnknownEventTypeError",
    "ServiceError",
    "ShapeKind",
    "Location",
    "Member",
    "Shape",
    "OperationBinding",
    "HttpRequest",
    "HttpResponse",
    "ProtocolFactory",
    "ServiceModel",
    "EventStreamMessage",
    "EventStreamEnvelope",
    "marshall",
    "unmarshall",
    "EndpointResolver",
    "Partitions",
    "ServiceMetadata",
]
