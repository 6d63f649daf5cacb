"""
Protocols Module

Shape-driven wire protocol support:
- Shape model and operation bindings
- JSON, XML and Query codecs
- Protocol marshallers, unmarshallers and response handling
- Event-stream tagged-union dispatch
- Service model loading
"""

from shapewire.protocols.shapes import (
    ShapeKind,
    Location,
    Member,
    Shape,
    OperationBinding,
)
from shapewire.protocols.http import HttpRequest, HttpResponse
from shapewire.protocols.codecs import JsonCodec, XmlCodec, QueryCodec
from shapewire.protocols.marshaller import (
    ProtocolMarshaller,
    JsonProtocolMarshaller,
    RestJsonProtocolMarshaller,
    XmlProtocolMarshaller,
    QueryProtocolMarshaller,
)
from shapewire.protocols.unmarshaller import (
    ProtocolUnmarshaller,
    JsonProtocolUnmarshaller,
    XmlProtocolUnmarshaller,
    QueryProtocolUnmarshaller,
    ResponseHandler,
)
from shapewire.protocols.event_stream import (
    EventStreamMessage,
    EventStreamEnvelope,
    EventHandler,
    EventStreamTaggedUnionMarshaller,
    EventStreamTaggedUnionUnmarshaller,
)
from shapewire.protocols.factory import ProtocolFactory, marshall, unmarshall
from shapewire.protocols.model import ServiceModel

__all__ = [
    "ShapeKind",
    "Location",
    "Member",
    "Shape",
    "OperationBinding",
    "HttpRequest",
    "HttpResponse",
    "JsonCodec",
    "XmlCodec",
    "QueryCodec",
    "ProtocolMarshaller",
    "JsonProtocolMarshaller",
    "RestJsonProtocolMarshaller",
    "XmlProtocolMarshaller",
    "QueryProtocolMarshaller",
    "ProtocolUnmarshaller",
    "JsonProtocolUnmarshaller",
    "XmlProtocolUnmarshaller",
    "QueryProtocolUnmarshaller",
    "ResponseHandler",
    "EventStreamMessage",
    "EventStreamEnvelope",
    "EventHandler",
    "EventStreamTaggedUnionMarshaller",
    "EventStreamTaggedUnionUnmarshaller",
    "ProtocolFactory",
    "marshall",
    "unmarshall",
    "ServiceModel",
]
