"""
Shapewire - Protocol Factory

Builds the marshaller, unmarshaller, response handler and event-stream
dispatchers for one service protocol. A factory holds the codecs and the
service-level wire metadata (target prefix, API version, JSON version);
everything it hands out is immutable after construction and safe to share.
"""

import logging
from typing import Any, Mapping, Optional

from ..core.config import Config, get_config
from ..core.exceptions import ConfigurationError
from .codecs import JsonCodec, QueryCodec, XmlCodec
from .event_stream import (
    EventStreamTaggedUnionMarshaller,
    EventStreamTaggedUnionUnmarshaller,
    handlers_for,
)
from .http import HttpRequest, HttpResponse
from .marshaller import (
    JsonProtocolMarshaller,
    ProtocolMarshaller,
    QueryProtocolMarshaller,
    RestJsonProtocolMarshaller,
    XmlProtocolMarshaller,
)
from .shapes import OperationBinding, Shape
from .unmarshaller import (
    JsonProtocolUnmarshaller,
    ProtocolUnmarshaller,
    QueryProtocolUnmarshaller,
    ResponseHandler,
    XmlProtocolUnmarshaller,
)

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOLS = ("json", "rest-json", "rest-xml", "query")


class ProtocolFactory:
    """Creates protocol components for one service."""

    def __init__(
        self,
        protocol: str,
        config: Optional[Config] = None,
        target_prefix: Optional[str] = None,
        api_version: Optional[str] = None,
        json_version: Optional[str] = None,
    ):
        if protocol not in SUPPORTED_PROTOCOLS:
            raise ConfigurationError(
                f"Unsupported protocol '{protocol}'. Supported: {', '.join(SUPPORTED_PROTOCOLS)}",
                config_key="protocol",
            )
        if protocol == "query" and not api_version:
            raise ConfigurationError("Query protocol requires an API version", config_key="api_version")

        self.protocol = protocol
        self.config = config or get_config()
        self.target_prefix = target_prefix
        self.api_version = api_version
        self.json_version = json_version or self.config.protocol.json_version

        protocol_config = self.config.protocol
        if protocol in ("json", "rest-json"):
            self.codec = JsonCodec(protocol_config)
        else:
            self.codec = XmlCodec(protocol_config)
        self.query_codec = QueryCodec(protocol_config) if protocol == "query" else None

        logger.debug(f"Created {protocol} protocol factory")

    def create_protocol_marshaller(self, binding: OperationBinding, endpoint: Optional[str] = None) -> ProtocolMarshaller:
        protocol_config = self.config.protocol
        if self.protocol == "json":
            return JsonProtocolMarshaller(
                binding,
                self.codec,
                protocol_config,
                target_prefix=self.target_prefix,
                json_version=self.json_version,
                endpoint=endpoint,
            )
        if self.protocol == "rest-json":
            return RestJsonProtocolMarshaller(binding, self.codec, protocol_config, endpoint=endpoint)
        if self.protocol == "rest-xml":
            return XmlProtocolMarshaller(binding, self.codec, protocol_config, endpoint=endpoint)
        return QueryProtocolMarshaller(
            binding, self.api_version, self.query_codec, protocol_config, endpoint=endpoint
        )

    def create_unmarshaller(self, binding: Optional[OperationBinding] = None) -> ProtocolUnmarshaller:
        operation = binding.name if binding else None
        use_root_element = binding.use_root_element if binding else False
        protocol_config = self.config.protocol

        if self.protocol in ("json", "rest-json"):
            return JsonProtocolUnmarshaller(
                self.codec, protocol_config, operation, use_root_element, protocol=self.protocol
            )
        if self.protocol == "rest-xml":
            return XmlProtocolUnmarshaller(self.codec, protocol_config, operation, use_root_element)
        return QueryProtocolUnmarshaller(self.codec, protocol_config, operation, use_root_element)

    def create_response_handler(self, binding: OperationBinding) -> ResponseHandler:
        return ResponseHandler(self.create_unmarshaller(binding), binding.output_shape, binding.name)

    def _default_handlers(self, union_shape: Shape):
        content_type = None
        if isinstance(self.codec, JsonCodec):
            content_type = self.config.event_stream.default_content_type
        return handlers_for(union_shape, self.codec, content_type)

    def create_event_stream_marshaller(
        self,
        union_shape: Shape,
        handlers: Optional[Mapping[str, Any]] = None,
        operation: Optional[str] = None,
    ) -> EventStreamTaggedUnionMarshaller:
        if handlers is None:
            handlers = self._default_handlers(union_shape)
        return EventStreamTaggedUnionMarshaller(
            union_shape, handlers, self.config.event_stream, operation=operation
        )

    def create_event_stream_unmarshaller(
        self,
        union_shape: Shape,
        handlers: Optional[Mapping[str, Any]] = None,
        operation: Optional[str] = None,
    ) -> EventStreamTaggedUnionUnmarshaller:
        if handlers is None:
            handlers = self._default_handlers(union_shape)
        return EventStreamTaggedUnionUnmarshaller(
            union_shape, handlers, self.config.event_stream, operation=operation
        )


def marshall(request: Any, binding: OperationBinding, factory: ProtocolFactory) -> HttpRequest:
    """Marshall one request for ``binding``."""
    return factory.create_protocol_marshaller(binding).marshall(request)


def unmarshall(response: HttpResponse, shape: Optional[Shape], factory: ProtocolFactory) -> Any:
    """Unmarshall one response into ``shape``."""
    return factory.create_unmarshaller().unmarshall(response, shape)
