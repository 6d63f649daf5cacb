"""
Shapewire - Protocol Marshallers

Turns a typed request object plus an OperationBinding into an HttpRequest.
Members bound to the URI, query string and headers are written first; the
body is then produced by the protocol variant (aws-json, REST-JSON,
REST-XML or Query). Any failure is reported as a MarshallingError carrying
the operation name, and no partially built request is ever returned.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode

from prometheus_client import Counter, Histogram

from ..core.config import ProtocolConfig
from ..core.exceptions import ConfigurationError, MarshallingError
from ..core.structured_logging import LogContext, PerformanceLogger
from .codecs import (
    ISO8601,
    RFC822,
    BaseCodec,
    JsonCodec,
    QueryCodec,
    XmlCodec,
    get_member_value,
    scalar_to_string,
)
from .http import HttpRequest, expand_uri_template, split_request_uri
from .shapes import Location, Member, OperationBinding, ShapeKind

# Metrics for marshalling operations
MARSHALL_COUNTER = Counter(
    'shapewire_marshall_total',
    'Total requests marshalled',
    ['protocol', 'status']
)

MARSHALL_DURATION = Histogram(
    'shapewire_marshall_duration_seconds',
    'Request marshalling duration',
    ['protocol']
)

logger = logging.getLogger(__name__)
performance = PerformanceLogger(logger)


class ProtocolMarshaller(ABC):
    """Base marshaller: location bindings plus a protocol-specific body."""

    protocol = "base"
    # aws-json and Query put every member in the body.
    binds_locations = True

    def __init__(
        self,
        binding: OperationBinding,
        codec: BaseCodec,
        config: Optional[ProtocolConfig] = None,
        endpoint: Optional[str] = None,
    ):
        self.binding = binding
        self.codec = codec
        self.config = config or ProtocolConfig()
        self.endpoint = endpoint

        if binding.input_shape is not None:
            codec.validate_writable(binding.input_shape)

    def marshall(self, request: Any) -> HttpRequest:
        """Marshall ``request`` into an HttpRequest for this operation."""
        start_time = time.time()
        context = LogContext(operation=self.binding.name, protocol=self.protocol)

        try:
            if request is None:
                raise ValueError("Request must not be None")

            with performance.time_operation(f"marshall.{self.binding.name}", context):
                http_request = self._marshall(request)

        except ConfigurationError:
            MARSHALL_COUNTER.labels(protocol=self.protocol, status='error').inc()
            raise
        except Exception as e:
            logger.error(f"Failed to marshall {self.binding.name} request: {e}")
            MARSHALL_COUNTER.labels(protocol=self.protocol, status='error').inc()
            raise MarshallingError(
                f"Unable to marshall request to {self.protocol}: {e}",
                operation=self.binding.name,
            ) from e

        MARSHALL_COUNTER.labels(protocol=self.protocol, status='success').inc()
        MARSHALL_DURATION.labels(protocol=self.protocol).observe(time.time() - start_time)
        return http_request

    def _marshall(self, request: Any) -> HttpRequest:
        binding = self.binding
        path_template, literal_query = split_request_uri(binding.request_uri)
        http_request = HttpRequest(
            method=binding.http_method,
            query=list(literal_query),
            endpoint=self.endpoint,
        )

        labels: Dict[str, str] = {}
        if self.binds_locations and binding.input_shape is not None:
            for member in binding.input_shape.members:
                value = get_member_value(request, member)
                if value is None:
                    continue
                if member.location is Location.URI:
                    labels[member.wire_name] = scalar_to_string(value, member.shape, ISO8601)
                elif member.location is Location.QUERYSTRING:
                    http_request.query.extend(self._query_params(member, value))
                elif member.location is Location.HEADER:
                    http_request.headers.update(self._header_values(member, value))

        try:
            http_request.path = expand_uri_template(path_template, labels)
        except KeyError as e:
            raise ValueError(f"No value for URI label {e}") from e

        self._write_body(http_request, request)
        return http_request

    @staticmethod
    def _query_params(member: Member, value: Any) -> List[Tuple[str, str]]:
        shape = member.shape
        if shape.kind is ShapeKind.LIST:
            return [(member.wire_name, scalar_to_string(item, shape.member, ISO8601)) for item in value]
        if shape.kind is ShapeKind.MAP:
            params = []
            for key, item in value.items():
                if shape.value.kind is ShapeKind.LIST:
                    params.extend((key, scalar_to_string(v, shape.value.member, ISO8601)) for v in item)
                else:
                    params.append((key, scalar_to_string(item, shape.value, ISO8601)))
            return params
        return [(member.wire_name, scalar_to_string(value, shape, ISO8601))]

    @staticmethod
    def _header_values(member: Member, value: Any) -> Dict[str, str]:
        shape = member.shape
        if shape.kind is ShapeKind.MAP:
            # x-amz-meta-* style prefixed headers
            return {
                f"{member.wire_name}{key}": scalar_to_string(item, shape.value, RFC822)
                for key, item in value.items()
            }
        if shape.kind is ShapeKind.LIST:
            return {
                member.wire_name: ",".join(scalar_to_string(item, shape.member, RFC822) for item in value)
            }
        return {member.wire_name: scalar_to_string(value, shape, RFC822)}

    def _write_payload(self, http_request: HttpRequest, request: Any, member: Member) -> None:
        """Attach an explicit payload member as the whole body."""
        value = get_member_value(request, member)
        shape = member.shape

        if value is None:
            http_request.body = b""
        elif shape.kind is ShapeKind.BLOB or shape.streaming:
            if isinstance(value, (bytes, bytearray)) or hasattr(value, "read"):
                http_request.body = value
            elif isinstance(value, str) and shape.kind is ShapeKind.STRING:
                http_request.body = value.encode("utf-8")
            else:
                raise TypeError(f"Expected bytes or stream for payload '{member.name}', got {type(value).__name__}")
        elif shape.kind is ShapeKind.STRING:
            if not isinstance(value, str):
                raise TypeError(f"Expected string for payload '{member.name}', got {type(value).__name__}")
            http_request.body = value.encode("utf-8")
        elif shape.kind is ShapeKind.STRUCTURE:
            http_request.body = self._encode_structure_payload(value, member)
            http_request.headers.setdefault("Content-Type", self.codec.content_type)
        else:
            raise TypeError(f"Unsupported payload kind {shape.kind.value} for '{member.name}'")

    @abstractmethod
    def _write_body(self, http_request: HttpRequest, request: Any) -> None:
        pass

    def _encode_structure_payload(self, value: Any, member: Member) -> bytes:
        raise TypeError(f"{self.protocol} does not support structure payloads")


class JsonProtocolMarshaller(ProtocolMarshaller):
    """aws-json: every member in a JSON object body, routed by X-Amz-Target."""

    protocol = "json"
    binds_locations = False

    def __init__(
        self,
        binding: OperationBinding,
        codec: Optional[JsonCodec] = None,
        config: Optional[ProtocolConfig] = None,
        target_prefix: Optional[str] = None,
        json_version: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        config = config or ProtocolConfig()
        super().__init__(binding, codec or JsonCodec(config), config, endpoint)
        self.target_prefix = target_prefix
        self.json_version = json_version or self.config.json_version

    def _write_body(self, http_request: HttpRequest, request: Any) -> None:
        if self.target_prefix:
            http_request.headers["X-Amz-Target"] = f"{self.target_prefix}.{self.binding.name}"
        http_request.headers["Content-Type"] = f"application/x-amz-json-{self.json_version}"

        shape = self.binding.input_shape
        if shape is None:
            http_request.body = self.config.empty_json_body
            return

        payload = shape.payload_member
        if payload is not None:
            self._write_payload(http_request, request, payload)
            return

        http_request.body = self.codec.encode(request, shape)

    def _encode_structure_payload(self, value: Any, member: Member) -> bytes:
        return self.codec.encode(value, member.shape)


class RestJsonProtocolMarshaller(ProtocolMarshaller):
    """REST-JSON: HTTP bindings plus a JSON body when body members exist."""

    protocol = "rest-json"

    def __init__(
        self,
        binding: OperationBinding,
        codec: Optional[JsonCodec] = None,
        config: Optional[ProtocolConfig] = None,
        endpoint: Optional[str] = None,
    ):
        config = config or ProtocolConfig()
        super().__init__(binding, codec or JsonCodec(config), config, endpoint)

    def _write_body(self, http_request: HttpRequest, request: Any) -> None:
        shape = self.binding.input_shape
        if shape is None:
            return

        if self.binding.has_explicit_payload_member:
            self._write_payload(http_request, request, shape.payload_member)
        elif self.binding.has_payload_members:
            http_request.body = self.codec.encode(request, shape, shape.body_members)
            http_request.headers["Content-Type"] = self.codec.content_type

    def _encode_structure_payload(self, value: Any, member: Member) -> bytes:
        return self.codec.encode(value, member.shape)


class XmlProtocolMarshaller(ProtocolMarshaller):
    """REST-XML: HTTP bindings plus an XML document rooted at the input shape."""

    protocol = "rest-xml"

    def __init__(
        self,
        binding: OperationBinding,
        codec: Optional[XmlCodec] = None,
        config: Optional[ProtocolConfig] = None,
        endpoint: Optional[str] = None,
    ):
        config = config or ProtocolConfig()
        super().__init__(binding, codec or XmlCodec(config), config, endpoint)

    def _write_body(self, http_request: HttpRequest, request: Any) -> None:
        shape = self.binding.input_shape
        if shape is None:
            return

        if self.binding.has_explicit_payload_member:
            self._write_payload(http_request, request, shape.payload_member)
        elif self.binding.has_payload_members:
            http_request.body = self.codec.encode(
                request,
                shape,
                root_name=shape.xml_root_name or shape.name,
                members=shape.body_members,
            )
            http_request.headers["Content-Type"] = self.codec.content_type

    def _encode_structure_payload(self, value: Any, member: Member) -> bytes:
        root_name = member.location_name or member.shape.xml_root_name or member.shape.name
        return self.codec.encode(value, member.shape, root_name=root_name)


class QueryProtocolMarshaller(ProtocolMarshaller):
    """Query: Action/Version plus flattened members, form-encoded."""

    protocol = "query"
    binds_locations = False

    def __init__(
        self,
        binding: OperationBinding,
        api_version: str,
        codec: Optional[QueryCodec] = None,
        config: Optional[ProtocolConfig] = None,
        endpoint: Optional[str] = None,
    ):
        if not api_version:
            raise ConfigurationError("Query protocol requires an API version", config_key="api_version")
        config = config or ProtocolConfig()
        super().__init__(binding, codec or QueryCodec(config), config, endpoint)
        self.api_version = api_version

    def _write_body(self, http_request: HttpRequest, request: Any) -> None:
        params: List[Tuple[str, str]] = [
            ("Action", self.binding.name),
            ("Version", self.api_version),
        ]
        shape = self.binding.input_shape
        if shape is not None:
            params.extend(self.codec.to_params(request, shape))

        http_request.body = encode_query_params(params)
        http_request.headers["Content-Type"] = self.codec.content_type


def encode_query_params(params: List[Tuple[str, str]]) -> bytes:
    return urlencode(params, quote_via=quote, safe="-_.~").encode("utf-8")


def parse_query_params(body: bytes) -> Mapping[str, str]:
    """Decode a form-encoded Query body into an ordered mapping."""
    return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
