"""
Shapewire - Protocol Unmarshallers

Turns an HttpResponse into the typed output object of an operation.
Header and status-code members come from the response line and headers,
payload members take the raw body, and remaining members are decoded from
the JSON or XML document. Malformed bodies are reported as
UnmarshallingError; unknown fields are ignored.
"""

import json
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import Counter

from ..core.config import ProtocolConfig
from ..core.exceptions import ServiceError, ShapewireException, UnmarshallingError
from ..core.structured_logging import LogContext, PerformanceLogger
from .codecs import (
    BaseCodec,
    JsonCodec,
    XmlCodec,
    build_structure,
    local_name,
    scalar_from_string,
)
from .http import HttpResponse
from .shapes import Location, Member, Shape, ShapeKind

# Metrics for unmarshalling operations
UNMARSHALL_COUNTER = Counter(
    'shapewire_unmarshall_total',
    'Total responses unmarshalled',
    ['protocol', 'status']
)

logger = logging.getLogger(__name__)
performance = PerformanceLogger(logger)


class ProtocolUnmarshaller(ABC):
    """Base unmarshaller: header/status/payload members plus a document body."""

    protocol = "base"

    def __init__(
        self,
        codec: BaseCodec,
        config: Optional[ProtocolConfig] = None,
        operation: Optional[str] = None,
        use_root_element: bool = False,
    ):
        self.codec = codec
        self.config = config or codec.config
        self.operation = operation
        self.use_root_element = use_root_element

    def unmarshall(self, response: HttpResponse, shape: Optional[Shape]) -> Any:
        """Unmarshall ``response`` into an instance of ``shape``."""
        if shape is None:
            return None

        self.codec.validate_readable(shape)
        context = LogContext(operation=self.operation, protocol=self.protocol)

        try:
            with performance.time_operation(f"unmarshall.{self.operation or shape.name}", context):
                result = self._unmarshall(response, shape)
        except ShapewireException:
            UNMARSHALL_COUNTER.labels(protocol=self.protocol, status='error').inc()
            raise
        except Exception as e:
            logger.error(f"Failed to unmarshall {self.operation or shape.name} response: {e}")
            UNMARSHALL_COUNTER.labels(protocol=self.protocol, status='error').inc()
            raise UnmarshallingError(
                f"Unable to unmarshall response from {self.protocol}: {e}",
                operation=self.operation,
                status_code=response.status_code,
            ) from e

        UNMARSHALL_COUNTER.labels(protocol=self.protocol, status='success').inc()
        return result

    def _unmarshall(self, response: HttpResponse, shape: Shape) -> Any:
        values: Dict[str, Any] = {}
        body_handled = False

        for member in shape.members:
            if member.location is Location.HEADER:
                value = self._read_header(response, member)
                if value is not None:
                    values[member.name] = value
            elif member.location is Location.STATUS_CODE:
                values[member.name] = response.status_code
            elif member.payload or member.shape.streaming:
                body_handled = True
                value = self._read_payload(response, member)
                if value is not None:
                    values[member.name] = value

        body_members = shape.body_members
        if not body_handled and body_members:
            content = response.content
            if content.strip():
                values.update(self._read_body(content, shape, body_members))

        return build_structure(shape, values)

    @staticmethod
    def _read_header(response: HttpResponse, member: Member) -> Any:
        shape = member.shape
        headers = response.headers

        if shape.kind is ShapeKind.MAP:
            prefix = member.wire_name.lower()
            prefixed = {
                name[len(prefix):]: scalar_from_string(value, shape.value)
                for name, value in headers.items()
                if name.lower().startswith(prefix)
            }
            return prefixed or None

        raw = headers.get(member.wire_name)
        if raw is None:
            return None
        if shape.kind is ShapeKind.LIST:
            return [scalar_from_string(part.strip(), shape.member) for part in raw.split(",")]
        return scalar_from_string(raw, shape)

    def _read_payload(self, response: HttpResponse, member: Member) -> Any:
        shape = member.shape
        if shape.streaming or shape.kind is ShapeKind.BLOB:
            return response.body
        content = response.content
        if shape.kind is ShapeKind.STRING:
            return content.decode("utf-8")
        if not content.strip():
            return None
        return self._read_payload_document(content, shape)

    @abstractmethod
    def _read_body(self, content: bytes, shape: Shape, members: Sequence[Member]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _read_payload_document(self, content: bytes, shape: Shape) -> Any:
        pass


class JsonProtocolUnmarshaller(ProtocolUnmarshaller):
    """aws-json and REST-JSON responses."""

    protocol = "json"

    def __init__(
        self,
        codec: Optional[JsonCodec] = None,
        config: Optional[ProtocolConfig] = None,
        operation: Optional[str] = None,
        use_root_element: bool = False,
        protocol: Optional[str] = None,
    ):
        super().__init__(codec or JsonCodec(config), config, operation, use_root_element)
        if protocol:
            self.protocol = protocol

    def _read_body(self, content: bytes, shape: Shape, members: Sequence[Member]) -> Dict[str, Any]:
        return self.codec.read_members(json.loads(content.decode("utf-8")), shape, members)

    def _read_payload_document(self, content: bytes, shape: Shape) -> Any:
        return self.codec.from_document(json.loads(content.decode("utf-8")), shape)


class XmlProtocolUnmarshaller(ProtocolUnmarshaller):
    """REST-XML responses.

    With ``use_root_element`` the root element itself is the only candidate
    for member matching (``<LocationConstraint>`` style results); otherwise
    members are matched against the root's children.
    """

    protocol = "rest-xml"

    def __init__(
        self,
        codec: Optional[XmlCodec] = None,
        config: Optional[ProtocolConfig] = None,
        operation: Optional[str] = None,
        use_root_element: bool = False,
    ):
        super().__init__(codec or XmlCodec(config), config, operation, use_root_element)

    def _read_body(self, content: bytes, shape: Shape, members: Sequence[Member]) -> Dict[str, Any]:
        root = self.codec.parse(content)
        if self.use_root_element:
            return self.codec.read_members([root], shape, members=members)
        return self.codec.read_members(list(root), shape, root.attrib, members)

    def _read_payload_document(self, content: bytes, shape: Shape) -> Any:
        return self.codec.from_element(self.codec.parse(content), shape)


class QueryProtocolUnmarshaller(XmlProtocolUnmarshaller):
    """Query responses: ``<OpResponse><OpResult>...</OpResult></OpResponse>``."""

    protocol = "query"

    def __init__(
        self,
        codec: Optional[XmlCodec] = None,
        config: Optional[ProtocolConfig] = None,
        operation: Optional[str] = None,
        use_root_element: bool = False,
        result_wrapper: Optional[str] = None,
    ):
        super().__init__(codec, config, operation, use_root_element)
        self.result_wrapper = result_wrapper or (f"{operation}Result" if operation else None)

    def _read_body(self, content: bytes, shape: Shape, members: Sequence[Member]) -> Dict[str, Any]:
        root = self.codec.parse(content)
        result = self._find_result(root)
        if result is None:
            return {}
        if self.use_root_element:
            return self.codec.read_members([result], shape, members=members)
        return self.codec.read_members(list(result), shape, result.attrib, members)

    def _find_result(self, root: ET.Element) -> Optional[ET.Element]:
        if self.result_wrapper and local_name(root.tag) == self.result_wrapper:
            return root
        for child in root:
            name = local_name(child.tag)
            if self.result_wrapper:
                if name == self.result_wrapper:
                    return child
            elif name.endswith("Result"):
                return child
        return None


class ResponseHandler:
    """Unmarshalls successful responses and raises ServiceError otherwise."""

    REQUEST_ID_HEADERS = ("x-amzn-RequestId", "x-amz-request-id", "x-amzn-requestid")

    def __init__(self, unmarshaller: ProtocolUnmarshaller, output_shape: Optional[Shape], operation: Optional[str] = None):
        self.unmarshaller = unmarshaller
        self.output_shape = output_shape
        self.operation = operation or unmarshaller.operation

    def handle(self, response: HttpResponse) -> Any:
        if response.is_success:
            return self.unmarshaller.unmarshall(response, self.output_shape)
        raise self.parse_error(response)

    def parse_error(self, response: HttpResponse) -> ServiceError:
        """Build a ServiceError from an error response."""
        code, message, request_id = None, "", None

        content = response.content
        if content.strip():
            try:
                if content.lstrip().startswith(b"<"):
                    code, message, request_id = self._parse_xml_error(content)
                else:
                    code, message = self._parse_json_error(content)
            except (ValueError, ET.ParseError) as e:
                logger.debug(f"Unparseable error body for {self.operation}: {e}")

        if not code:
            code = response.headers.get("x-amzn-ErrorType")
        code = _normalize_error_code(code) or f"Http{response.status_code}"

        if not request_id:
            for header in self.REQUEST_ID_HEADERS:
                if header in response.headers:
                    request_id = response.headers[header]
                    break

        logger.debug(f"Service error for {self.operation}: {code} ({response.status_code})")
        return ServiceError(
            code,
            message or "",
            status_code=response.status_code,
            request_id=request_id,
            operation=self.operation,
        )

    @staticmethod
    def _parse_json_error(content: bytes) -> Tuple[Optional[str], str]:
        document = json.loads(content.decode("utf-8"))
        if not isinstance(document, dict):
            raise ValueError("Error body is not a JSON object")
        code = document.get("__type") or document.get("code") or document.get("Code")
        message = document.get("message") or document.get("Message") or ""
        return code, message

    @staticmethod
    def _parse_xml_error(content: bytes) -> Tuple[Optional[str], str, Optional[str]]:
        root = ET.fromstring(content)
        error = root if local_name(root.tag) == "Error" else None
        if error is None:
            error = next((e for e in root.iter() if local_name(e.tag) == "Error"), None)

        fields: Dict[str, str] = {}
        for element in (error if error is not None else root):
            fields[local_name(element.tag)] = element.text or ""
        # RequestId sits beside <Error> in Query responses
        for element in root.iter():
            if local_name(element.tag) == "RequestId":
                fields.setdefault("RequestId", element.text or "")

        return fields.get("Code"), fields.get("Message", ""), fields.get("RequestId")


def _normalize_error_code(code: Optional[str]) -> Optional[str]:
    """Strip namespace (``aws#Code``) and URI (``Code:http://...``) parts."""
    if not code:
        return None
    code = code.split(":", 1)[0]
    return code.rsplit("#", 1)[-1]
