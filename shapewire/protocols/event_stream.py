"""
Shapewire - Event Stream Tagged-Union Dispatch

An event stream is a sequence of frames, each carrying exactly one variant
of a tagged union named by its ``:event-type`` header. This module maps
event names to handlers, validated against the union shape when the
dispatcher is built, and converts frames to and from typed envelopes.

Binary frame encoding (prelude, CRCs) belongs to the transport; frames here
are already split into headers and payload.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Sequence,
)

from prometheus_client import Counter

from ..core.config import EventStreamConfig
from ..core.exceptions import (
    ConfigurationError,
    EventStreamError,
    MarshallingError,
    ShapewireException,
    UnknownEventTypeError,
    UnmarshallingError,
)
from .codecs import BaseCodec, XmlCodec, build_structure, get_member_value, scalar_from_string
from .shapes import Location, Member, Shape, ShapeKind

# Metrics for event stream frames
EVENT_STREAM_FRAMES = Counter(
    'shapewire_event_stream_frames_total',
    'Event stream frames processed',
    ['direction', 'status']
)

UNKNOWN_EVENTS = Counter(
    'shapewire_unknown_events_total',
    'Event stream frames with no registered handler',
    ['event_type']
)

logger = logging.getLogger(__name__)

MESSAGE_TYPE = ":message-type"
EVENT_TYPE = ":event-type"
CONTENT_TYPE = ":content-type"
EXCEPTION_TYPE = ":exception-type"
ERROR_CODE = ":error-code"
ERROR_MESSAGE = ":error-message"


@dataclass
class EventStreamMessage:
    """One decoded frame: typed headers plus a payload."""

    headers: Dict[str, Any] = field(default_factory=dict)
    payload: bytes = b""

    @property
    def message_type(self) -> str:
        return self.headers.get(MESSAGE_TYPE, "event")

    @property
    def event_type(self) -> Optional[str]:
        if self.message_type == "exception":
            return self.headers.get(EXCEPTION_TYPE)
        return self.headers.get(EVENT_TYPE)

    @classmethod
    def event(cls, event_type: str, payload: bytes = b"", content_type: Optional[str] = None, **headers) -> "EventStreamMessage":
        all_headers = {MESSAGE_TYPE: "event", EVENT_TYPE: event_type}
        if content_type:
            all_headers[CONTENT_TYPE] = content_type
        all_headers.update(headers)
        return cls(headers=all_headers, payload=payload)

    @classmethod
    def error(cls, error_code: str, error_message: str = "") -> "EventStreamMessage":
        return cls(headers={MESSAGE_TYPE: "error", ERROR_CODE: error_code, ERROR_MESSAGE: error_message})


@dataclass
class EventStreamEnvelope:
    """A typed event: the union variant name and its value."""

    event_type: str
    payload: Any = None
    is_exception: bool = False


class EventHandler:
    """Converts one union variant to and from frames.

    Header-located members travel as frame headers. An explicit blob or
    string payload member is sent raw; otherwise the remaining members are
    encoded with the stream's codec.
    """

    def __init__(self, name: str, shape: Shape, codec: BaseCodec, content_type: Optional[str] = None):
        self.name = name
        self.shape = shape
        self.codec = codec
        self.content_type = content_type or codec.content_type

        codec.validate(shape)

    @property
    def message_type(self) -> str:
        return "exception" if self.shape.exception else "event"

    def to_message(self, value: Any) -> EventStreamMessage:
        type_header = EXCEPTION_TYPE if self.shape.exception else EVENT_TYPE
        headers: Dict[str, Any] = {MESSAGE_TYPE: self.message_type, type_header: self.name}

        for member in self.shape.members:
            if member.location is Location.HEADER:
                member_value = get_member_value(value, member)
                if member_value is not None:
                    headers[member.wire_name] = member_value

        payload_member = self.shape.payload_member
        if payload_member is not None:
            raw = get_member_value(value, payload_member)
            if payload_member.shape.kind is ShapeKind.BLOB:
                headers[CONTENT_TYPE] = "application/octet-stream"
                payload = bytes(raw or b"")
            elif payload_member.shape.kind is ShapeKind.STRING:
                headers[CONTENT_TYPE] = "text/plain"
                payload = (raw or "").encode("utf-8")
            else:
                headers[CONTENT_TYPE] = self.content_type
                payload = self._encode(raw, payload_member.shape, None) if raw is not None else b""
        else:
            headers[CONTENT_TYPE] = self.content_type
            payload = self._encode(value, self.shape, self.shape.body_members)

        return EventStreamMessage(headers=headers, payload=payload)

    def from_message(self, message: EventStreamMessage) -> Any:
        values: Dict[str, Any] = {}
        for member in self.shape.members:
            if member.location is Location.HEADER and member.wire_name in message.headers:
                raw = message.headers[member.wire_name]
                values[member.name] = scalar_from_string(raw, member.shape) if isinstance(raw, str) else raw

        payload_member = self.shape.payload_member
        if payload_member is not None:
            if payload_member.shape.kind is ShapeKind.BLOB:
                values[payload_member.name] = bytes(message.payload)
            elif payload_member.shape.kind is ShapeKind.STRING:
                values[payload_member.name] = message.payload.decode("utf-8")
            elif message.payload:
                values[payload_member.name] = self._decode_value(message.payload, payload_member.shape)
        elif message.payload and self.shape.body_members:
            values.update(self._decode_members(message.payload))

        return build_structure(self.shape, values)

    def _encode(self, value: Any, shape: Shape, members: Optional[Sequence[Member]]) -> bytes:
        if isinstance(self.codec, XmlCodec):
            return self.codec.encode(value, shape, root_name=self.name, members=members)
        return self.codec.encode(value, shape, members)

    def _decode_value(self, payload: bytes, shape: Shape) -> Any:
        if isinstance(self.codec, XmlCodec):
            return self.codec.from_element(self.codec.parse(payload), shape)
        return self.codec.decode(payload, shape)

    def _decode_members(self, payload: bytes) -> Dict[str, Any]:
        members = self.shape.body_members
        if isinstance(self.codec, XmlCodec):
            root = self.codec.parse(payload)
            return self.codec.read_members(list(root), self.shape, root.attrib, members)
        return self.codec.read_members(json.loads(payload.decode("utf-8")), self.shape, members)


def handlers_for(union_shape: Shape, codec: BaseCodec, content_type: Optional[str] = None) -> Dict[str, EventHandler]:
    """Build one default handler per member of an event-stream union."""
    return {
        member.name: EventHandler(member.name, member.shape, codec, content_type)
        for member in union_shape.members
    }


class _TaggedUnionDispatcher:
    """Event name to handler mapping, checked against the union at build time."""

    def __init__(
        self,
        union_shape: Shape,
        handlers: Mapping[str, Any],
        config: Optional[EventStreamConfig] = None,
        operation: Optional[str] = None,
    ):
        if not union_shape.event_stream:
            raise ConfigurationError(
                f"Shape '{union_shape.name}' is not an event stream", shape_name=union_shape.name
            )

        variants = {member.name for member in union_shape.members}
        missing = variants - set(handlers)
        extra = set(handlers) - variants
        if missing or extra:
            problems = []
            if missing:
                problems.append(f"missing handlers for {', '.join(sorted(missing))}")
            if extra:
                problems.append(f"handlers for unknown events {', '.join(sorted(extra))}")
            raise ConfigurationError(
                f"Incomplete event dispatch for '{union_shape.name}': {'; '.join(problems)}",
                shape_name=union_shape.name,
            )

        self.union_shape = union_shape
        self.config = config or EventStreamConfig()
        self.operation = operation
        self._handlers: Dict[str, Any] = dict(handlers)

    @property
    def event_names(self):
        return frozenset(self._handlers)

    def dispatch(self, event_name: Optional[str]) -> Any:
        """Return the handler registered for ``event_name``."""
        try:
            return self._handlers[event_name]
        except KeyError:
            raise UnknownEventTypeError(event_name, self._handlers) from None


class EventStreamTaggedUnionMarshaller(_TaggedUnionDispatcher):
    """Outbound: typed envelopes to frames."""

    def marshall(self, envelope: EventStreamEnvelope) -> EventStreamMessage:
        handler = self.dispatch(envelope.event_type)
        try:
            message = handler.to_message(envelope.payload)
        except ShapewireException:
            EVENT_STREAM_FRAMES.labels(direction='outbound', status='error').inc()
            raise
        except Exception as e:
            EVENT_STREAM_FRAMES.labels(direction='outbound', status='error').inc()
            raise MarshallingError(
                f"Unable to marshall event '{envelope.event_type}': {e}",
                operation=self.operation,
                member=envelope.event_type,
            ) from e

        EVENT_STREAM_FRAMES.labels(direction='outbound', status='success').inc()
        return message

    def marshall_all(self, envelopes: Iterable[EventStreamEnvelope]) -> Iterator[EventStreamMessage]:
        for envelope in envelopes:
            yield self.marshall(envelope)


class EventStreamTaggedUnionUnmarshaller(_TaggedUnionDispatcher):
    """Inbound: frames to typed envelopes."""

    def unmarshall(self, message: EventStreamMessage) -> EventStreamEnvelope:
        message_type = message.message_type

        if message_type == "error":
            EVENT_STREAM_FRAMES.labels(direction='inbound', status='error').inc()
            error_code = message.headers.get(ERROR_CODE)
            raise EventStreamError(
                message.headers.get(ERROR_MESSAGE) or f"Event stream error {error_code}",
                stream_error_code=error_code,
                operation=self.operation,
            )
        if message_type not in ("event", "exception"):
            EVENT_STREAM_FRAMES.labels(direction='inbound', status='error').inc()
            raise UnmarshallingError(
                f"Unsupported event stream message type '{message_type}'", operation=self.operation
            )

        handler = self.dispatch(message.event_type)
        try:
            payload = handler.from_message(message)
        except ShapewireException:
            EVENT_STREAM_FRAMES.labels(direction='inbound', status='error').inc()
            raise
        except Exception as e:
            EVENT_STREAM_FRAMES.labels(direction='inbound', status='error').inc()
            raise UnmarshallingError(
                f"Unable to unmarshall event '{message.event_type}': {e}", operation=self.operation
            ) from e

        EVENT_STREAM_FRAMES.labels(direction='inbound', status='success').inc()
        return EventStreamEnvelope(
            event_type=message.event_type,
            payload=payload,
            is_exception=message_type == "exception",
        )

    def _try_unmarshall(
        self,
        message: EventStreamMessage,
        on_unknown: Optional[Callable[[UnknownEventTypeError, EventStreamMessage], None]],
    ) -> Optional[EventStreamEnvelope]:
        try:
            return self.unmarshall(message)
        except UnknownEventTypeError as e:
            EVENT_STREAM_FRAMES.labels(direction='inbound', status='unknown').inc()
            UNKNOWN_EVENTS.labels(event_type=str(e.event_type)).inc()
            if self.config.log_unknown_events:
                logger.warning(f"Skipping event stream frame: {e.message}")
            if on_unknown is not None:
                on_unknown(e, message)
            return None

    def iter_events(
        self,
        frames: Iterable[EventStreamMessage],
        on_unknown: Optional[Callable[[UnknownEventTypeError, EventStreamMessage], None]] = None,
    ) -> Iterator[EventStreamEnvelope]:
        """Yield envelopes, skipping frames whose event type is unknown."""
        for message in frames:
            envelope = self._try_unmarshall(message, on_unknown)
            if envelope is not None:
                yield envelope

    async def aiter_events(
        self,
        frames: AsyncIterable[EventStreamMessage],
        on_unknown: Optional[Callable[[UnknownEventTypeError, EventStreamMessage], None]] = None,
    ) -> AsyncIterator[EventStreamEnvelope]:
        """Async counterpart of ``iter_events``."""
        async for message in frames:
            envelope = self._try_unmarshall(message, on_unknown)
            if envelope is not None:
                yield envelope
