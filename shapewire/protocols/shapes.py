"""
Shapewire - Shape Model

Shapes describe the request/response field trees that the codecs walk.
A shape is a tagged variant: its ``kind`` selects the handler, and only the
fields relevant to that kind are populated. Shapes and operation bindings
are built once at model-load time and shared read-only afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..core.exceptions import ConfigurationError


class ShapeKind(str, Enum):
    """Shape kinds understood by the codecs."""

    STRUCTURE = "structure"
    LIST = "list"
    MAP = "map"
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    BLOB = "blob"

    @property
    def is_scalar(self) -> bool:
        return self not in CONTAINER_KINDS


CONTAINER_KINDS = frozenset({ShapeKind.STRUCTURE, ShapeKind.LIST, ShapeKind.MAP})


class Location(str, Enum):
    """Where a member is bound on the HTTP message."""

    BODY = "body"
    HEADER = "header"
    URI = "uri"
    QUERYSTRING = "querystring"
    STATUS_CODE = "statusCode"


@dataclass(frozen=True)
class Member:
    """A named field of a structure shape."""

    name: str
    shape: "Shape"
    location: Location = Location.BODY
    location_name: Optional[str] = None
    payload: bool = False
    xml_attribute: bool = False
    required: bool = False

    @property
    def wire_name(self) -> str:
        return self.location_name or self.name


@dataclass(frozen=True, eq=False, repr=False)
class Shape:
    """Schema node of a request/response tree.

    Equality and hashing are by identity, so recursive shapes are safe to
    compare and to use as dictionary keys.
    """

    name: str
    kind: ShapeKind
    members: Tuple[Member, ...] = ()
    member: Optional["Shape"] = None
    key: Optional["Shape"] = None
    value: Optional["Shape"] = None

    streaming: bool = False
    event_stream: bool = False
    event: bool = False
    exception: bool = False
    flattened: bool = False
    use_root_xml_element: bool = False

    xml_root_name: Optional[str] = None
    xml_namespace: Optional[str] = None
    member_location_name: Optional[str] = None
    key_location_name: Optional[str] = None
    value_location_name: Optional[str] = None

    python_type: Optional[Callable[..., Any]] = None

    def __post_init__(self):
        if self.kind is ShapeKind.LIST and self.member is None:
            raise ConfigurationError(
                f"List shape '{self.name}' has no member shape", shape_name=self.name
            )
        if self.kind is ShapeKind.MAP and (self.key is None or self.value is None):
            raise ConfigurationError(
                f"Map shape '{self.name}' needs both key and value shapes",
                shape_name=self.name,
            )
        if self.kind is ShapeKind.MAP and self.key.kind is not ShapeKind.STRING:
            raise ConfigurationError(
                f"Map shape '{self.name}' must have string keys", shape_name=self.name
            )
        if self.members and self.kind is not ShapeKind.STRUCTURE:
            raise ConfigurationError(
                f"Only structures carry members, '{self.name}' is a {self.kind.value}",
                shape_name=self.name,
            )

    def __repr__(self) -> str:
        return f"Shape(name={self.name!r}, kind={self.kind.value})"

    # Constructors

    @classmethod
    def structure(cls, name: str, members: List[Member] = (), **kwargs) -> "Shape":
        return cls(name=name, kind=ShapeKind.STRUCTURE, members=tuple(members), **kwargs)

    @classmethod
    def list_of(cls, name: str, member: "Shape", **kwargs) -> "Shape":
        return cls(name=name, kind=ShapeKind.LIST, member=member, **kwargs)

    @classmethod
    def map_of(cls, name: str, key: "Shape", value: "Shape", **kwargs) -> "Shape":
        return cls(name=name, kind=ShapeKind.MAP, key=key, value=value, **kwargs)

    @classmethod
    def scalar(cls, name: str, kind: ShapeKind, **kwargs) -> "Shape":
        if not kind.is_scalar:
            raise ConfigurationError(
                f"'{kind.value}' is not a scalar kind", shape_name=name
            )
        return cls(name=name, kind=kind, **kwargs)

    # Derived flags

    @property
    def payload_member(self) -> Optional[Member]:
        for member in self.members:
            if member.payload:
                return member
        return None

    @property
    def has_payload_member(self) -> bool:
        return self.payload_member is not None

    @property
    def has_streaming_member(self) -> bool:
        return any(m.shape.streaming for m in self.members)

    @property
    def body_members(self) -> Tuple[Member, ...]:
        return tuple(
            m for m in self.members if m.location is Location.BODY and not m.payload
        )

    def member_by_name(self, name: str) -> Optional[Member]:
        for member in self.members:
            if member.name == name:
                return member
        return None

    def children(self) -> List["Shape"]:
        """Direct child shapes of this node."""
        if self.kind is ShapeKind.STRUCTURE:
            return [m.shape for m in self.members]
        if self.kind is ShapeKind.LIST:
            return [self.member]
        if self.kind is ShapeKind.MAP:
            return [self.key, self.value]
        return []

    def reachable_shapes(self) -> Iterator["Shape"]:
        """Walk every shape reachable from this one, each exactly once."""
        seen = set()
        stack = [self]
        while stack:
            shape = stack.pop()
            if id(shape) in seen:
                continue
            seen.add(id(shape))
            yield shape
            stack.extend(reversed(shape.children()))


def _assign_members(shape: Shape, members: Tuple[Member, ...]) -> None:
    """Bind members onto a structure created empty by the model loader.

    Two-phase construction is what lets recursive structures reference
    themselves; it is only valid before the shape is handed out.
    """
    if shape.kind is not ShapeKind.STRUCTURE:
        raise ConfigurationError(
            f"Cannot assign members to {shape.kind.value} shape", shape_name=shape.name
        )
    if shape.members:
        raise ConfigurationError(
            f"Members of '{shape.name}' are already bound", shape_name=shape.name
        )
    object.__setattr__(shape, "members", tuple(members))


@dataclass(frozen=True)
class OperationBinding:
    """Wire metadata for one API operation."""

    name: str
    http_method: str = "POST"
    request_uri: str = "/"
    has_explicit_payload_member: bool = False
    has_payload_members: bool = False
    input_shape: Optional[Shape] = None
    output_shape: Optional[Shape] = None
    use_root_element: bool = False
    has_streaming_output: bool = False

    @classmethod
    def for_shapes(
        cls,
        name: str,
        input_shape: Optional[Shape] = None,
        output_shape: Optional[Shape] = None,
        http_method: str = "POST",
        request_uri: str = "/",
        use_root_element: Optional[bool] = None,
    ) -> "OperationBinding":
        """Derive payload flags from the shapes."""
        has_explicit = bool(input_shape and input_shape.has_payload_member)
        has_payload_members = bool(
            input_shape and (input_shape.has_payload_member or input_shape.body_members)
        )
        if use_root_element is None:
            use_root_element = bool(
                output_shape
                and (output_shape.has_payload_member or output_shape.use_root_xml_element)
            )

        return cls(
            name=name,
            http_method=http_method.upper(),
            request_uri=request_uri,
            has_explicit_payload_member=has_explicit,
            has_payload_members=has_payload_members,
            input_shape=input_shape,
            output_shape=output_shape,
            use_root_element=use_root_element,
            has_streaming_output=bool(output_shape and output_shape.has_streaming_member),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "http_method": self.http_method,
            "request_uri": self.request_uri,
            "has_explicit_payload_member": self.has_explicit_payload_member,
            "has_payload_members": self.has_payload_members,
            "input_shape": self.input_shape.name if self.input_shape else None,
            "output_shape": self.output_shape.name if self.output_shape else None,
            "use_root_element": self.use_root_element,
            "has_streaming_output": self.has_streaming_output,
        }
