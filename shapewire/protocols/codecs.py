"""
Shapewire - Document Codecs

Recursive visitors that convert typed values to and from wire documents
according to a shape tree. Each codec registers one handler per
``ShapeKind`` in a dispatch table when it is constructed; a shape whose kind
has no handler is a configuration defect, detected by ``validate_*``
before any value is touched.

Codecs raise plain ``TypeError``/``ValueError`` on bad values; the
marshaller and unmarshaller wrap those with operation context.
"""

import base64
import binascii
import json
import logging
import math
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.config import ProtocolConfig
from ..core.exceptions import ConfigurationError
from .shapes import Member, Shape, ShapeKind

logger = logging.getLogger(__name__)

ISO8601 = "iso8601"
UNIX_TIMESTAMP = "unixTimestamp"
RFC822 = "rfc822"

_FLOAT_SPECIALS = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


# Member access and typed construction


def get_member_value(obj: Any, member: Member) -> Any:
    """Read a member from a mapping or an attribute-style object."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(member.name)
    return getattr(obj, member.name, None)


def build_structure(shape: Shape, values: Dict[str, Any]) -> Any:
    """Construct the typed object for ``shape`` from the members present."""
    if shape.python_type is not None:
        return shape.python_type(**values)
    return values


# Scalar conversions


def _require_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"Expected string, got {type(value).__name__}")
    return value


def _require_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected integer, got {type(value).__name__}")
    return value


def _require_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected number, got {type(value).__name__}")
    return float(value)


def _require_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"Expected boolean, got {type(value).__name__}")
    return value


def _require_bytes(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"Expected bytes, got {type(value).__name__}")
    return bytes(value)


def to_datetime(value: Any) -> datetime:
    """Normalize a timestamp value to an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    raise TypeError(f"Expected datetime or epoch seconds, got {type(value).__name__}")


def format_timestamp(value: Any, timestamp_format: str) -> Any:
    dt = to_datetime(value)
    if timestamp_format == UNIX_TIMESTAMP:
        epoch = dt.timestamp()
        return int(epoch) if epoch.is_integer() else epoch
    if timestamp_format == RFC822:
        return format_datetime(dt, usegmt=True)
    if not dt.microsecond:
        timespec = "seconds"
    elif dt.microsecond % 1000:
        timespec = "microseconds"
    else:
        timespec = "milliseconds"
    return dt.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def parse_timestamp(raw: Any) -> datetime:
    """Parse epoch seconds, ISO-8601 or RFC-822 timestamps."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    text = _require_str(raw).strip()
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except ValueError:
        pass
    if text[:1].isdigit():
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_datetime(datetime.fromisoformat(text))
    try:
        return to_datetime(parsedate_to_datetime(text))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unrecognized timestamp: {raw!r}") from e


def format_float(value: Any) -> Any:
    number = _require_float(value)
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    return number


def parse_float(raw: Any) -> float:
    if isinstance(raw, str):
        if raw in _FLOAT_SPECIALS:
            return _FLOAT_SPECIALS[raw]
        return float(raw)
    return _require_float(raw)


def decode_blob(raw: Any) -> bytes:
    try:
        return base64.b64decode(_require_str(raw), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 blob: {e}") from e


def scalar_to_string(value: Any, shape: Shape, timestamp_format: str = ISO8601) -> str:
    """Render a scalar for a header, query string, URI label or XML text."""
    kind = shape.kind
    if kind is ShapeKind.STRING:
        return _require_str(value)
    if kind in (ShapeKind.INTEGER, ShapeKind.LONG):
        return str(_require_int(value))
    if kind in (ShapeKind.FLOAT, ShapeKind.DOUBLE):
        return str(format_float(value))
    if kind is ShapeKind.BOOLEAN:
        return "true" if _require_bool(value) else "false"
    if kind is ShapeKind.TIMESTAMP:
        return str(format_timestamp(value, timestamp_format))
    if kind is ShapeKind.BLOB:
        return base64.b64encode(_require_bytes(value)).decode("ascii")
    raise TypeError(f"'{shape.name}' is a {kind.value}, not a scalar")


def scalar_from_string(text: Optional[str], shape: Shape) -> Any:
    """Parse a scalar from a header, status line or XML text node."""
    text = text or ""
    kind = shape.kind
    if kind is ShapeKind.STRING:
        return text
    if kind in (ShapeKind.INTEGER, ShapeKind.LONG):
        return int(text.strip())
    if kind in (ShapeKind.FLOAT, ShapeKind.DOUBLE):
        return parse_float(text.strip())
    if kind is ShapeKind.BOOLEAN:
        lowered = text.strip().lower()
        if lowered not in ("true", "false"):
            raise ValueError(f"Invalid boolean: {text!r}")
        return lowered == "true"
    if kind is ShapeKind.TIMESTAMP:
        return parse_timestamp(text)
    if kind is ShapeKind.BLOB:
        return decode_blob(text.strip())
    raise TypeError(f"'{shape.name}' is a {kind.value}, not a scalar")


_SCALAR_KINDS = tuple(kind for kind in ShapeKind if kind.is_scalar)


class BaseCodec:
    """Dispatch-table codec over ``ShapeKind``."""

    name = "base"
    content_type = "application/octet-stream"

    def __init__(self, config: Optional[ProtocolConfig] = None):
        self.config = config or ProtocolConfig()
        self._writers: Dict[ShapeKind, Callable[..., Any]] = self._build_writers()
        self._readers: Dict[ShapeKind, Callable[..., Any]] = self._build_readers()

    def _build_writers(self) -> Dict[ShapeKind, Callable[..., Any]]:
        return {}

    def _build_readers(self) -> Dict[ShapeKind, Callable[..., Any]]:
        return {}

    def supported_kinds(self) -> FrozenSet[ShapeKind]:
        """Kinds with both a writer and a reader registered."""
        return frozenset(self._writers) & frozenset(self._readers)

    def validate(self, shape: Shape) -> None:
        """Check every shape reachable from ``shape`` has registered handlers."""
        self.validate_writable(shape)
        if self._readers:
            self.validate_readable(shape)

    def validate_writable(self, shape: Shape) -> None:
        self._validate(shape, self._writers, "marshaller")

    def validate_readable(self, shape: Shape) -> None:
        self._validate(shape, self._readers, "unmarshaller")

    def _validate(self, shape: Shape, table: Mapping[ShapeKind, Any], role: str) -> None:
        for reachable in shape.reachable_shapes():
            if reachable.kind not in table:
                raise ConfigurationError(
                    f"No {self.name} {role} registered for {reachable.kind.value} "
                    f"shape '{reachable.name}'",
                    shape_name=reachable.name,
                )

    def _writer(self, shape: Shape) -> Callable[..., Any]:
        try:
            return self._writers[shape.kind]
        except KeyError:
            raise ConfigurationError(
                f"No {self.name} marshaller registered for {shape.kind.value}",
                shape_name=shape.name,
            ) from None

    def _reader(self, shape: Shape) -> Callable[..., Any]:
        try:
            return self._readers[shape.kind]
        except KeyError:
            raise ConfigurationError(
                f"No {self.name} unmarshaller registered for {shape.kind.value}",
                shape_name=shape.name,
            ) from None

    def _note_unknown(self, shape: Shape, names: Iterable[str]) -> None:
        if self.config.log_unknown_fields:
            for name in names:
                logger.debug(f"Ignoring unknown field '{name}' in {shape.name}")


class JsonCodec(BaseCodec):
    """JSON documents: objects keyed by wire name, epoch-second timestamps."""

    name = "json"
    content_type = "application/json"

    def _build_writers(self):
        writers = {
            ShapeKind.STRUCTURE: self._write_structure,
            ShapeKind.LIST: self._write_list,
            ShapeKind.MAP: self._write_map,
            ShapeKind.STRING: lambda v, s: _require_str(v),
            ShapeKind.INTEGER: lambda v, s: _require_int(v),
            ShapeKind.LONG: lambda v, s: _require_int(v),
            ShapeKind.FLOAT: lambda v, s: format_float(v),
            ShapeKind.DOUBLE: lambda v, s: format_float(v),
            ShapeKind.BOOLEAN: lambda v, s: _require_bool(v),
            ShapeKind.TIMESTAMP: lambda v, s: format_timestamp(v, UNIX_TIMESTAMP),
            ShapeKind.BLOB: lambda v, s: base64.b64encode(_require_bytes(v)).decode("ascii"),
        }
        return writers

    def _build_readers(self):
        return {
            ShapeKind.STRUCTURE: self._read_structure,
            ShapeKind.LIST: self._read_list,
            ShapeKind.MAP: self._read_map,
            ShapeKind.STRING: lambda raw, s: _require_str(raw),
            ShapeKind.INTEGER: lambda raw, s: _require_int(raw),
            ShapeKind.LONG: lambda raw, s: _require_int(raw),
            ShapeKind.FLOAT: lambda raw, s: parse_float(raw),
            ShapeKind.DOUBLE: lambda raw, s: parse_float(raw),
            ShapeKind.BOOLEAN: lambda raw, s: _require_bool(raw),
            ShapeKind.TIMESTAMP: lambda raw, s: parse_timestamp(raw),
            ShapeKind.BLOB: lambda raw, s: decode_blob(raw),
        }

    # Writing

    def to_document(self, value: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> Any:
        if shape.kind is ShapeKind.STRUCTURE:
            return self._write_structure(value, shape, members)
        return self._writer(shape)(value, shape)

    def encode(self, value: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> bytes:
        document = self.to_document(value, shape, members)
        return json.dumps(document, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def _write_structure(self, value: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> Dict[str, Any]:
        document: Dict[str, Any] = {}
        for member in shape.members if members is None else members:
            member_value = get_member_value(value, member)
            if member_value is None:
                continue
            document[member.wire_name] = self._writer(member.shape)(member_value, member.shape)
        return document

    def _write_list(self, value: Any, shape: Shape) -> List[Any]:
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise TypeError(f"Expected list for '{shape.name}', got {type(value).__name__}")
        write = self._writer(shape.member)
        return [write(item, shape.member) for item in value]

    def _write_map(self, value: Any, shape: Shape) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            raise TypeError(f"Expected mapping for '{shape.name}', got {type(value).__name__}")
        write = self._writer(shape.value)
        return {
            _require_str(key): write(item, shape.value)
            for key, item in value.items()
            if item is not None
        }

    # Reading

    def from_document(self, document: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> Any:
        if shape.kind is ShapeKind.STRUCTURE:
            return self._read_structure(document, shape, members)
        return self._reader(shape)(document, shape)

    def decode(self, body: bytes, shape: Shape, members: Optional[Sequence[Member]] = None) -> Any:
        text = body.decode("utf-8") if body else ""
        document = json.loads(text) if text.strip() else {}
        return self.from_document(document, shape, members)

    def read_members(self, document: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> Dict[str, Any]:
        """Decode the members of ``shape`` present in a JSON object."""
        if not isinstance(document, dict):
            raise TypeError(
                f"Expected JSON object for '{shape.name}', got {type(document).__name__}"
            )
        by_wire = {m.wire_name: m for m in (shape.members if members is None else members)}
        values: Dict[str, Any] = {}
        unknown = []
        for key, raw in document.items():
            member = by_wire.get(key)
            if member is None:
                unknown.append(key)
                continue
            if raw is None:
                continue
            values[member.name] = self._reader(member.shape)(raw, member.shape)
        self._note_unknown(shape, unknown)
        return values

    def _read_structure(self, document: Any, shape: Shape, members: Optional[Sequence[Member]] = None) -> Any:
        return build_structure(shape, self.read_members(document, shape, members))

    def _read_list(self, raw: Any, shape: Shape) -> List[Any]:
        if not isinstance(raw, list):
            raise TypeError(f"Expected JSON array for '{shape.name}', got {type(raw).__name__}")
        read = self._reader(shape.member)
        return [read(item, shape.member) for item in raw if item is not None]

    def _read_map(self, raw: Any, shape: Shape) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise TypeError(f"Expected JSON object for '{shape.name}', got {type(raw).__name__}")
        read = self._reader(shape.value)
        return {key: read(item, shape.value) for key, item in raw.items() if item is not None}


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


class XmlCodec(BaseCodec):
    """XML documents built with ``xml.etree.ElementTree``."""

    name = "xml"
    content_type = "application/xml"

    def _build_writers(self):
        writers = {
            ShapeKind.STRUCTURE: self._write_structure,
            ShapeKind.LIST: self._write_list,
            ShapeKind.MAP: self._write_map,
        }
        writers.update({kind: self._write_scalar for kind in _SCALAR_KINDS})
        return writers

    def _build_readers(self):
        readers = {
            ShapeKind.STRUCTURE: self._read_structure_element,
            ShapeKind.LIST: self._read_list,
            ShapeKind.MAP: self._read_map,
        }
        readers.update({kind: self._read_scalar for kind in _SCALAR_KINDS})
        return readers

    # Writing

    def to_element(self, value: Any, shape: Shape, tag: str, members: Optional[Sequence[Member]] = None) -> ET.Element:
        if shape.kind is ShapeKind.STRUCTURE:
            return self._write_structure(value, shape, tag, members)
        return self._writer(shape)(value, shape, tag)

    def encode(
        self,
        value: Any,
        shape: Shape,
        root_name: Optional[str] = None,
        members: Optional[Sequence[Member]] = None,
    ) -> bytes:
        root = self.to_element(value, shape, root_name or shape.xml_root_name or shape.name, members)
        namespace = shape.xml_namespace or self.config.xml_namespace
        if namespace:
            root.set("xmlns", namespace)
        return ET.tostring(root, encoding="utf-8")

    def _append(self, parent: ET.Element, value: Any, shape: Shape, name: str) -> None:
        if shape.kind is ShapeKind.LIST and shape.flattened:
            self._check_list(value, shape)
            for item in value:
                parent.append(self._writer(shape.member)(item, shape.member, name))
        elif shape.kind is ShapeKind.MAP and shape.flattened:
            self._check_map(value, shape)
            for key, item in value.items():
                parent.append(self._map_entry(key, item, shape, name))
        else:
            parent.append(self._writer(shape)(value, shape, name))

    def _write_structure(self, value: Any, shape: Shape, tag: str, members: Optional[Sequence[Member]] = None) -> ET.Element:
        element = ET.Element(tag)
        for member in shape.members if members is None else members:
            member_value = get_member_value(value, member)
            if member_value is None:
                continue
            if member.xml_attribute:
                element.set(member.wire_name, scalar_to_string(member_value, member.shape))
            else:
                self._append(element, member_value, member.shape, member.wire_name)
        return element

    def _write_list(self, value: Any, shape: Shape, tag: str) -> ET.Element:
        self._check_list(value, shape)
        element = ET.Element(tag)
        item_name = shape.member_location_name or "member"
        write = self._writer(shape.member)
        for item in value:
            element.append(write(item, shape.member, item_name))
        return element

    def _write_map(self, value: Any, shape: Shape, tag: str) -> ET.Element:
        self._check_map(value, shape)
        element = ET.Element(tag)
        for key, item in value.items():
            element.append(self._map_entry(key, item, shape, "entry"))
        return element

    def _map_entry(self, key: Any, item: Any, shape: Shape, tag: str) -> ET.Element:
        entry = ET.Element(tag)
        key_element = ET.SubElement(entry, shape.key_location_name or "key")
        key_element.text = _require_str(key)
        entry.append(self._writer(shape.value)(item, shape.value, shape.value_location_name or "value"))
        return entry

    def _write_scalar(self, value: Any, shape: Shape, tag: str) -> ET.Element:
        element = ET.Element(tag)
        element.text = scalar_to_string(value, shape, ISO8601)
        return element

    @staticmethod
    def _check_list(value: Any, shape: Shape) -> None:
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise TypeError(f"Expected list for '{shape.name}', got {type(value).__name__}")

    @staticmethod
    def _check_map(value: Any, shape: Shape) -> None:
        if not isinstance(value, Mapping):
            raise TypeError(f"Expected mapping for '{shape.name}', got {type(value).__name__}")

    # Reading

    def parse(self, body: bytes) -> ET.Element:
        return ET.fromstring(body)

    def from_element(self, element: ET.Element, shape: Shape) -> Any:
        return self._reader(shape)(element, shape)

    def read_members(
        self,
        elements: Sequence[ET.Element],
        shape: Shape,
        attributes: Optional[Mapping[str, str]] = None,
        members: Optional[Sequence[Member]] = None,
    ) -> Dict[str, Any]:
        """Match member wire names against ``elements`` and decode them."""
        members = shape.members if members is None else members
        values: Dict[str, Any] = {}
        by_name: Dict[str, List[ET.Element]] = {}
        for child in elements:
            by_name.setdefault(local_name(child.tag), []).append(child)

        for member in members:
            if member.xml_attribute:
                raw = (attributes or {}).get(member.wire_name)
                if raw is not None:
                    values[member.name] = scalar_from_string(raw, member.shape)
                continue
            matches = by_name.pop(member.wire_name, None)
            if not matches:
                continue
            member_shape = member.shape
            if member_shape.kind is ShapeKind.LIST and member_shape.flattened:
                read = self._reader(member_shape.member)
                values[member.name] = [read(e, member_shape.member) for e in matches]
            elif member_shape.kind is ShapeKind.MAP and member_shape.flattened:
                values[member.name] = dict(self._read_entry(e, member_shape) for e in matches)
            else:
                values[member.name] = self._reader(member_shape)(matches[0], member_shape)

        self._note_unknown(shape, by_name)
        return values

    def _read_structure_element(self, element: ET.Element, shape: Shape) -> Any:
        return build_structure(shape, self.read_members(list(element), shape, element.attrib))

    def _read_list(self, element: ET.Element, shape: Shape) -> List[Any]:
        read = self._reader(shape.member)
        return [read(child, shape.member) for child in element]

    def _read_map(self, element: ET.Element, shape: Shape) -> Dict[str, Any]:
        return dict(self._read_entry(entry, shape) for entry in element)

    def _read_entry(self, entry: ET.Element, shape: Shape) -> Tuple[str, Any]:
        key_name = shape.key_location_name or "key"
        value_name = shape.value_location_name or "value"
        key = None
        value_element = None
        for child in entry:
            name = local_name(child.tag)
            if name == key_name:
                key = child.text or ""
            elif name == value_name:
                value_element = child
        if key is None:
            raise ValueError(f"Map entry in '{shape.name}' has no <{key_name}> element")
        if value_element is None:
            return key, None
        return key, self._reader(shape.value)(value_element, shape.value)

    def _read_scalar(self, element: ET.Element, shape: Shape) -> Any:
        return scalar_from_string(element.text, shape)


class QueryCodec(BaseCodec):
    """Flattens values into form-encoded Query parameters. Write-only."""

    name = "query"
    content_type = "application/x-www-form-urlencoded; charset=utf-8"

    def _build_writers(self):
        writers = {
            ShapeKind.STRUCTURE: self._write_structure,
            ShapeKind.LIST: self._write_list,
            ShapeKind.MAP: self._write_map,
        }
        writers.update({kind: self._write_scalar for kind in _SCALAR_KINDS})
        return writers

    def to_params(
        self,
        value: Any,
        shape: Shape,
        prefix: str = "",
        members: Optional[Sequence[Member]] = None,
    ) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if shape.kind is ShapeKind.STRUCTURE:
            self._write_structure(value, shape, prefix, params, members)
        else:
            self._writer(shape)(value, shape, prefix, params)
        return params

    @staticmethod
    def _join(prefix: str, name: str) -> str:
        return f"{prefix}.{name}" if prefix else name

    def _write_structure(
        self,
        value: Any,
        shape: Shape,
        prefix: str,
        params: List[Tuple[str, str]],
        members: Optional[Sequence[Member]] = None,
    ) -> None:
        for member in shape.members if members is None else members:
            member_value = get_member_value(value, member)
            if member_value is None:
                continue
            self._writer(member.shape)(
                member_value, member.shape, self._join(prefix, member.wire_name), params
            )

    def _write_list(self, value: Any, shape: Shape, prefix: str, params: List[Tuple[str, str]]) -> None:
        XmlCodec._check_list(value, shape)
        items = list(value)
        if not items:
            params.append((prefix, ""))
            return
        if not shape.flattened:
            prefix = self._join(prefix, shape.member_location_name or "member")
        write = self._writer(shape.member)
        for index, item in enumerate(items, start=1):
            write(item, shape.member, f"{prefix}.{index}", params)

    def _write_map(self, value: Any, shape: Shape, prefix: str, params: List[Tuple[str, str]]) -> None:
        XmlCodec._check_map(value, shape)
        if not shape.flattened:
            prefix = self._join(prefix, "entry")
        key_name = shape.key_location_name or "key"
        value_name = shape.value_location_name or "value"
        write = self._writer(shape.value)
        for index, (key, item) in enumerate(value.items(), start=1):
            entry = f"{prefix}.{index}"
            params.append((f"{entry}.{key_name}", _require_str(key)))
            write(item, shape.value, f"{entry}.{value_name}", params)

    def _write_scalar(self, value: Any, shape: Shape, prefix: str, params: List[Tuple[str, str]]) -> None:
        params.append((prefix, scalar_to_string(value, shape, ISO8601)))
