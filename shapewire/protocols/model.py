"""
Shapewire - Service Model Loader

Reads a service description (``metadata``, ``operations`` and ``shapes``
sections, as JSON or YAML) into shared Shape trees and OperationBindings.

Shapes are resolved in two phases: every structure is created empty first,
then members are bound, so structures may reference themselves directly or
through lists and maps.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import yaml

from ..core.config import Config
from ..core.exceptions import ConfigurationError
from .factory import ProtocolFactory
from .shapes import Location, Member, OperationBinding, Shape, ShapeKind, _assign_members

logger = logging.getLogger(__name__)

_SHAPE_TYPES = {kind.value: kind for kind in ShapeKind}


class ServiceModel:
    """A loaded service description."""

    def __init__(
        self,
        metadata: Mapping[str, Any],
        shapes: Mapping[str, Shape],
        operations: Mapping[str, Mapping[str, Any]],
        customizations: Optional[Mapping[str, Any]] = None,
    ):
        self.metadata = MappingProxyType(dict(metadata))
        self.shapes = MappingProxyType(dict(shapes))
        self._operations = dict(operations)
        self.customizations = MappingProxyType(dict(customizations or {}))
        self._root_element_outputs: Set[str] = set(
            self.customizations.get("useRootXmlElementForResult") or ()
        )
        self._bindings = {name: self._build_binding(name) for name in self._operations}

    # Loading

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ServiceModel":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Service model not found: {path}")

        try:
            with open(path, "r") as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid service model {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Service model must be a mapping: {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceModel":
        metadata = data.get("metadata") or {}
        shape_defs = data.get("shapes") or {}
        operations = data.get("operations") or {}
        if not isinstance(shape_defs, dict) or not isinstance(operations, dict):
            raise ConfigurationError("Service model 'shapes' and 'operations' must be mappings")

        shapes = _ShapeResolver(shape_defs).resolve_all()
        model = cls(metadata, shapes, operations, data.get("customizations"))
        logger.debug(
            f"Loaded service model {model.service_name}: "
            f"{len(shapes)} shapes, {len(operations)} operations"
        )
        return model

    # Metadata

    @property
    def protocol(self) -> str:
        return self.metadata.get("protocol", "json")

    @property
    def service_name(self) -> str:
        return (
            self.metadata.get("serviceId")
            or self.metadata.get("endpointPrefix")
            or self.metadata.get("serviceFullName")
            or "service"
        )

    @property
    def endpoint_prefix(self) -> Optional[str]:
        return self.metadata.get("endpointPrefix")

    @property
    def target_prefix(self) -> Optional[str]:
        return self.metadata.get("targetPrefix")

    @property
    def api_version(self) -> Optional[str]:
        return self.metadata.get("apiVersion")

    @property
    def json_version(self) -> Optional[str]:
        return self.metadata.get("jsonVersion")

    # Operations

    @property
    def operation_names(self) -> List[str]:
        return sorted(self._operations)

    def shape(self, name: str) -> Shape:
        try:
            return self.shapes[name]
        except KeyError:
            raise ConfigurationError(f"Unknown shape '{name}'", shape_name=name) from None

    def operation_binding(self, name: str) -> OperationBinding:
        try:
            return self._bindings[name]
        except KeyError:
            raise ConfigurationError(f"Unknown operation '{name}'", config_key=name) from None

    def _build_binding(self, name: str) -> OperationBinding:
        operation = self._operations[name] or {}
        http = operation.get("http") or {}
        input_shape = self._shape_ref(operation.get("input"), name)
        output_shape = self._shape_ref(operation.get("output"), name)

        use_root_element = None
        if output_shape is not None and output_shape.name in self._root_element_outputs:
            use_root_element = True

        return OperationBinding.for_shapes(
            operation.get("name", name),
            input_shape=input_shape,
            output_shape=output_shape,
            http_method=http.get("method", "POST"),
            request_uri=http.get("requestUri", "/"),
            use_root_element=use_root_element,
        )

    def _shape_ref(self, ref: Optional[Mapping[str, Any]], operation: str) -> Optional[Shape]:
        if not ref:
            return None
        shape_name = ref.get("shape")
        if shape_name not in self.shapes:
            raise ConfigurationError(
                f"Operation '{operation}' references unknown shape '{shape_name}'",
                shape_name=shape_name,
            )
        return self.shapes[shape_name]

    def create_protocol_factory(self, config: Optional[Config] = None) -> ProtocolFactory:
        """Map ``metadata.protocol`` to a ProtocolFactory."""
        return ProtocolFactory(
            self.protocol,
            config=config,
            target_prefix=self.target_prefix,
            api_version=self.api_version,
            json_version=self.json_version,
        )


class _ShapeResolver:
    """Two-phase construction of the shape graph."""

    def __init__(self, shape_defs: Mapping[str, Any]):
        self.shape_defs = shape_defs
        self.shapes: Dict[str, Shape] = {}
        self._resolving: Set[str] = set()

    def resolve_all(self) -> Dict[str, Shape]:
        # Phase 1: every shape exists; structures have no members yet.
        for name in self.shape_defs:
            self._resolve(name)

        # Phase 2: bind structure members.
        for name, definition in self.shape_defs.items():
            shape = self.shapes[name]
            if shape.kind is ShapeKind.STRUCTURE:
                _assign_members(shape, tuple(self._members(name, definition)))

        return self.shapes

    def _definition(self, name: str, referenced_by: Optional[str] = None) -> Mapping[str, Any]:
        definition = self.shape_defs.get(name)
        if definition is None:
            raise ConfigurationError(
                f"Shape '{referenced_by}' references unknown shape '{name}'",
                shape_name=referenced_by or name,
            )
        if not isinstance(definition, dict):
            raise ConfigurationError(f"Shape '{name}' must be a mapping", shape_name=name)
        return definition

    def _kind(self, name: str, definition: Mapping[str, Any]) -> ShapeKind:
        type_name = definition.get("type")
        if type_name not in _SHAPE_TYPES:
            raise ConfigurationError(
                f"Shape '{name}' has unsupported type '{type_name}'", shape_name=name
            )
        return _SHAPE_TYPES[type_name]

    def _resolve(self, name: str, referenced_by: Optional[str] = None) -> Shape:
        if name in self.shapes:
            return self.shapes[name]

        definition = self._definition(name, referenced_by)
        kind = self._kind(name, definition)

        if name in self._resolving:
            raise ConfigurationError(
                f"Shape '{name}' contains itself without an intervening structure",
                shape_name=name,
            )
        self._resolving.add(name)
        try:
            shape = self._build(name, kind, definition)
        finally:
            self._resolving.discard(name)

        self.shapes[name] = shape
        return shape

    def _build(self, name: str, kind: ShapeKind, definition: Mapping[str, Any]) -> Shape:
        flags = {
            "streaming": bool(definition.get("streaming", False)),
            "flattened": bool(definition.get("flattened", False)),
        }

        if kind is ShapeKind.STRUCTURE:
            namespace = definition.get("xmlNamespace")
            if isinstance(namespace, dict):
                namespace = namespace.get("uri")
            return Shape.structure(
                name,
                (),
                event_stream=bool(definition.get("eventstream", False)),
                event=bool(definition.get("event", False)),
                exception=bool(definition.get("exception", False)),
                xml_root_name=definition.get("locationName"),
                xml_namespace=namespace,
                **flags,
            )

        if kind is ShapeKind.LIST:
            member_ref = self._ref(name, definition, "member")
            return Shape.list_of(
                name,
                self._resolve(member_ref["shape"], name),
                member_location_name=member_ref.get("locationName"),
                **flags,
            )

        if kind is ShapeKind.MAP:
            key_ref = self._ref(name, definition, "key")
            value_ref = self._ref(name, definition, "value")
            return Shape.map_of(
                name,
                self._resolve(key_ref["shape"], name),
                self._resolve(value_ref["shape"], name),
                key_location_name=key_ref.get("locationName"),
                value_location_name=value_ref.get("locationName"),
                **flags,
            )

        return Shape.scalar(name, kind, **flags)

    @staticmethod
    def _ref(name: str, definition: Mapping[str, Any], key: str) -> Mapping[str, Any]:
        ref = definition.get(key)
        if not isinstance(ref, dict) or "shape" not in ref:
            raise ConfigurationError(
                f"Shape '{name}' is missing its '{key}' reference", shape_name=name
            )
        return ref

    def _members(self, name: str, definition: Mapping[str, Any]):
        payload = definition.get("payload")
        required = set(definition.get("required") or ())
        member_defs = definition.get("members") or {}

        if payload and payload not in member_defs:
            raise ConfigurationError(
                f"Payload member '{payload}' is not a member of '{name}'", shape_name=name
            )

        for member_name, ref in member_defs.items():
            if not isinstance(ref, dict) or "shape" not in ref:
                raise ConfigurationError(
                    f"Member '{member_name}' of '{name}' has no shape reference", shape_name=name
                )
            location = ref.get("location", Location.BODY.value)
            try:
                location = Location(location)
            except ValueError:
                raise ConfigurationError(
                    f"Member '{member_name}' of '{name}' has unknown location '{location}'",
                    shape_name=name,
                ) from None

            yield Member(
                name=member_name,
                shape=self._resolve(ref["shape"], name),
                location=location,
                location_name=ref.get("locationName"),
                payload=member_name == payload,
                xml_attribute=bool(ref.get("xmlAttribute", False)),
                required=member_name in required,
            )
